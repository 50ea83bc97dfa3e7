import hashlib

import pytest

from mytonblock.boc import Builder
from mytonblock.boc import Cell
from mytonblock.boc import CellType
from mytonblock.boc import LevelMask
from mytonblock.errors import FormatError
from mytonblock.errors import ProofError
from mytonblock.merkle import merkle_proof_cell


def test_empty_cell_hash():
    cell = Cell()
    assert cell.hash_hex == '96a296d224f285c67bee93c30f8a309157f0daa35dc5b87e410b78630a09cfc7'
    assert cell.depth == 0
    assert cell.level == 0


def test_hash_of_one_byte_cell():
    cell = Cell(b'\xff', 8)
    expected = hashlib.sha256(bytes([0, 2, 0xff])).digest()
    assert cell.hash == expected


def test_hash_includes_refs():
    child = Cell(b'\xaa', 8)
    parent = Cell(b'', 0, [child])
    buff = bytes([1, 0]) + child.depth.to_bytes(2, 'big') + child.hash
    assert parent.hash == hashlib.sha256(buff).digest()
    assert parent.depth == 1


def test_data_is_normalized():
    assert Cell(b'\xff', 3).data == b'\xe0'
    assert Cell(b'\xe0', 3) == Cell(b'\xff', 3)


@pytest.mark.parametrize('kwargs', (
    {'data': b'\x00' * 128, 'bits_len': 1024},
    {'data': b'', 'refs': [Cell()] * 5},
    {'data': b'\x00', 'bits_len': 9},
))
def test_cell_limits(kwargs):
    with pytest.raises(FormatError):
        Cell(**kwargs)


def test_depth_limit():
    cell = Cell()
    for _ in range(10):
        cell = Cell(b'', 0, [cell], max_depth=10)
    with pytest.raises(FormatError):
        Cell(b'', 0, [cell], max_depth=10)


def test_pruned_keeps_hash():
    child = Builder().store_uint(7, 32).end_cell()
    root = Cell(b'\x01', 8, [child])
    pruned = Cell.pruned(root)
    assert pruned.is_pruned
    assert pruned.level_mask == LevelMask(1)
    assert pruned.get_hash(0) == root.hash
    assert pruned.get_depth(0) == root.depth
    assert pruned.pruned_hashes() == [root.hash]
    assert pruned.hash != root.hash


def test_parent_of_pruned_keeps_level_zero_hash():
    child = Builder().store_uint(7, 32).end_cell()
    parent = Cell(b'\x02', 8, [child])
    replaced = Cell(b'\x02', 8, [Cell.pruned(child)])
    assert replaced.level == 1
    assert replaced.get_hash(0) == parent.hash
    assert replaced.hash != parent.hash


def test_merkle_proof_levels():
    child = Builder().store_uint(7, 32).end_cell()
    virtual_root = Cell(b'\x02', 8, [Cell.pruned(child)])
    proof = merkle_proof_cell(virtual_root)
    assert proof.type_ == CellType.merkle_proof
    assert proof.level == 0
    assert proof.refs[0].get_hash(0) == Cell(b'\x02', 8, [child]).hash


def test_merkle_proof_hash_mismatch():
    root = Builder().store_uint(1, 8).end_cell()
    data = bytes([CellType.merkle_proof]) + b'\x00' * 32 + root.depth.to_bytes(2, 'big')
    with pytest.raises(ProofError):
        Cell(data, len(data) * 8, [root], CellType.merkle_proof)


@pytest.mark.parametrize('data,bits_len', (
    (b'\x01', 8),
    (b'\x01\x00' + b'\x00' * 34, 288),
    (b'\x09', 8),
))
def test_invalid_exotic(data, bits_len):
    with pytest.raises(FormatError):
        Cell.special(data, bits_len)


def test_library_cell():
    data = bytes([CellType.library_ref]) + b'\x11' * 32
    cell = Cell.special(data, len(data) * 8)
    assert cell.is_library
    assert cell.level == 0


def test_cell_str():
    assert str(Cell(b'\xaa', 8)) == '<Cell 8:aa=0>'
