import pytest

from mytonblock.boc import BagOfCells
from mytonblock.boc import BocCellLoader
from mytonblock.boc import Builder
from mytonblock.boc import Cell
from mytonblock.boc import CellArena
from mytonblock.boc import resolve
from mytonblock.boc import serialize_boc
from mytonblock.errors import FormatError
from mytonblock.errors import ProofError

BOC = bytes.fromhex("b5ee9c7201010301000e000201c002010101ff0200060aaaaa")


def make_tree():
    child = Builder().store_uint(0xbeef, 16).end_cell()
    return Cell(b'\x01', 8, [child, Cell()])


def test_arena_add_tree():
    root = make_tree()
    arena = CellArena()
    assert arena.add_tree(root) == 3
    assert arena.add_tree(root) == 0
    assert arena.load(root.refs[0].hash) is root.refs[0]
    assert root.hash in arena
    assert arena.load(b'\x00' * 32) is None


def test_arena_skips_pruned():
    root = make_tree()
    arena = CellArena()
    arena.add(Cell.pruned(root))
    assert len(arena) == 0


def test_arena_by_level_zero_hash():
    child = make_tree()
    parent = Cell(b'\x02', 8, [Cell.pruned(child)])
    arena = CellArena()
    arena.add(parent)
    assert arena.load(parent.get_hash(0)) is parent
    assert arena.load(parent.hash) is parent


def test_boc_loader_is_lazy():
    boc = BagOfCells(BOC)
    loader = BocCellLoader(boc)
    leaf = Cell(b'\x0a\xaa\xaa', 24)
    assert loader.load(leaf.hash) == leaf
    assert boc.loaded == 1
    assert loader.load(b'\x00' * 32) is None
    assert boc.loaded == 3


def test_resolve():
    root = make_tree()
    arena = CellArena()
    arena.add_tree(root)
    assert resolve(Cell.pruned(root), arena) is root
    assert resolve(root, CellArena()) is root


def test_resolve_missing():
    with pytest.raises(FormatError):
        resolve(Cell.pruned(make_tree()), CellArena())


class LyingLoader:
    def load(self, cell_hash):
        return Cell()


def test_resolve_wrong_cell():
    with pytest.raises(ProofError):
        resolve(Cell.pruned(make_tree()), LyingLoader())


def test_boc_loader_round_trip():
    root = make_tree()
    loader = BocCellLoader(BagOfCells(serialize_boc(root)))
    assert loader.load(root.hash) == root
