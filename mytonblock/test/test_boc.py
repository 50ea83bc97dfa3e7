import pytest

from mytonblock.boc import BagOfCells
from mytonblock.boc import Builder
from mytonblock.boc import Cell
from mytonblock.boc import deserialize_boc
from mytonblock.boc import serialize_boc
from mytonblock.boc.boc import crc32c
from mytonblock.boc.boc import parse_header
from mytonblock.errors import FormatError
from mytonblock.errors import ProofError
from mytonblock.settings import ParserSettings

BOC = bytes.fromhex("b5ee9c7201010301000e000201c002010101ff0200060aaaaa")


def test_read_header():
    header = parse_header(BOC, ParserSettings())
    assert header.ref_size == 1
    assert not header.has_idx
    assert not header.has_cache_bits
    assert not header.has_crc32c
    assert header.off_bytes == 1
    assert header.cells_num == 3
    assert header.roots_num == 1
    assert header.absent_num == 0
    assert header.tot_cells_size == 14
    assert header.root_list == [0]


def test_successfully_cell_deserialize():
    root = deserialize_boc(BOC)[0]
    assert root.data == b'\x80'
    assert root.bits_len == 1
    assert len(root.refs) == 2
    assert root.refs[0].data == b'\x0a\xaa\xaa'
    assert root.refs[0].bits_len == 24
    assert root.refs[1].data == b'\xfe'
    assert root.refs[1].bits_len == 7
    assert root.refs[1].refs[0] is root.refs[0]


def test_successfully_cell_serialize():
    root = deserialize_boc(BOC)[0]
    assert serialize_boc(root) == BOC


def test_lazy_loading():
    boc = BagOfCells(BOC)
    assert boc.loaded == 0
    cell = boc.load_cell(2)
    assert cell.data == b'\x0a\xaa\xaa'
    assert boc.loaded == 1
    boc.roots()
    assert boc.loaded == 3


@pytest.mark.parametrize('kwargs', (
    {'has_idx': True},
    {'has_crc32c': True},
    {'has_idx': True, 'has_cache_bits': True},
    {'has_idx': True, 'has_crc32c': True, 'with_hashes': True},
))
def test_round_trip_with_options(kwargs):
    root = deserialize_boc(BOC)[0]
    data = serialize_boc(root, **kwargs)
    assert data != BOC
    restored = deserialize_boc(data)[0]
    assert restored.hash == root.hash
    assert serialize_boc(restored, **kwargs) == data


def test_expected_hash():
    root = deserialize_boc(BOC)[0]
    assert deserialize_boc(BOC, expected_hash=root.hash)[0] == root
    with pytest.raises(ProofError):
        deserialize_boc(BOC, expected_hash=b'\x00' * 32)


def test_crc32c_mismatch():
    data = bytearray(serialize_boc(deserialize_boc(BOC)[0], has_crc32c=True))
    data[-1] ^= 0xff
    with pytest.raises(FormatError):
        deserialize_boc(bytes(data))
    settings = ParserSettings(verify_crc32c=False)
    assert deserialize_boc(bytes(data), settings=settings)[0].data == b'\x80'


def test_crc32c_known_value():
    assert crc32c(b'123456789') == (0xe3069283).to_bytes(4, 'little')


def test_legacy_magic():
    root = deserialize_boc(BOC)[0]
    data = serialize_boc(root, has_idx=True)
    header = parse_header(data, ParserSettings())
    legacy = bytes.fromhex('68ff65f3') + bytes([header.ref_size, header.off_bytes])
    # generic header minus magic, flags, off_bytes and the root list
    body = data[6:6 + 3 * header.ref_size + header.off_bytes]
    legacy += body + data[6 + 4 * header.ref_size + header.off_bytes:]
    assert deserialize_boc(legacy)[0].hash == root.hash


def test_multiple_roots_share_cells():
    shared = Builder().store_uint(1, 8).end_cell()
    first = Cell(b'\x01', 8, [shared])
    second = Cell(b'\x02', 8, [shared])
    data = serialize_boc([first, second])
    header = parse_header(data, ParserSettings())
    assert header.cells_num == 3
    roots = deserialize_boc(data)
    assert [root.hash for root in roots] == [first.hash, second.hash]
    assert roots[0].refs[0] is roots[1].refs[0]


def test_without_dedup():
    shared = Builder().store_uint(1, 8).end_cell()
    root = Cell(b'', 0, [shared, shared])
    assert parse_header(serialize_boc(root), ParserSettings()).cells_num == 2
    data = serialize_boc(root, dedup=False)
    assert parse_header(data, ParserSettings()).cells_num == 2
    assert deserialize_boc(data)[0].hash == root.hash


def test_absent_cell():
    child = Builder().store_uint(0xdead, 16).end_cell()
    root = Cell(b'\x01', 8, [child])
    data = serialize_boc(root, with_hashes=True, absent=[child.hash])
    assert parse_header(data, ParserSettings()).absent_num == 1
    restored = deserialize_boc(data)[0]
    assert restored.refs[0].is_pruned
    assert restored.refs[0].get_hash(0) == child.hash
    assert restored.get_hash(0) == root.hash


@pytest.mark.parametrize('absent,declared', ((True, 0), (False, 1)))
def test_absent_count_mismatch(absent, declared):
    child = Builder().store_uint(0xdead, 16).end_cell()
    root = Cell(b'\x01', 8, [child])
    data = bytearray(serialize_boc(root, with_hashes=True, absent=[child.hash] if absent else None))
    # magic, flags, off_bytes, cells, roots, then the absent counter
    data[8] = declared
    with pytest.raises(FormatError):
        deserialize_boc(bytes(data))


def test_exotic_round_trip():
    child = Builder().store_uint(0xdead, 16).end_cell()
    root = Cell(b'\x01', 8, [Cell.pruned(child)])
    restored = deserialize_boc(serialize_boc(root))[0]
    assert restored.hash == root.hash
    assert restored.refs[0].is_pruned


@pytest.mark.parametrize('data', (
    b'',
    bytes.fromhex('deadbeef0101'),
    BOC[:-1],
    BOC + b'\x00',
    bytes.fromhex('b5ee9c7219010301000e000201c002010101ff0200060aaaaa'),
))
def test_malformed_header(data):
    with pytest.raises(FormatError):
        deserialize_boc(data)


def test_reference_to_previous_cell():
    # cell 1 refers back to cell 0
    data = bytes.fromhex('b5ee9c72010102010008000101c0010101ff00')
    with pytest.raises(FormatError):
        deserialize_boc(data)


def test_self_reference():
    data = bytes.fromhex('b5ee9c7201010101000300010000')
    with pytest.raises(FormatError):
        deserialize_boc(data)


def test_max_cells_setting():
    with pytest.raises(FormatError):
        deserialize_boc(BOC, settings=ParserSettings(max_cells=2))


def test_stored_hash_mismatch():
    root = deserialize_boc(BOC)[0]
    data = bytearray(serialize_boc(root, with_hashes=True))
    # first stored hash byte of the root cell
    pos = bytes(data).index(root.hash)
    data[pos] ^= 0xff
    with pytest.raises(ProofError):
        deserialize_boc(bytes(data))
