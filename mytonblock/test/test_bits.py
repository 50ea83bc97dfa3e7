import pytest

from mytonblock.boc.bits import Bits
from mytonblock.boc.bits import EXOTIC_BIT
from mytonblock.boc.bits import HAS_HASHES_BIT
from mytonblock.boc.bits import bits_descriptor
from mytonblock.boc.bits import build_boc_flags
from mytonblock.boc.bits import parse_boc_flags
from mytonblock.boc.bits import parse_refs_descriptor
from mytonblock.boc.bits import refs_descriptor
from mytonblock.errors import FormatError


@pytest.mark.parametrize('value,pos,left_expected,right_expected', (
    # d1: level mask over refs, exotic and hashes flags
    (0x28, 3, 0b001, 0b01000),
    (0xf4, 3, 0b111, 0b10100),
    # boc flags: has_idx, has_crc32c, has_cache_bits over size
    (0xc2, 5, 0b11000, 0b010),
    (0x01, 5, 0, 1),
    # d2 nibbles
    (0x3f, None, 0x3, 0xf),
))
def test_split_descriptor(value, pos, left_expected, right_expected):
    bits = Bits(value)
    left, right = bits.split(pos)
    assert left == left_expected
    assert right == right_expected


@pytest.mark.parametrize('value,idx,expected', (
    (0x02, EXOTIC_BIT, 0x0a),
    (0x0a, HAS_HASHES_BIT, 0x1a),
    (0x01, 7, 0x81),
))
def test_set_flag(value, idx, expected):
    bits = Bits(value)
    assert bits.set(idx) == expected
    assert bits.is_set(idx)


@pytest.mark.parametrize('value,idx,expected', (
    (0x1a, HAS_HASHES_BIT, 0x0a),
    (0xc2, 7, 0x42),
))
def test_clear_flag(value, idx, expected):
    bits = Bits(value)
    assert bits.clear(idx) == expected
    assert not bits.is_set(idx)


@pytest.mark.parametrize('left,right,pos,expected', (
    (0b111, 4, 3, 0xe4),
    (0b001, 0, 3, 0x20),
    (0, 2, 5, 0x02),
    (0b11000, 3, 5, 0xc3),
))
def test_merge_descriptor(left, right, pos, expected):
    bits = Bits()
    assert bits.merge(left, right, pos=pos) == expected
    assert bits.as_bytes() == bytes([expected])


def test_bits_must_fit_one_byte():
    with pytest.raises(FormatError):
        Bits(0x100)


@pytest.mark.parametrize('refs,exotic,mask,with_hashes,expected', (
    (2, False, 0, False, 0x02),
    (0, True, 1, False, 0x28),
    (1, True, 0, False, 0x09),
    (4, False, 7, True, 0xf4),
    (7, False, 0, True, 0x17),
))
def test_refs_descriptor(refs, exotic, mask, with_hashes, expected):
    d1 = refs_descriptor(refs, exotic, mask, with_hashes)
    assert d1 == expected
    assert parse_refs_descriptor(d1) == (refs, exotic, with_hashes, mask)


@pytest.mark.parametrize('bits_len,expected', (
    (0, 0),
    (1, 1),
    (8, 2),
    (15, 3),
    (1023, 255),
))
def test_bits_descriptor(bits_len, expected):
    assert bits_descriptor(bits_len) == expected


def test_boc_flags():
    assert parse_boc_flags(0x01) == (False, False, False, 1)
    flags = build_boc_flags(True, True, False, 2)
    assert flags == 0xc2
    assert parse_boc_flags(flags) == (True, True, False, 2)


def test_boc_flags_reserved_bits():
    with pytest.raises(FormatError):
        parse_boc_flags(0b00011001)
