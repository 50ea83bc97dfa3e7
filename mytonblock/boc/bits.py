from typing import Optional
from typing import Tuple

from ..errors import FormatError

HAS_HASHES_BIT = 4
EXOTIC_BIT = 3


class Bits:
    """
    Single byte helper used for cell descriptors and BOC header flags
    """
    def __init__(self, d: int = 0):
        if d > 0xff or d < 0:
            msg = f'Bits error: descriptor must fit one byte, actual = {hex(d)}'
            raise FormatError(msg)
        self.__byte = d

    def as_bytes(self) -> bytes:
        return self.__byte.to_bytes(1, byteorder='big', signed=False)

    def as_int(self) -> int:
        return self.__byte

    @staticmethod
    def int_from_bin_str(bin_str: str) -> int:
        if not bin_str:
            return 0
        return int(bin_str, 2)

    def set(self, n: int) -> int:
        self.__byte |= (1 << n)
        return self.__byte

    def clear(self, n: int) -> int:
        self.__byte &= ~(1 << n)
        return self.__byte

    def is_set(self, n: int) -> bool:
        return bool((self.__byte >> n) & 1)

    def split(self, split_pos: Optional[int] = None) -> Tuple[int, int]:
        str_repr = bin(self.__byte)[2:].zfill(8)
        pos = split_pos if split_pos else 4
        left = self.int_from_bin_str(str_repr[:pos])
        right = self.int_from_bin_str(str_repr[pos:])
        return left, right

    def merge(self, left: int, right: int, pos: int = 4) -> int:
        repr_left = bin(left)[2:].zfill(pos)
        repr_right = bin(right)[2:].zfill(8 - pos)
        self.__byte = self.int_from_bin_str(repr_left + repr_right)
        return self.__byte


def refs_descriptor(
        ref_count: int,
        exotic: bool,
        level_mask: int,
        with_hashes: bool = False
) -> int:
    """
    d1 = r + 8s + 16h + 32l
    :param ref_count: number of references (7 marks an absent cell)
    :param exotic: special cell flag
    :param level_mask: 3 bit level mask
    :param with_hashes: hashes and depths are stored before the data
    :return: descriptor byte
    """
    bits = Bits()
    bits.merge(level_mask, ref_count, pos=3)
    if exotic:
        bits.set(EXOTIC_BIT)
    if with_hashes:
        bits.set(HAS_HASHES_BIT)
    return bits.as_int()


def bits_descriptor(bits_len: int) -> int:
    return bits_len // 8 + (bits_len + 7) // 8


def parse_refs_descriptor(d1: int) -> Tuple[int, bool, bool, int]:
    """
    Inverse of refs_descriptor
    :return: ref_count, exotic, with_hashes, level_mask
    """
    bits = Bits(d1)
    level_mask, _ = bits.split(3)
    ref_count = d1 & 0b111
    return ref_count, bits.is_set(EXOTIC_BIT), bits.is_set(HAS_HASHES_BIT), level_mask


def parse_boc_flags(byte: int) -> Tuple[bool, bool, bool, int]:
    """
    0b
    0 _ has_idx
    0 _ has_crc32c
    0 _ has_cache_bits
    0 _ flags
    0 _|
    0 _ size
    0 _|
    0 _|
    :return: has_idx, has_crc32c, has_cache_bits, size
    """
    bits = Bits(byte)
    flags, size = bits.split(5)
    if flags & 0b00011:
        raise FormatError(f'parse_boc_flags error: reserved flags are set: {bin(flags)}')
    return bits.is_set(7), bits.is_set(6), bits.is_set(5), size


def build_boc_flags(has_idx: bool, has_crc32c: bool, has_cache_bits: bool, size: int) -> int:
    bits = Bits()
    bits.merge(0, size, pos=5)
    if has_idx:
        bits.set(7)
    if has_crc32c:
        bits.set(6)
    if has_cache_bits:
        bits.set(5)
    return bits.as_int()
