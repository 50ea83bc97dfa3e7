import hashlib

from .bits import bits_descriptor
from .bits import refs_descriptor
from ..const import DEPTH_BYTES
from ..const import MAX_DEPTH
from ..errors import FormatError


class LevelMask:
    """
    Level mask of a cell, see tvm.pdf 3.1.2 - 3.1.7
    bit `i` is set when the cell carries a hash for merkle level `i + 1`
    """
    def __init__(self, m: int = 0):
        if m < 0 or m > 7:
            raise FormatError(f'LevelMask error: mask must be in 0..7, actual = {m}')
        self._m = m

    @property
    def mask(self) -> int:
        return self._m

    @property
    def level(self) -> int:
        return self._m.bit_length()

    @property
    def hash_index(self) -> int:
        return bin(self._m).count('1')

    def apply(self, level: int) -> 'LevelMask':
        return LevelMask(self._m & ((1 << level) - 1))

    def is_significant(self, level: int) -> bool:
        return level == 0 or (self._m >> (level - 1)) % 2 != 0

    def shift_down(self) -> 'LevelMask':
        return LevelMask(self._m >> 1)

    def __or__(self, other: 'LevelMask') -> 'LevelMask':
        return LevelMask(self._m | other.mask)

    def __eq__(self, other) -> bool:
        if isinstance(other, LevelMask):
            return self._m == other.mask
        return self._m == other

    def __hash__(self):
        return hash(self._m)

    def __repr__(self):
        return f'LevelMask({bin(self._m)})'


def data_with_tag(data: bytes, bits_len: int) -> bytes:
    """
    Cell data padded with the completion tag: a single `1` bit followed by
    zeros up to the byte boundary
    """
    size = (bits_len + 7) // 8
    result = bytearray(data[:size])
    rest = bits_len % 8
    if rest:
        result[-1] |= 1 << (7 - rest)
    return bytes(result)


def compute_hashes(cell, max_depth: int = MAX_DEPTH):
    """
    Representation hashes and depths of a cell for every significant level.
    Children must already carry their hashes, so the whole computation is a
    single pass over the direct references.
    :param cell: cell with data, refs, level_mask and type flags set
    :param max_depth: depth ceiling
    :return: (hashes, depths)
    """
    mask = cell.level_mask
    total_hash_count = mask.hash_index + 1
    hash_count = 1 if cell.is_pruned else total_hash_count
    hash_i_offset = total_hash_count - hash_count
    child_shift = 1 if cell.is_merkle else 0
    d2 = bits_descriptor(cell.bits_len)

    hashes = list()
    depths = list()
    hash_i = 0
    for level_i in range(mask.level + 1):
        if not mask.is_significant(level_i):
            continue
        if hash_i < hash_i_offset:
            hash_i += 1
            continue

        d1 = refs_descriptor(len(cell.refs), cell.is_exotic, mask.apply(level_i).mask)
        buff = bytes([d1, d2])
        if hash_i == hash_i_offset:
            buff += data_with_tag(cell.data, cell.bits_len)
        else:
            buff += hashes[hash_i - hash_i_offset - 1]

        depth = 0
        child_level = level_i + child_shift
        for ref in cell.refs:
            ref_depth = ref.get_depth(child_level)
            buff += ref_depth.to_bytes(DEPTH_BYTES, byteorder='big')
            depth = max(depth, ref_depth + 1)
        for ref in cell.refs:
            buff += ref.get_hash(child_level)

        if depth > max_depth:
            raise FormatError(f'compute_hashes error: cell depth {depth} exceeds limit {max_depth}')
        hashes.append(hashlib.sha256(buff).digest())
        depths.append(depth)
        hash_i += 1
    return hashes, depths

