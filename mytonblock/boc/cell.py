from enum import IntEnum
from typing import Iterable
from typing import List
from typing import Optional

from .hasher import LevelMask
from .hasher import compute_hashes
from ..const import DEPTH_BYTES
from ..const import HASH_BYTES
from ..const import LIBRARY_BITS
from ..const import MAX_CELL_BITS
from ..const import MAX_CELL_REFS
from ..const import MAX_DEPTH
from ..const import MAX_LEVEL
from ..const import MERKLE_PROOF_BITS
from ..const import MERKLE_UPDATE_BITS
from ..const import PRUNED_HEADER_BITS
from ..errors import FormatError
from ..errors import ProofError


class CellType(IntEnum):
    ordinary = -1
    pruned_branch = 1
    library_ref = 2
    merkle_proof = 3
    merkle_update = 4


class Cell:
    """
    Immutable cell: up to 1023 bits of data and up to 4 references.
    Hashes and depths of every level are computed once, at construction,
    from the already built children.
    """
    def __init__(
            self,
            data: bytes = b'',
            bits_len: Optional[int] = None,
            refs: Optional[Iterable['Cell']] = None,
            type_: CellType = CellType.ordinary,
            max_depth: int = MAX_DEPTH
    ):
        data = bytes(data)
        if bits_len is None:
            bits_len = len(data) * 8
        if bits_len < 0 or bits_len > MAX_CELL_BITS:
            raise FormatError(f'Cell error: data must be at most {MAX_CELL_BITS} bits, actual = {bits_len}')
        if len(data) * 8 < bits_len:
            raise FormatError(f'Cell error: {len(data)} bytes can not hold {bits_len} bits')
        refs = tuple(refs or ())
        if len(refs) > MAX_CELL_REFS:
            raise FormatError(f'Cell error: at most {MAX_CELL_REFS} refs allowed, actual = {len(refs)}')

        self.data = self._normalize(data, bits_len)
        self.bits_len = bits_len
        self.refs = refs
        self.type_ = CellType(type_)
        self.level_mask = self._calc_level_mask()
        self._hashes, self._depths = compute_hashes(self, max_depth)
        if self.is_merkle:
            self._check_merkle()

    @classmethod
    def special(
            cls,
            data: bytes,
            bits_len: int,
            refs: Optional[Iterable['Cell']] = None,
            max_depth: int = MAX_DEPTH
    ) -> 'Cell':
        """
        Exotic cell whose type is taken from the first data byte
        """
        if bits_len < 8:
            raise FormatError('Cell error: exotic cell must have at least 8 data bits')
        try:
            type_ = CellType(data[0])
        except ValueError:
            raise FormatError(f'Cell error: unknown exotic cell type {data[0]}')
        if type_ == CellType.ordinary:
            raise FormatError('Cell error: exotic cell can not be ordinary')
        return cls(data, bits_len, refs, type_, max_depth)

    @classmethod
    def pruned(cls, cell: 'Cell', merkle_depth: int = 0) -> 'Cell':
        """
        Pruned branch standing in for `cell` inside a merkle proof/update
        nested `merkle_depth` levels deep
        """
        if merkle_depth >= MAX_LEVEL:
            raise FormatError(f'Cell error: can not prune at merkle depth {merkle_depth}')
        base = cell.level_mask.apply(merkle_depth)
        new_mask = base.mask | (1 << merkle_depth)
        hashes = list()
        depths = list()
        for level in range(base.level + 1):
            if not base.is_significant(level):
                continue
            hashes.append(cell.get_hash(level))
            depths.append(cell.get_depth(level))
        data = bytes([CellType.pruned_branch, new_mask])
        data += b''.join(hashes)
        data += b''.join(depth.to_bytes(DEPTH_BYTES, byteorder='big') for depth in depths)
        return cls(data, len(data) * 8, type_=CellType.pruned_branch)

    @staticmethod
    def _normalize(data: bytes, bits_len: int) -> bytes:
        size = (bits_len + 7) // 8
        result = bytearray(data[:size])
        rest = bits_len % 8
        if rest:
            result[-1] &= (0xff << (8 - rest)) & 0xff
        return bytes(result)

    def _calc_level_mask(self) -> LevelMask:
        if self.type_ == CellType.ordinary:
            mask = LevelMask()
            for ref in self.refs:
                mask = mask | ref.level_mask
            return mask
        if self.bits_len < 8:
            raise FormatError('Cell error: exotic cell must have at least 8 data bits')
        if self.data[0] != self.type_:
            raise FormatError(f'Cell error: exotic type byte {self.data[0]} does not match {self.type_.name}')
        if self.type_ == CellType.pruned_branch:
            return self._calc_pruned_mask()
        if self.type_ == CellType.library_ref:
            if self.bits_len != LIBRARY_BITS or self.refs:
                raise FormatError('Cell error: library cell must have 264 bits and no refs')
            return LevelMask()
        if self.type_ == CellType.merkle_proof:
            if self.bits_len != MERKLE_PROOF_BITS or len(self.refs) != 1:
                raise FormatError('Cell error: merkle proof must have 280 bits and 1 ref')
            return self.refs[0].level_mask.shift_down()
        if self.bits_len != MERKLE_UPDATE_BITS or len(self.refs) != 2:
            raise FormatError('Cell error: merkle update must have 552 bits and 2 refs')
        return (self.refs[0].level_mask | self.refs[1].level_mask).shift_down()

    def _calc_pruned_mask(self) -> LevelMask:
        if self.refs:
            raise FormatError('Cell error: pruned branch can not have refs')
        if self.bits_len < PRUNED_HEADER_BITS:
            raise FormatError('Cell error: pruned branch is too short')
        mask = self.data[1]
        if mask < 1 or mask > 7:
            raise FormatError(f'Cell error: invalid pruned branch level mask {mask}')
        level_mask = LevelMask(mask)
        expected = PRUNED_HEADER_BITS + level_mask.hash_index * (HASH_BYTES + DEPTH_BYTES) * 8
        if self.bits_len != expected:
            raise FormatError(f'Cell error: pruned branch must have {expected} bits, actual = {self.bits_len}')
        return level_mask

    def _check_merkle(self):
        for i, ref in enumerate(self.refs):
            stored_hash = self.data[1 + i * HASH_BYTES:1 + (i + 1) * HASH_BYTES]
            pos = 1 + len(self.refs) * HASH_BYTES + i * DEPTH_BYTES
            stored_depth = int.from_bytes(self.data[pos:pos + DEPTH_BYTES], byteorder='big')
            if stored_hash != ref.get_hash(0):
                raise ProofError(f'{self.type_.name} error: stored hash does not match ref #{i}')
            if stored_depth != ref.get_depth(0):
                raise ProofError(f'{self.type_.name} error: stored depth does not match ref #{i}')

    def _pruned_hash(self, index: int) -> bytes:
        pos = 2 + index * HASH_BYTES
        return self.data[pos:pos + HASH_BYTES]

    def _pruned_depth(self, index: int) -> int:
        pos = 2 + self.level_mask.hash_index * HASH_BYTES + index * DEPTH_BYTES
        return int.from_bytes(self.data[pos:pos + DEPTH_BYTES], byteorder='big')

    def get_hash(self, level: int = MAX_LEVEL) -> bytes:
        hash_index = self.level_mask.apply(level).hash_index
        if self.type_ == CellType.pruned_branch:
            if hash_index != self.level_mask.hash_index:
                return self._pruned_hash(hash_index)
            hash_index = 0
        return self._hashes[hash_index]

    def get_depth(self, level: int = MAX_LEVEL) -> int:
        hash_index = self.level_mask.apply(level).hash_index
        if self.type_ == CellType.pruned_branch:
            if hash_index != self.level_mask.hash_index:
                return self._pruned_depth(hash_index)
            hash_index = 0
        return self._depths[hash_index]

    def stored_hashes(self) -> List[bytes]:
        """
        Hashes of every significant level, in the order a BOC stores them
        """
        return [
            self.get_hash(level) for level in range(self.level + 1)
            if self.level_mask.is_significant(level)
        ]

    def stored_depths(self) -> List[int]:
        return [
            self.get_depth(level) for level in range(self.level + 1)
            if self.level_mask.is_significant(level)
        ]

    def pruned_hashes(self) -> List[bytes]:
        """
        Hashes a pruned branch keeps for the subtree it stands in for,
        lowest level first. Empty for any other cell type.
        """
        if not self.is_pruned:
            return list()
        return [self._pruned_hash(i) for i in range(self.level_mask.hash_index)]

    @property
    def hash(self) -> bytes:
        return self.get_hash(MAX_LEVEL)

    @property
    def hash_hex(self) -> str:
        return self.hash.hex()

    @property
    def depth(self) -> int:
        return self.get_depth(MAX_LEVEL)

    @property
    def level(self) -> int:
        return self.level_mask.level

    @property
    def is_exotic(self) -> bool:
        return self.type_ != CellType.ordinary

    @property
    def is_pruned(self) -> bool:
        return self.type_ == CellType.pruned_branch

    @property
    def is_merkle(self) -> bool:
        return self.type_ in (CellType.merkle_proof, CellType.merkle_update)

    @property
    def is_library(self) -> bool:
        return self.type_ == CellType.library_ref

    def begin_parse(self):
        from .slice import Slice
        return Slice(self)

    def __iter__(self):
        return iter(self.refs)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Cell):
            return NotImplemented
        return self.hash == other.hash

    def __hash__(self):
        return hash(self.hash)

    def __str__(self):
        special_text = ''
        if self.is_exotic:
            special_text = f'{self.type_.name} '
        return f'<{special_text}Cell {self.bits_len}:{self.data.hex()}={len(self.refs)}>'

    def __repr__(self):
        return str(self)
