import logging
from typing import Dict
from typing import Iterable
from typing import List
from typing import NamedTuple
from typing import Optional
from typing import Tuple

import fastcrc

from .bits import bits_descriptor
from .bits import build_boc_flags
from .bits import parse_boc_flags
from .bits import parse_refs_descriptor
from .bits import refs_descriptor
from .cell import Cell
from .cell import CellType
from .hasher import LevelMask
from .hasher import data_with_tag
from ..const import ABSENT_REFS
from ..const import BOC_GENERIC
from ..const import BOC_IDX
from ..const import BOC_IDX_CRC32C
from ..const import DEPTH_BYTES
from ..const import HASH_BYTES
from ..const import MAX_CELL_REFS
from ..const import MAX_LEVEL
from ..errors import FormatError
from ..errors import ProofError
from ..settings import ParserSettings
from ..settings import get_settings

logger = logging.getLogger(__name__)

MAGICS = (
    bytes.fromhex(BOC_GENERIC),
    bytes.fromhex(BOC_IDX),
    bytes.fromhex(BOC_IDX_CRC32C)
)


def int_size(value: int) -> int:
    """
    Smallest number of bytes covering `value`, never less than one
    """
    return max(1, (value.bit_length() + 7) // 8)


def crc32c(data: bytes) -> bytes:
    return fastcrc.crc32.iscsi(data).to_bytes(4, byteorder='little')


def order_cells(roots: List[Cell], absent: frozenset = frozenset(), dedup: bool = True) -> List[Cell]:
    """
    Reverse post-order of a depth first walk over the roots: every cell comes
    before all the cells it references. Absent cells are kept, their refs are
    not walked.
    """
    def key(c):
        return c.hash if dedup else id(c)

    post_order = list()
    visited = set()
    for root in reversed(roots):
        if key(root) in visited:
            continue
        visited.add(key(root))
        stack = [(root, 0)]
        while stack:
            cell, pos = stack.pop()
            refs = () if cell.hash in absent else cell.refs
            if pos < len(refs):
                stack.append((cell, pos + 1))
                ref = refs[pos]
                if key(ref) not in visited:
                    visited.add(key(ref))
                    stack.append((ref, 0))
                continue
            post_order.append(cell)
    post_order.reverse()
    return post_order


def serialize_cell(
        cell: Cell,
        indexes: Dict,
        ref_size: int,
        with_hashes: bool = False,
        absent: bool = False,
        dedup: bool = True
) -> bytes:
    mask = cell.level_mask.mask
    if absent:
        result = bytes([refs_descriptor(ABSENT_REFS, False, mask, True), 0])
        result += b''.join(cell.stored_hashes())
        result += b''.join(d.to_bytes(DEPTH_BYTES, byteorder='big') for d in cell.stored_depths())
        return result

    d1 = refs_descriptor(len(cell.refs), cell.is_exotic, mask, with_hashes)
    result = bytes([d1, bits_descriptor(cell.bits_len)])
    if with_hashes:
        result += b''.join(cell.stored_hashes())
        result += b''.join(d.to_bytes(DEPTH_BYTES, byteorder='big') for d in cell.stored_depths())
    result += data_with_tag(cell.data, cell.bits_len)
    for ref in cell.refs:
        ref_index = indexes[ref.hash if dedup else id(ref)]
        result += ref_index.to_bytes(ref_size, byteorder='big')
    return result


def serialize_boc(
        roots,
        has_idx: bool = False,
        has_crc32c: bool = False,
        has_cache_bits: bool = False,
        with_hashes: bool = False,
        dedup: bool = True,
        absent: Optional[Iterable[bytes]] = None
) -> bytes:
    """
    serialized_boc#b5ee9c72 has_idx:(## 1) has_crc32c:(## 1)
      has_cache_bits:(## 1) flags:(## 2) { flags = 0 }
      size:(## 3) { size <= 4 }
      off_bytes:(## 8) { off_bytes <= 8 }
      cells:(##(size * 8))
      roots:(##(size * 8)) { roots >= 1 }
      absent:(##(size * 8)) { roots + absent <= cells }
      tot_cells_size:(##(off_bytes * 8))
      root_list:(roots * ##(size * 8))
      index:has_idx?(cells * ##(off_bytes * 8))
      cell_data:(tot_cells_size * [ uint8 ])
      crc32c:has_crc32c?uint32
      = BagOfCells;

    :param roots: root cell or list of root cells
    :param absent: hashes of cells to store as absent (hashes only, no data)
    :return: serialized bag of cells
    """
    if isinstance(roots, Cell):
        roots = [roots]
    roots = list(roots)
    if not roots:
        raise FormatError('serialize_boc error: at least one root is required')
    if has_cache_bits and not has_idx:
        raise FormatError('serialize_boc error: cache bits require an index')
    absent = frozenset(absent or ())

    cells = order_cells(roots, absent, dedup)
    indexes = dict()
    for i, cell in enumerate(cells):
        indexes[cell.hash if dedup else id(cell)] = i
    cells_num = len(cells)
    ref_size = int_size(cells_num)
    if ref_size > 4:
        raise FormatError(f'serialize_boc error: too many cells: {cells_num}')

    payload = b''
    offsets = list()
    absent_num = 0
    for cell in cells:
        is_absent = cell.hash in absent
        if is_absent:
            absent_num += 1
        payload += serialize_cell(cell, indexes, ref_size, with_hashes, is_absent, dedup)
        offsets.append(len(payload))
    off_bytes = int_size(len(payload) * 2 if has_cache_bits else len(payload))

    result = bytes.fromhex(BOC_GENERIC)
    result += bytes([build_boc_flags(has_idx, has_crc32c, has_cache_bits, ref_size), off_bytes])
    result += cells_num.to_bytes(ref_size, byteorder='big')
    result += len(roots).to_bytes(ref_size, byteorder='big')
    result += absent_num.to_bytes(ref_size, byteorder='big')
    result += len(payload).to_bytes(off_bytes, byteorder='big')
    for root in roots:
        result += indexes[root.hash if dedup else id(root)].to_bytes(ref_size, byteorder='big')
    if has_idx:
        for offset in offsets:
            if has_cache_bits:
                offset *= 2
            result += offset.to_bytes(off_bytes, byteorder='big')
    result += payload
    if has_crc32c:
        result += crc32c(result)
    logger.debug(f'serialize_boc: {cells_num} cells, {len(roots)} roots, {absent_num} absent, {len(result)} bytes')
    return result


class BocHeader(NamedTuple):
    has_idx: bool
    has_crc32c: bool
    has_cache_bits: bool
    ref_size: int
    off_bytes: int
    cells_num: int
    roots_num: int
    absent_num: int
    tot_cells_size: int
    root_list: List[int]
    index: Optional[List[int]]
    data_offset: int


class CellRecord(NamedTuple):
    ref_count: int
    exotic: bool
    level_mask: int
    data: bytes
    bits_len: int
    ref_ids: List[int]
    hashes: List[bytes]
    depths: List[int]
    end: int


def read_int(data: bytes, pos: int, size: int) -> Tuple[int, int]:
    if pos + size > len(data):
        raise FormatError('deserialize_boc error: unexpected end of data')
    return int.from_bytes(data[pos:pos + size], byteorder='big'), pos + size


def parse_header(data: bytes, settings: ParserSettings) -> BocHeader:
    if len(data) < 6:
        raise FormatError('deserialize_boc error: data is too short')
    magic = data[:4]
    if magic not in MAGICS:
        raise FormatError(f'deserialize_boc error: invalid boc magic header {magic.hex()}')

    if magic == bytes.fromhex(BOC_GENERIC):
        has_idx, has_crc32c, has_cache_bits, ref_size = parse_boc_flags(data[4])
    else:
        has_idx, has_cache_bits, ref_size = True, False, data[4]
        has_crc32c = magic == bytes.fromhex(BOC_IDX_CRC32C)
    if ref_size < 1 or ref_size > 4:
        raise FormatError(f'deserialize_boc error: invalid ref size {ref_size}')
    off_bytes = data[5]
    if off_bytes < 1 or off_bytes > 8:
        raise FormatError(f'deserialize_boc error: invalid offset size {off_bytes}')

    pos = 6
    cells_num, pos = read_int(data, pos, ref_size)
    roots_num, pos = read_int(data, pos, ref_size)
    absent_num, pos = read_int(data, pos, ref_size)
    tot_cells_size, pos = read_int(data, pos, off_bytes)
    if cells_num > settings.max_cells:
        raise FormatError(f'deserialize_boc error: too many cells: {cells_num}')
    if roots_num < 1 or roots_num + absent_num > cells_num:
        raise FormatError(f'deserialize_boc error: invalid roots ({roots_num}) or absent ({absent_num}) count')

    root_list = list()
    if magic == bytes.fromhex(BOC_GENERIC):
        for _ in range(roots_num):
            root_index, pos = read_int(data, pos, ref_size)
            if root_index >= cells_num:
                raise FormatError(f'deserialize_boc error: root index {root_index} out of scope')
            root_list.append(root_index)
    else:
        if roots_num != 1:
            raise FormatError('deserialize_boc error: legacy boc must have exactly one root')
        root_list.append(0)

    index = None
    if has_idx:
        index = list()
        prev = 0
        for _ in range(cells_num):
            offset, pos = read_int(data, pos, off_bytes)
            if has_cache_bits:
                offset //= 2
            if offset < prev or offset > tot_cells_size:
                raise FormatError('deserialize_boc error: invalid index table')
            index.append(offset)
            prev = offset

    expected_len = pos + tot_cells_size + (4 if has_crc32c else 0)
    if len(data) < expected_len:
        raise FormatError('deserialize_boc error: unexpected end of data')
    if len(data) > expected_len:
        raise FormatError('deserialize_boc error: trailing data after bag of cells')

    header = BocHeader(
        has_idx, has_crc32c, has_cache_bits, ref_size, off_bytes, cells_num,
        roots_num, absent_num, tot_cells_size, root_list, index, pos
    )
    logger.debug(f'parse_header: {header}')
    return header


def read_bits_len(payload: bytes, d2: int) -> int:
    if d2 % 2 == 0:
        return len(payload) * 8
    last = payload[-1]
    if last == 0:
        raise FormatError('deserialize_boc error: cell data has no completion tag')
    trailing = (last & -last).bit_length() - 1
    return len(payload) * 8 - trailing - 1


def parse_cell_record(data: bytes, pos: int, end: int, ref_size: int) -> CellRecord:
    if pos + 2 > end:
        raise FormatError('deserialize_boc error: failed to parse cell descriptors, corrupted data')
    ref_count, exotic, with_hashes, level_mask = parse_refs_descriptor(data[pos])
    d2 = data[pos + 1]
    pos += 2

    hashes = list()
    depths = list()
    if ref_count == ABSENT_REFS:
        if not with_hashes:
            raise FormatError('deserialize_boc error: absent cell without hashes')
        with_hashes = True
    elif ref_count > MAX_CELL_REFS:
        raise FormatError('deserialize_boc error: too many refs in cell')

    if with_hashes:
        hashes_num = LevelMask(level_mask).hash_index + 1
        if pos + hashes_num * (HASH_BYTES + DEPTH_BYTES) > end:
            raise FormatError('deserialize_boc error: failed to parse cell hashes, corrupted data')
        for i in range(hashes_num):
            hashes.append(data[pos:pos + HASH_BYTES])
            pos += HASH_BYTES
        for i in range(hashes_num):
            depths.append(int.from_bytes(data[pos:pos + DEPTH_BYTES], byteorder='big'))
            pos += DEPTH_BYTES

    if ref_count == ABSENT_REFS:
        return CellRecord(ref_count, False, level_mask, b'', 0, [], hashes, depths, pos)

    size = (d2 + 1) // 2
    if pos + size > end:
        raise FormatError('deserialize_boc error: failed to parse cell payload, corrupted data')
    payload = data[pos:pos + size]
    pos += size
    bits_len = read_bits_len(payload, d2) if size else 0

    if pos + ref_count * ref_size > end:
        raise FormatError('deserialize_boc error: failed to parse cell refs, corrupted data')
    ref_ids = list()
    for _ in range(ref_count):
        ref_ids.append(int.from_bytes(data[pos:pos + ref_size], byteorder='big'))
        pos += ref_size
    return CellRecord(ref_count, exotic, level_mask, payload, bits_len, ref_ids, hashes, depths, pos)


def absent_cell(record: CellRecord) -> Cell:
    """
    Pruned placeholder keeping the hashes of a cell that was left out of the bag
    """
    level = LevelMask(record.level_mask).level
    if level >= MAX_LEVEL:
        raise FormatError('deserialize_boc error: absent cell level is too high')
    mask = record.level_mask | (1 << level)
    data = bytes([CellType.pruned_branch, mask])
    data += b''.join(record.hashes)
    data += b''.join(d.to_bytes(DEPTH_BYTES, byteorder='big') for d in record.depths)
    return Cell(data, len(data) * 8, type_=CellType.pruned_branch)


class BagOfCells:
    """
    Random access reader: the header is parsed once, cell offsets come from
    the index table or from a single scan, cells are built on demand.

    Example:

    >> boc = BagOfCells(bytes.fromhex("b5ee9c7201010301000e000201c002010101ff0200060aaaaa"))
    >> root = boc.roots()[0]
    >> boc.loaded
    << 3
    """
    def __init__(self, data: bytes, settings: Optional[ParserSettings] = None):
        self.settings = settings or get_settings()
        self.data = bytes(data)
        self.header = parse_header(self.data, self.settings)
        if self.header.has_crc32c and self.settings.verify_crc32c:
            if crc32c(self.data[:-4]) != self.data[-4:]:
                raise FormatError('deserialize_boc error: crc32c mismatch')
        self.cells_data_end = self.header.data_offset + self.header.tot_cells_size
        self.offsets = self._calc_offsets()
        self.cache = dict()
        self.absent = set()
        self.absent_cells = set()

    @property
    def cells_num(self) -> int:
        return self.header.cells_num

    @property
    def loaded(self) -> int:
        return len(self.cache)

    def _calc_offsets(self) -> List[int]:
        start = self.header.data_offset
        if self.header.index is not None:
            return [start] + [start + offset for offset in self.header.index[:-1]]
        offsets = list()
        pos = start
        for _ in range(self.header.cells_num):
            offsets.append(pos)
            record = parse_cell_record(self.data, pos, self.cells_data_end, self.header.ref_size)
            pos = record.end
        if pos != self.cells_data_end:
            raise FormatError('deserialize_boc error: cells size does not match tot_cells_size')
        return offsets

    def read_record(self, i: int) -> CellRecord:
        if i < 0 or i >= self.header.cells_num:
            raise FormatError(f'deserialize_boc error: invalid index {i}, out of scope')
        end = self.cells_data_end
        if self.header.index is not None:
            end = self.header.data_offset + self.header.index[i]
        record = parse_cell_record(self.data, self.offsets[i], end, self.header.ref_size)
        if self.header.index is not None and record.end != end:
            raise FormatError(f'deserialize_boc error: cell {i} does not match the index table')
        for ref_id in record.ref_ids:
            if ref_id == i:
                raise FormatError('deserialize_boc error: recursive reference of cells')
            if ref_id < i:
                raise FormatError('deserialize_boc error: reference to index which is behind parent cell')
            if ref_id >= self.header.cells_num:
                raise FormatError('deserialize_boc error: invalid index, out of scope')
        return record

    def build_cell(self, i: int, record: CellRecord) -> Cell:
        if record.ref_count == ABSENT_REFS:
            self.absent.add(i)
            self.absent_cells.add(i)
            return absent_cell(record)
        refs = [self.cache[ref_id] for ref_id in record.ref_ids]
        if record.exotic:
            cell = Cell.special(record.data, record.bits_len, refs, self.settings.max_depth)
        else:
            cell = Cell(record.data, record.bits_len, refs, max_depth=self.settings.max_depth)
        if any(ref_id in self.absent for ref_id in record.ref_ids):
            # placeholders of absent cells raise the level of everything above them
            self.absent.add(i)
            return cell
        if cell.level_mask.mask != record.level_mask:
            raise FormatError(f'deserialize_boc error: cell {i} level mask mismatch')
        if record.hashes and self.settings.check_stored_hashes:
            if record.hashes != cell.stored_hashes() or record.depths != cell.stored_depths():
                raise ProofError(f'deserialize_boc error: stored hashes of cell {i} do not match')
        return cell

    def load_cell(self, i: int) -> Cell:
        if i in self.cache:
            return self.cache[i]
        stack = [(i, self.read_record(i))]
        while stack:
            index, record = stack[-1]
            pending = [ref_id for ref_id in record.ref_ids if ref_id not in self.cache]
            if pending:
                for ref_id in pending:
                    stack.append((ref_id, self.read_record(ref_id)))
                continue
            stack.pop()
            if index not in self.cache:
                self.cache[index] = self.build_cell(index, record)
        return self.cache[i]

    def load_all(self) -> List[Cell]:
        for i in reversed(range(self.header.cells_num)):
            if i not in self.cache:
                self.cache[i] = self.build_cell(i, self.read_record(i))
        if len(self.absent_cells) != self.header.absent_num:
            raise FormatError(
                f'deserialize_boc error: header declares {self.header.absent_num} absent cells, '
                f'found {len(self.absent_cells)}'
            )
        return [self.cache[i] for i in range(self.header.cells_num)]

    def roots(self) -> List[Cell]:
        return [self.load_cell(i) for i in self.header.root_list]


def deserialize_boc(
        data: bytes,
        expected_hash: Optional[bytes] = None,
        settings: Optional[ParserSettings] = None
) -> List[Cell]:
    """
    Parse a whole bag of cells
    :param data: serialized bag
    :param expected_hash: hash the first root must carry
    :return: root cells
    """
    boc = BagOfCells(data, settings)
    boc.load_all()
    roots = boc.roots()
    absent = sum(1 for cell in boc.cache.values() if cell.is_pruned and not cell.refs)
    logger.debug(f'deserialize_boc: {boc.cells_num} cells, {len(roots)} roots, {absent} pruned')
    if expected_hash is not None:
        root = roots[0]
        if expected_hash not in (root.hash, root.get_hash(0)):
            raise ProofError(f'deserialize_boc error: root hash {root.hash_hex} does not match {expected_hash.hex()}')
    return roots
