from typing import Optional

from bitstring import BitArray
from bitstring import BitStream
from bitstring import ReadError

from .cell import Cell
from .cell import CellType
from ..const import MAX_CELL_BITS
from ..const import MAX_CELL_REFS
from ..errors import FormatError
from ..errors import SchemaError


class Slice:
    """
    Read cursor over the data bits and the refs of a cell.
    Reading past the end raises SchemaError: a well formed cell that does not
    fit the expected layout is a schema problem, not a format one.
    """
    def __init__(self, cell: Cell):
        self.cell = cell
        self.bits_len = cell.bits_len
        self.refs = cell.refs
        self.bit_stream = BitStream(bytes=cell.data, length=cell.bits_len)
        self.refs_pos = 0

    @property
    def remaining_bits(self) -> int:
        return self.bit_stream.len - self.bit_stream.pos

    @property
    def remaining_refs(self) -> int:
        return len(self.refs) - self.refs_pos

    def _read(self, fmt: str, read_len: int):
        if read_len > self.remaining_bits:
            raise SchemaError(f'Slice error: can not read {read_len} bits, {self.remaining_bits} left in {self.cell}')
        try:
            return self.bit_stream.read(fmt)
        except ReadError as ex:
            raise SchemaError(f'Slice error: {ex}')

    def read_uint(self, n: int) -> int:
        if n == 0:
            return 0
        return self._read(f'uint:{n}', n)

    def read_int(self, n: int) -> int:
        if n == 0:
            return 0
        return self._read(f'int:{n}', n)

    def read_bit(self) -> int:
        return self.read_uint(1)

    def read_bool(self) -> bool:
        return self.read_uint(1) == 1

    def read_bits(self, read_len: Optional[int] = None) -> str:
        if read_len is None:
            read_len = self.remaining_bits
        if read_len == 0:
            return ''
        return self._read(f'bits:{read_len}', read_len).bin

    def read_bytes(self, read_len: int) -> bytes:
        if read_len == 0:
            return b''
        return self._read(f'bytes:{read_len}', read_len * 8)

    def read_ref(self) -> Cell:
        if self.refs_pos >= len(self.refs):
            raise SchemaError(f'Slice error: no more refs in {self.cell}')
        result = self.refs[self.refs_pos]
        self.refs_pos += 1
        return result

    def read_maybe_ref(self) -> Optional[Cell]:
        if self.read_bool():
            return self.read_ref()
        return None

    def read_var_uint(self, n: int) -> int:
        """
        VarUInteger n: byte length in (n - 1).bit_length() bits, then the value
        """
        size = self.read_uint((n - 1).bit_length())
        return self.read_uint(size * 8)

    def read_coins(self) -> int:
        return self.read_var_uint(16)

    def show_bits(self, show_len: int) -> str:
        show_len = min(show_len, self.remaining_bits)
        if show_len == 0:
            return ''
        return self.bit_stream.peek(f'bits:{show_len}').bin

    def show_uint(self, n: int) -> int:
        if n > self.remaining_bits:
            raise SchemaError(f'Slice error: can not show {n} bits, {self.remaining_bits} left in {self.cell}')
        if n == 0:
            return 0
        return self.bit_stream.peek(f'uint:{n}')

    def compare_bit_prefix(self, prefix_bit: str, move_pos: bool = True) -> bool:
        if self.show_bits(len(prefix_bit)) != prefix_bit:
            return False
        if move_pos:
            self.read_bits(len(prefix_bit))
        return True

    def skip_bits(self, n: int):
        self.read_bits(n)

    def skip_refs(self, n: int = 1):
        for _ in range(n):
            self.read_ref()

    def copy(self) -> 'Slice':
        result = Slice(self.cell)
        result.bit_stream.pos = self.bit_stream.pos
        result.refs_pos = self.refs_pos
        return result

    def to_cell(self) -> Cell:
        """
        Ordinary cell made of what is left in the slice
        """
        builder = Builder()
        builder.store_bits(self.read_bits())
        while self.remaining_refs:
            builder.store_ref(self.read_ref())
        return builder.end_cell()

    def is_empty(self) -> bool:
        return self.remaining_bits == 0 and self.remaining_refs == 0

    def __str__(self):
        special_text = ''
        if self.cell.is_exotic:
            special_text = 'Special '
        return f'<{special_text}Slice {self.bit_stream.pos}/{self.bits_len}:{self.cell.data.hex()}={len(self.refs)}>'

    def __repr__(self):
        return str(self)


class Builder:
    """
    Writer counterpart of Slice, produces cells through end_cell()
    """
    def __init__(self):
        self.bit_array = BitArray()
        self.refs = list()

    @property
    def bits_len(self) -> int:
        return self.bit_array.len

    def _check_len(self, n: int):
        if self.bit_array.len + n > MAX_CELL_BITS:
            raise FormatError(f'Builder error: cell overflow, {self.bit_array.len} + {n} bits')

    def store_uint(self, value: int, n: int) -> 'Builder':
        if n == 0:
            if value:
                raise FormatError(f'Builder error: {value} does not fit 0 bits')
            return self
        self._check_len(n)
        if value < 0 or value >= 1 << n:
            raise FormatError(f'Builder error: {value} does not fit uint:{n}')
        self.bit_array.append(f'uint:{n}={value}')
        return self

    def store_int(self, value: int, n: int) -> 'Builder':
        if n == 0:
            return self
        self._check_len(n)
        if value < -(1 << (n - 1)) or value >= 1 << (n - 1):
            raise FormatError(f'Builder error: {value} does not fit int:{n}')
        self.bit_array.append(f'int:{n}={value}')
        return self

    def store_bit(self, value) -> 'Builder':
        return self.store_uint(1 if value else 0, 1)

    def store_bits(self, bits: str) -> 'Builder':
        if not bits:
            return self
        self._check_len(len(bits))
        self.bit_array.append(f'0b{bits}')
        return self

    def store_bytes(self, data: bytes) -> 'Builder':
        if not data:
            return self
        self._check_len(len(data) * 8)
        self.bit_array.append(data)
        return self

    def store_ref(self, cell: Cell) -> 'Builder':
        if len(self.refs) >= MAX_CELL_REFS:
            raise FormatError(f'Builder error: at most {MAX_CELL_REFS} refs allowed')
        self.refs.append(cell)
        return self

    def store_maybe_ref(self, cell: Optional[Cell]) -> 'Builder':
        if cell is None:
            return self.store_bit(0)
        self.store_bit(1)
        return self.store_ref(cell)

    def store_var_uint(self, value: int, n: int) -> 'Builder':
        size = (value.bit_length() + 7) // 8
        self.store_uint(size, (n - 1).bit_length())
        return self.store_uint(value, size * 8)

    def store_coins(self, value: int) -> 'Builder':
        return self.store_var_uint(value, 16)

    def store_slice(self, slice_: Slice) -> 'Builder':
        slice_ = slice_.copy()
        self.store_bits(slice_.read_bits())
        while slice_.remaining_refs:
            self.store_ref(slice_.read_ref())
        return self

    def end_cell(self, type_: CellType = CellType.ordinary) -> Cell:
        data = self.bit_array.tobytes()
        return Cell(data, self.bit_array.len, self.refs, type_)
