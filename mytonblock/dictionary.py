"""
Hashmap (TON dictionary) reader and builder

hm_edge#_ {n:#} {X:Type} {l:#} {m:#} label:(HmLabel ~l n)
          {n = (~m) + l} node:(HashmapNode m X) = Hashmap n X;
hmn_leaf#_ {X:Type} value:X = HashmapNode 0 X;
hmn_fork#_ {n:#} {X:Type} left:^(Hashmap n X)
           right:^(Hashmap n X) = HashmapNode (n + 1) X;

hml_short$0 {m:#} {n:#} len:(Unary ~n) {n <= m} s:(n * Bit) = HmLabel ~n m;
hml_long$10 {m:#} n:(#<= m) s:(n * Bit) = HmLabel ~n m;
hml_same$11 {m:#} v:Bit n:(#<= m) = HmLabel ~n m;
"""

import logging
from typing import Callable
from typing import Dict
from typing import Iterator
from typing import List
from typing import Optional
from typing import Tuple
from typing import Union

from .boc.cell import Cell
from .boc.slice import Builder
from .boc.slice import Slice
from .errors import FormatError
from .errors import IncompleteDataError
from .errors import SchemaError

logger = logging.getLogger(__name__)

ExtraReader = Callable[[Slice], object]


class DictWalk:
    """
    State of one dictionary traversal: pruned forks met on the way are
    collected here instead of aborting the walk, unless `full` is set
    """
    def __init__(self, full: bool = False):
        self.full = full
        self.pruned: List[bytes] = list()

    def check(self, cell: Cell) -> bool:
        """
        :return: False for a pruned cell which must be skipped
        """
        if not cell.is_pruned:
            return True
        cell_hash = cell.get_hash(0)
        if self.full:
            raise IncompleteDataError(f'iter_dict error: dictionary branch {cell_hash.hex()} is pruned', cell_hash)
        logger.warning(f'iter_dict: skipped pruned branch {cell_hash.hex()}')
        self.pruned.append(cell_hash)
        return False


def read_unary(slice_: Slice) -> int:
    n = 0
    while slice_.read_bit() == 1:
        n += 1
    return n


def read_label(slice_: Slice, m: int) -> str:
    """
    :param m: maximal label length
    :return: label bits
    """
    if slice_.read_bit() == 0:
        # hml_short
        n = read_unary(slice_)
        if n > m:
            raise FormatError(f'HmLabel error: label length {n} exceeds remaining key length {m}')
        return slice_.read_bits(n)
    if slice_.read_bit() == 0:
        # hml_long
        n = slice_.read_uint(m.bit_length())
        if n > m:
            raise FormatError(f'HmLabel error: label length {n} exceeds remaining key length {m}')
        return slice_.read_bits(n)
    # hml_same
    bit = str(slice_.read_bit())
    n = slice_.read_uint(m.bit_length())
    if n > m:
        raise FormatError(f'HmLabel error: label length {n} exceeds remaining key length {m}')
    return bit * n


def as_slice(root: Union[Cell, Slice]) -> Slice:
    if isinstance(root, Slice):
        return root
    return root.begin_parse()


def iter_dict(
        root: Union[Cell, Slice, None],
        key_len: int,
        extra: Optional[ExtraReader] = None,
        walk: Optional[DictWalk] = None
) -> Iterator[Tuple[int, Slice]]:
    """
    Lazy in-order traversal of a Hashmap / HashmapAug
    :param root: root cell, or a slice positioned at the root edge for inline dictionaries
    :param key_len: key length in bits
    :param extra: reader of the augmentation of HashmapAug nodes
    :param walk: collects pruned branches
    :return: (key, value slice) pairs in ascending key order
    """
    if root is None:
        return
    if walk is None:
        walk = DictWalk()
    if isinstance(root, Cell) and not walk.check(root):
        return

    stack = [(as_slice(root), '', key_len)]
    while stack:
        slice_, prefix, m = stack.pop()
        try:
            label = read_label(slice_, m)
            prefix += label
            m -= len(label)
            if m == 0:
                # hmn_leaf
                if extra is not None:
                    extra(slice_)
                key = int(prefix, 2) if prefix else 0
                yield key, slice_
                continue
            # hmn_fork
            if slice_.remaining_refs < 2:
                raise FormatError(f'HashmapNode error: fork at {prefix or "root"} must have two refs')
            left = slice_.read_ref()
            right = slice_.read_ref()
        except SchemaError as ex:
            raise FormatError(f'iter_dict error: {ex}')
        if walk.check(right):
            stack.append((right.begin_parse(), prefix + '1', m - 1))
        if walk.check(left):
            stack.append((left.begin_parse(), prefix + '0', m - 1))


def lookup(
        root: Union[Cell, Slice, None],
        key: int,
        key_len: int,
        extra: Optional[ExtraReader] = None
) -> Optional[Slice]:
    """
    :return: value slice stored under `key` or None
    """
    if root is None:
        return None
    if isinstance(root, Cell) and root.is_pruned:
        raise IncompleteDataError('lookup error: dictionary root is pruned', root.get_hash(0))
    if key < 0:
        raise FormatError(f'lookup error: key {key} is negative')
    key_bits = bin(key)[2:].zfill(key_len) if key_len else ''
    if len(key_bits) > key_len:
        raise FormatError(f'lookup error: key {key} does not fit {key_len} bits')

    slice_ = as_slice(root).copy()
    pos = 0
    m = key_len
    try:
        while True:
            label = read_label(slice_, m)
            if key_bits[pos:pos + len(label)] != label:
                return None
            pos += len(label)
            m -= len(label)
            if m == 0:
                if extra is not None:
                    extra(slice_)
                return slice_
            if slice_.remaining_refs < 2:
                raise FormatError('HashmapNode error: fork must have two refs')
            next_cell = slice_.refs[slice_.refs_pos + int(key_bits[pos])]
            if next_cell.is_pruned:
                raise IncompleteDataError('lookup error: dictionary branch is pruned', next_cell.get_hash(0))
            slice_ = next_cell.begin_parse()
            pos += 1
            m -= 1
    except SchemaError as ex:
        raise FormatError(f'lookup error: {ex}')


def load_dict_e(slice_: Slice) -> Optional[Cell]:
    """
    hme_empty$0 {n:#} {X:Type} = HashmapE n X;
    hme_root$1 {n:#} {X:Type} root:^(Hashmap n X) = HashmapE n X;
    """
    return slice_.read_maybe_ref()


def read_dict(
        root: Union[Cell, Slice, None],
        key_len: int,
        read_value: Callable[[Slice], object],
        extra: Optional[ExtraReader] = None,
        walk: Optional[DictWalk] = None
) -> Dict[int, object]:
    result = dict()
    for key, value in iter_dict(root, key_len, extra, walk):
        result[key] = read_value(value)
    return result


def store_label(builder: Builder, label: str, m: int):
    k = m.bit_length()
    n = len(label)
    variants = [(2 * n + 2, 'short'), (2 + k + n, 'long')]
    if n > 0 and label in ('0' * n, '1' * n):
        variants.append((3 + k, 'same'))
    _, kind = min(variants, key=lambda item: item[0])
    if kind == 'short':
        builder.store_bit(0)
        builder.store_bits('1' * n + '0')
        builder.store_bits(label)
    elif kind == 'long':
        builder.store_bits('10')
        builder.store_uint(n, k)
        builder.store_bits(label)
    else:
        builder.store_bits('11')
        builder.store_bits(label[0])
        builder.store_uint(n, k)


def common_prefix(keys: List[str]) -> str:
    first = min(keys)
    last = max(keys)
    i = 0
    while i < len(first) and first[i] == last[i]:
        i += 1
    return first[:i]


def serialize_dict(
        items: Dict[int, object],
        key_len: int,
        store_value: Callable[[Builder, object], None],
        aug: Optional[Callable[[Builder, List[object]], None]] = None
) -> Optional[Cell]:
    """
    Build a Hashmap with the shortest label at every edge
    :param store_value: writes one value into a builder
    :param aug: writes the augmentation of a node from the values below it
    :return: root cell, None for an empty dictionary
    """
    if not items:
        return None
    entries = list()
    for key, value in items.items():
        if key < 0 or key >= 1 << key_len:
            raise FormatError(f'serialize_dict error: key {key} does not fit {key_len} bits')
        entries.append((bin(key)[2:].zfill(key_len) if key_len else '', value))
    entries.sort(key=lambda item: item[0])
    return build_edge(entries, key_len, store_value, aug)


def build_edge(entries, m: int, store_value, aug) -> Cell:
    label = common_prefix([key for key, _ in entries])
    builder = Builder()
    store_label(builder, label, m)
    m -= len(label)
    if m == 0:
        value = entries[0][1]
        if aug is not None:
            aug(builder, [value])
        store_value(builder, value)
        return builder.end_cell()
    cut = len(label) + 1
    left = [(key[cut:], value) for key, value in entries if key[cut - 1] == '0']
    right = [(key[cut:], value) for key, value in entries if key[cut - 1] == '1']
    builder.store_ref(build_edge(left, m - 1, store_value, aug))
    builder.store_ref(build_edge(right, m - 1, store_value, aug))
    if aug is not None:
        aug(builder, [value for _, value in entries])
    return builder.end_cell()
