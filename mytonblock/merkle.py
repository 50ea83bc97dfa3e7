import logging
from typing import Callable
from typing import Dict
from typing import Iterable
from typing import Optional
from typing import Set
from typing import Tuple

from .boc.cell import Cell
from .boc.cell import CellType
from .boc.loader import CellArena
from .boc.loader import CellLoader
from .const import DEPTH_BYTES
from .const import HASH_BYTES
from .errors import FormatError
from .errors import ProofError

logger = logging.getLogger(__name__)


def rebuild(root: Cell, replace: Callable[[Cell, int], Optional[Cell]], merkle_depth: int = 0) -> Cell:
    """
    Post-order copy of a tree where `replace(cell, merkle_depth)` may substitute
    any cell. Cells whose refs did not change are reused as they are.
    :param replace: returns the substitute, or None to keep walking into the cell
    :param merkle_depth: number of merkle cells above root
    """
    memo: Dict[Tuple[bytes, int], Cell] = dict()
    stack = [(root, merkle_depth, False)]
    while stack:
        cell, depth, expanded = stack.pop()
        key = (cell.hash, depth)
        if key in memo:
            continue
        child_depth = depth + 1 if cell.is_merkle else depth
        if not expanded:
            result = replace(cell, depth)
            if result is not None:
                memo[key] = result
                continue
            stack.append((cell, depth, True))
            for ref in cell.refs:
                if (ref.hash, child_depth) not in memo:
                    stack.append((ref, child_depth, False))
            continue
        refs = [memo[(ref.hash, child_depth)] for ref in cell.refs]
        if all(new is old for new, old in zip(refs, cell.refs)):
            memo[key] = cell
        else:
            memo[key] = Cell(cell.data, cell.bits_len, refs, cell.type_)
    return memo[(root.hash, merkle_depth)]


def collect_hashes(root: Cell) -> Set[bytes]:
    result = set()
    stack = [root]
    while stack:
        cell = stack.pop()
        if cell.hash in result:
            continue
        result.add(cell.hash)
        stack.extend(cell.refs)
    return result


def disclosed_paths(root: Cell, disclosed: Set[bytes]) -> Set[bytes]:
    """
    Hashes of the disclosed cells and of all their ancestors
    """
    contains: Dict[bytes, bool] = dict()
    stack = [(root, False)]
    while stack:
        cell, expanded = stack.pop()
        if cell.hash in contains:
            continue
        if not expanded:
            stack.append((cell, True))
            stack.extend((ref, False) for ref in cell.refs if ref.hash not in contains)
            continue
        found = cell.hash in disclosed
        found = found or any(contains[ref.hash] for ref in cell.refs)
        contains[cell.hash] = found
    return set(key for key, value in contains.items() if value)


def merkle_proof_cell(virtual_root: Cell) -> Cell:
    data = bytes([CellType.merkle_proof])
    data += virtual_root.get_hash(0)
    data += virtual_root.get_depth(0).to_bytes(DEPTH_BYTES, byteorder='big')
    return Cell(data, len(data) * 8, [virtual_root], CellType.merkle_proof)


def create_proof(root: Cell, disclosed: Iterable[bytes]) -> Cell:
    """
    Merkle proof for `root` that discloses the given cells together with the
    path leading to each of them. Every other branch collapses to a single
    pruned stub.
    :param disclosed: representation hashes of the cells to disclose
    :return: merkle proof cell
    """
    disclosed = set(disclosed)
    keep = disclosed_paths(root, disclosed)
    keep.add(root.hash)

    def replace(cell: Cell, depth: int) -> Optional[Cell]:
        if cell.is_pruned:
            return cell
        if cell.hash in keep:
            return None
        return Cell.pruned(cell, depth)

    virtual_root = rebuild(root, replace)
    logger.debug(f'create_proof: root {root.hash_hex}, {len(disclosed)} disclosed, {len(keep)} kept')
    return merkle_proof_cell(virtual_root)


def proof_root(cell: Cell) -> Cell:
    """
    Virtual root wrapped by a merkle proof
    """
    if cell.type_ != CellType.merkle_proof:
        raise ProofError(f'proof_root error: expected merkle proof, got {cell.type_.name}')
    return cell.refs[0]


def verify_proof(proof: Cell, expected_hash: bytes) -> Cell:
    """
    Check a merkle proof against the hash of the full tree it was made of
    :param proof: merkle proof cell
    :param expected_hash: level 0 hash of the original root
    :return: virtual root of the proof
    """
    virtual_root = proof_root(proof)
    stored_hash = proof.data[1:1 + HASH_BYTES]
    if stored_hash != expected_hash:
        raise ProofError(f'verify_proof error: proof is for {stored_hash.hex()}, expected {expected_hash.hex()}')
    if virtual_root.get_hash(0) != expected_hash:
        raise ProofError('verify_proof error: virtual root hash mismatch')
    if proof.level_mask.mask != 0:
        raise ProofError(f'verify_proof error: inconsistent pruning levels {proof.level_mask}')
    logger.debug(f'verify_proof: {expected_hash.hex()} ok')
    return virtual_root


def create_update(old_root: Cell, new_root: Cell) -> Cell:
    """
    Merkle update from `old_root` to `new_root`: subtrees present in both
    states are pruned on both sides.
    """
    old_hashes = collect_hashes(old_root)
    new_hashes = collect_hashes(new_root)

    def pruner(root: Cell, shared: Set[bytes]):
        def replace(cell: Cell, depth: int) -> Optional[Cell]:
            if cell.is_pruned:
                return cell
            if cell is not root and cell.hash in shared:
                return Cell.pruned(cell, depth)
            return None
        return replace

    old_side = rebuild(old_root, pruner(old_root, new_hashes))
    new_side = rebuild(new_root, pruner(new_root, old_hashes))
    data = bytes([CellType.merkle_update])
    data += old_side.get_hash(0) + new_side.get_hash(0)
    data += old_side.get_depth(0).to_bytes(DEPTH_BYTES, byteorder='big')
    data += new_side.get_depth(0).to_bytes(DEPTH_BYTES, byteorder='big')
    logger.debug(f'create_update: {old_root.hash_hex} -> {new_root.hash_hex}')
    return Cell(data, len(data) * 8, [old_side, new_side], CellType.merkle_update)


def update_hashes(update: Cell) -> Tuple[bytes, bytes]:
    """
    :return: declared old and new state hashes of a merkle update
    """
    if update.type_ != CellType.merkle_update:
        raise ProofError(f'apply_update error: expected merkle update, got {update.type_.name}')
    old_hash = update.data[1:1 + HASH_BYTES]
    new_hash = update.data[1 + HASH_BYTES:1 + 2 * HASH_BYTES]
    return old_hash, new_hash


def graft(root: Cell, loader: CellLoader, merkle_depth: int = 0) -> Cell:
    """
    Replace the pruned branches of `root` by the cells the loader knows.
    Only branches pruned at the merkle depth they are found at are touched,
    stubs belonging to a nested proof or update stay as they are.
    """
    def replace(cell: Cell, depth: int) -> Optional[Cell]:
        if not cell.is_pruned:
            return None
        if not (cell.level_mask.mask >> depth) & 1:
            return cell
        cell_hash = cell.get_hash(depth)
        result = loader.load(cell_hash)
        if result is None:
            raise FormatError(f'graft error: cell {cell_hash.hex()} not found')
        if result.get_hash(depth) != cell_hash:
            raise ProofError(f'graft error: loaded cell {result.hash_hex} does not match {cell_hash.hex()}')
        return result

    return rebuild(root, replace, merkle_depth)


def apply_update(update: Cell, old_state: Cell, arena: Optional[CellArena] = None) -> Cell:
    """
    Graft the new side of a merkle update onto the old state.
    Cells the update did not touch are shared with `old_state`.
    :param arena: cells of the old state, built from `old_state` when missing
    :return: new state root
    """
    old_hash, new_hash = update_hashes(update)
    if old_state.get_hash(0) != old_hash:
        raise ProofError(f'apply_update error: old state {old_state.get_hash(0).hex()} does not match {old_hash.hex()}')
    if arena is None:
        arena = CellArena()
        arena.add_tree(old_state)

    new_state = graft(update.refs[1], arena)
    if new_state.get_hash(0) != new_hash:
        raise ProofError(f'apply_update error: new state {new_state.get_hash(0).hex()} does not match {new_hash.hex()}')
    logger.debug(f'apply_update: {old_hash.hex()} -> {new_hash.hex()}')
    return new_state
