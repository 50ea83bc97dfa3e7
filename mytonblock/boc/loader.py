import logging
from typing import Dict
from typing import Optional

from .boc import BagOfCells
from .cell import Cell
from ..errors import FormatError
from ..errors import ProofError

logger = logging.getLogger(__name__)


class CellLoader:
    """
    Source of cells addressed by hash. Implementations may block;
    `None` means the cell is not known to the loader.
    """
    def load(self, cell_hash: bytes) -> Optional[Cell]:
        raise NotImplementedError()


class CellArena(CellLoader):
    """
    In-memory arena of cells keyed by representation hash and by level 0 hash,
    so a pruned stub (which only knows lower level hashes) can be grafted back.
    Insert-if-absent only, existing entries are never replaced.
    """
    def __init__(self):
        self.cells: Dict[bytes, Cell] = dict()

    def add(self, cell: Cell):
        if cell.is_pruned:
            return
        self.cells.setdefault(cell.hash, cell)
        self.cells.setdefault(cell.get_hash(0), cell)

    def add_tree(self, root: Cell) -> int:
        """
        Add every non pruned cell reachable from root
        :return: number of cells the arena grew by
        """
        size = len(self.cells)
        stack = [root]
        seen = set()
        while stack:
            cell = stack.pop()
            if cell.hash in seen:
                continue
            seen.add(cell.hash)
            self.add(cell)
            stack.extend(cell.refs)
        return len(self.cells) - size

    def load(self, cell_hash: bytes) -> Optional[Cell]:
        return self.cells.get(cell_hash)

    def __contains__(self, cell_hash: bytes) -> bool:
        return cell_hash in self.cells

    def __len__(self):
        return len(self.cells)


class BocCellLoader(CellLoader):
    """
    Loader over a bag of cells, cells are built the first time they are asked for
    """
    def __init__(self, boc: BagOfCells):
        self.boc = boc
        self.arena = CellArena()
        self.next_index = boc.cells_num - 1

    def load(self, cell_hash: bytes) -> Optional[Cell]:
        cell = self.arena.load(cell_hash)
        while cell is None and self.next_index >= 0:
            self.arena.add(self.boc.load_cell(self.next_index))
            self.next_index -= 1
            cell = self.arena.load(cell_hash)
        return cell


def resolve(cell: Cell, loader: CellLoader) -> Cell:
    """
    Replace a pruned stub by the full cell the loader knows
    """
    if not cell.is_pruned:
        return cell
    cell_hash = cell.get_hash(0)
    result = loader.load(cell_hash)
    if result is None:
        raise FormatError(f'resolve error: cell {cell_hash.hex()} not found')
    if result.get_hash(0) != cell_hash:
        raise ProofError(f'resolve error: loaded cell {result.hash_hex} does not match {cell_hash.hex()}')
    logger.debug(f'resolve: {cell_hash.hex()} grafted')
    return result
