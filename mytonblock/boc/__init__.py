from .cell import Cell
from .cell import CellType
from .hasher import LevelMask
from .slice import Builder
from .slice import Slice
from .boc import BagOfCells
from .boc import deserialize_boc
from .boc import serialize_boc
from .loader import BocCellLoader
from .loader import CellArena
from .loader import CellLoader
from .loader import resolve

"""
BOC serializer/deserializer

Example:

>> from mytonblock.boc import deserialize_boc, serialize_boc

>> BOC = bytes.fromhex("b5ee9c7201010301000e000201c002010101ff0200060aaaaa")
>> root_cell = deserialize_boc(BOC)[0]

>> serialized = serialize_boc(root_cell)
>> print(serialized.hex())
<< b5ee9c7201010301000e000201c002010101ff0200060aaaaa
"""
