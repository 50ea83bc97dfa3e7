from .boc import Cell
from .boc import deserialize_boc
from .boc import serialize_boc
from .block import BlockParser
from .errors import FormatError
from .errors import IncompleteDataError
from .errors import MytonblockError
from .errors import ProofError
from .errors import SchemaError
from .settings import ParserSettings
