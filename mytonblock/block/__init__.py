from .adapters import from_emulator
from .adapters import from_external_service
from .adapters import from_full_node
from .config_params import config_param
from .config_params import decode_config
from .parser import BlockParser
from .parser import ParserInput
from .records import Account
from .records import BlockHeader
from .records import ConfigParam
from .records import Message
from .records import ParsedBlock
from .records import ProcessingInfo
from .records import ProcessingStatus
from .records import ShardDescr
from .records import Transaction
