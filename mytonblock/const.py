BOC_GENERIC = 'b5ee9c72'
BOC_IDX = '68ff65f3'
BOC_IDX_CRC32C = 'acc3a728'

MAX_CELL_BITS = 1023
MAX_CELL_REFS = 4
MAX_LEVEL = 3
MAX_DEPTH = 1024

HASH_BYTES = 32
DEPTH_BYTES = 2
ABSENT_REFS = 7

# exotic cell layouts, in bits
PRUNED_HEADER_BITS = 16
LIBRARY_BITS = 8 + 256
MERKLE_PROOF_BITS = 8 + 256 + 16
MERKLE_UPDATE_BITS = 8 + 2 * (256 + 16)

# TL-B constructor tags
TAG_BLOCK = 0x11ef55aa
TAG_BLOCK_INFO = 0x9bc7a987
TAG_BLOCK_EXTRA = 0x4a33f6fd
TAG_MC_BLOCK_EXTRA = 0xcca5
TAG_MC_STATE_EXTRA = 0xcc26
TAG_VALUE_FLOW = 0xb8e48dfb
TAG_VALUE_FLOW_V2 = 0x3ebf98b7
TAG_SHARD_STATE = 0x9023afe2
TAG_SPLIT_STATE = 0x5f327da5
TAG_HASH_UPDATE = 0x72
TAG_ACCOUNT_BLOCK = 0x5
TAG_TRANSACTION = 0b0111
TAG_GLOBAL_VERSION = 0xc4
TAG_SHARD_DESCR = 0xb
TAG_SHARD_DESCR_NEW = 0xa
TAG_MSG_ENVELOPE = 0x4
TAG_MSG_ENVELOPE_V2 = 0x5
TAG_ED25519_SIGNATURE = 0x5
TAG_CHAINED_SIGNATURE = 0xf

ACCOUNT_STATUS = {
    0b00: 'uninit',
    0b01: 'frozen',
    0b10: 'active',
    0b11: 'nonexist',
}

MSG_TYPE_NAMES = {
    0: 'internal',
    1: 'extIn',
    2: 'extOut',
}

# InMsg and OutMsg constructors by prefix
IN_MSG_TYPES = {
    '000': 0,
    '010': 1,
    '011': 2,
    '100': 3,
    '101': 4,
    '110': 5,
    '111': 6,
    '00100': 7,
    '00101': 8,
}

IN_MSG_TYPE_NAMES = {
    0: 'external',
    1: 'ihr',
    2: 'immediately',
    3: 'final',
    4: 'transit',
    5: 'discardedFinal',
    6: 'discardedTransit',
    7: 'deferredFinal',
    8: 'deferredTransit',
}

OUT_MSG_TYPES = {
    '000': 0,
    '010': 1,
    '001': 2,
    '011': 3,
    '100': 4,
    '1100': 5,
    '111': 6,
    '1101': 7,
    '10100': 8,
    '10101': 9,
}

OUT_MSG_TYPE_NAMES = {
    0: 'external',
    1: 'immediately',
    2: 'outMsgNew',
    3: 'transit',
    4: 'dequeueImmediately',
    5: 'dequeue',
    6: 'transitRequired',
    7: 'dequeueShort',
    8: 'newDefer',
    9: 'deferredTransit',
}

SHARD_FULL = 1 << 63
