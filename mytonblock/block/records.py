from enum import IntEnum
from typing import Any
from typing import Dict
from typing import List
from typing import Optional

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field


class ProcessingStatus(IntEnum):
    unknown = 0
    proposed = 1
    finalized = 2
    refused = 3
    preliminary = 4


class Record(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CurrencyCollection(Record):
    grams: int = 0
    other: Dict[int, int] = Field(default_factory=dict)


class BlockRef(Record):
    end_lt: int
    seq_no: int
    root_hash: str
    file_hash: str


class ProcessingInfo(Record):
    status: ProcessingStatus = ProcessingStatus.unknown
    producer: str = 'unknown'
    complete: bool = True
    pruned: List[str] = Field(default_factory=list)
    errors: int = 0
    mc_seq_no: Optional[int] = None


class BlockHeader(Record):
    id_: str = Field(alias='id')
    global_id: Optional[int] = None
    version: Optional[int] = None
    after_merge: Optional[bool] = None
    before_split: Optional[bool] = None
    after_split: Optional[bool] = None
    want_split: Optional[bool] = None
    want_merge: Optional[bool] = None
    key_block: Optional[bool] = None
    vert_seqno_incr: Optional[bool] = None
    seq_no: Optional[int] = None
    vert_seq_no: Optional[int] = None
    gen_utime: Optional[int] = None
    start_lt: Optional[int] = None
    end_lt: Optional[int] = None
    gen_validator_list_hash_short: Optional[int] = None
    gen_catchain_seqno: Optional[int] = None
    min_ref_mc_seqno: Optional[int] = None
    prev_key_block_seqno: Optional[int] = None
    workchain_id: Optional[int] = None
    shard: Optional[str] = None
    gen_software_version: Optional[int] = None
    gen_software_capabilities: Optional[int] = None
    master_ref: Optional[BlockRef] = None
    prev_ref: Optional[BlockRef] = None
    prev_alt_ref: Optional[BlockRef] = None
    prev_vert_ref: Optional[BlockRef] = None
    value_flow: Optional[Dict[str, CurrencyCollection]] = None
    old_hash: Optional[str] = None
    new_hash: Optional[str] = None
    old_depth: Optional[int] = None
    new_depth: Optional[int] = None
    rand_seed: Optional[str] = None
    created_by: Optional[str] = None
    tr_count: int = 0
    min_shard_gen_utime: Optional[int] = None
    max_shard_gen_utime: Optional[int] = None
    config_addr: Optional[str] = None
    prev_blk_signatures: List[Dict[str, str]] = Field(default_factory=list)
    recover_create_msg: Optional[Dict[str, Any]] = None
    mint_msg: Optional[Dict[str, Any]] = None
    stub: bool = False


class ShardDescr(Record):
    workchain_id: int
    shard: str
    seq_no: Optional[int] = None
    reg_mc_seqno: Optional[int] = None
    start_lt: Optional[int] = None
    end_lt: Optional[int] = None
    root_hash: Optional[str] = None
    file_hash: Optional[str] = None
    before_split: Optional[bool] = None
    before_merge: Optional[bool] = None
    want_split: Optional[bool] = None
    want_merge: Optional[bool] = None
    nx_cc_updated: Optional[bool] = None
    flags: Optional[int] = None
    next_catchain_seqno: Optional[int] = None
    next_validator_shard: Optional[str] = None
    min_ref_mc_seqno: Optional[int] = None
    gen_utime: Optional[int] = None
    split_utime: Optional[int] = None
    split_interval: Optional[int] = None
    merge_utime: Optional[int] = None
    merge_interval: Optional[int] = None
    fees_collected: Optional[CurrencyCollection] = None
    funds_created: Optional[CurrencyCollection] = None
    fees: Optional[CurrencyCollection] = None
    create: Optional[CurrencyCollection] = None
    hash: Optional[str] = None
    stub: bool = False
    error: Optional[str] = None


class Account(Record):
    id_: str = Field(alias='id')
    workchain_id: int
    acc_type: Optional[int] = None
    acc_type_name: Optional[str] = None
    balance: Optional[CurrencyCollection] = None
    last_paid: Optional[int] = None
    due_payment: Optional[int] = None
    last_trans_lt: Optional[int] = None
    last_trans_hash: Optional[str] = None
    split_depth: Optional[int] = None
    tick: Optional[bool] = None
    tock: Optional[bool] = None
    code_hash: Optional[str] = None
    data_hash: Optional[str] = None
    library_hash: Optional[str] = None
    state_hash: Optional[str] = None
    old_hash: Optional[str] = None
    new_hash: Optional[str] = None
    tr_count: int = 0
    hash: Optional[str] = None
    stub: bool = False
    error: Optional[str] = None


class Transaction(Record):
    id_: str = Field(alias='id')
    block_id: Optional[str] = None
    status: ProcessingStatus = ProcessingStatus.unknown
    account_addr: Optional[str] = None
    workchain_id: Optional[int] = None
    lt: Optional[int] = None
    prev_trans_hash: Optional[str] = None
    prev_trans_lt: Optional[int] = None
    now: Optional[int] = None
    outmsg_cnt: Optional[int] = None
    orig_status: Optional[int] = None
    orig_status_name: Optional[str] = None
    end_status: Optional[int] = None
    end_status_name: Optional[str] = None
    in_msg: Optional[str] = None
    out_msgs: List[str] = Field(default_factory=list)
    total_fees: Optional[CurrencyCollection] = None
    old_hash: Optional[str] = None
    new_hash: Optional[str] = None
    tr_type: Optional[int] = None
    tr_type_name: Optional[str] = None
    credit_first: Optional[bool] = None
    aborted: Optional[bool] = None
    destroyed: Optional[bool] = None
    installed: Optional[bool] = None
    prepare_transaction: Optional[str] = None
    split_info: Optional[Dict[str, Any]] = None
    storage: Optional[Dict[str, Any]] = None
    credit: Optional[Dict[str, Any]] = None
    compute: Optional[Dict[str, Any]] = None
    action: Optional[Dict[str, Any]] = None
    bounce: Optional[Dict[str, Any]] = None
    stub: bool = False
    error: Optional[str] = None


class Message(Record):
    id_: str = Field(alias='id')
    block_id: Optional[str] = None
    status: ProcessingStatus = ProcessingStatus.unknown
    src_transaction_id: Optional[str] = None
    dst_transaction_id: Optional[str] = None
    msg_type: Optional[int] = None
    msg_type_name: Optional[str] = None
    src: Optional[str] = None
    src_workchain_id: Optional[int] = None
    dst: Optional[str] = None
    dst_workchain_id: Optional[int] = None
    value: Optional[CurrencyCollection] = None
    ihr_disabled: Optional[bool] = None
    ihr_fee: Optional[int] = None
    fwd_fee: Optional[int] = None
    import_fee: Optional[int] = None
    bounce: Optional[bool] = None
    bounced: Optional[bool] = None
    created_lt: Optional[int] = None
    created_at: Optional[int] = None
    split_depth: Optional[int] = None
    tick: Optional[bool] = None
    tock: Optional[bool] = None
    code_hash: Optional[str] = None
    data_hash: Optional[str] = None
    library_hash: Optional[str] = None
    body_hash: Optional[str] = None
    in_msg_type: Optional[int] = None
    in_msg_type_name: Optional[str] = None
    out_msg_type: Optional[int] = None
    out_msg_type_name: Optional[str] = None
    in_msg_fee: Optional[int] = None
    fees_collected: Optional[int] = None
    value_imported: Optional[CurrencyCollection] = None
    value_exported: Optional[CurrencyCollection] = None
    in_envelope: Optional[Dict[str, Any]] = None
    out_envelope: Optional[Dict[str, Any]] = None
    import_block_lt: Optional[int] = None
    stub: bool = False
    error: Optional[str] = None


class ConfigParam(Record):
    number: int
    value: Optional[Any] = None
    boc: Optional[str] = None
    hash: Optional[str] = None
    error: Optional[str] = None


class ParsedBlock:
    """
    Everything one parse produced. Records are pydantic models and keep only
    scalars and hex hashes, never cells.
    """
    def __init__(self, header: BlockHeader, info: ProcessingInfo):
        self.header = header
        self.info = info
        self.shards: List[ShardDescr] = list()
        self.accounts: List[Account] = list()
        self.transactions: List[Transaction] = list()
        self.messages: List[Message] = list()
        self.config: List[ConfigParam] = list()
        self.in_msg_descr: List[Dict[str, Any]] = list()
        self.out_msg_descr: List[Dict[str, Any]] = list()
        self.errors: list = list()

    def get_config(self, number: int) -> Optional[ConfigParam]:
        for param in self.config:
            if param.number == number:
                return param
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'block': self.header.model_dump(by_alias=True),
            'info': self.info.model_dump(by_alias=True),
            'shards': [item.model_dump(by_alias=True) for item in self.shards],
            'accounts': [item.model_dump(by_alias=True) for item in self.accounts],
            'transactions': [item.model_dump(by_alias=True) for item in self.transactions],
            'messages': [item.model_dump(by_alias=True) for item in self.messages],
            'config': [item.model_dump(by_alias=True) for item in self.config],
            'in_msg_descr': self.in_msg_descr,
            'out_msg_descr': self.out_msg_descr,
            'errors': [str(error) for error in self.errors],
        }

    def __str__(self):
        return (
            f'<ParsedBlock {self.header.id_}: {len(self.accounts)} accounts, '
            f'{len(self.transactions)} transactions, {len(self.messages)} messages>'
        )
