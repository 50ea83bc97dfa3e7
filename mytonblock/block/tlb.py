"""
Readers of the TL-B types a block is made of.

Every reader takes a Slice positioned at the start of the type and returns
plain values, dicts or records. A wrong constructor tag or a short cell
raises SchemaError, a pruned cell where content is needed raises
IncompleteDataError.
"""

from typing import Any
from typing import Dict
from typing import Iterator
from typing import List
from typing import Optional
from typing import Tuple

from ..boc.cell import Cell
from ..boc.cell import CellType
from ..boc.slice import Slice
from ..const import ACCOUNT_STATUS
from ..const import DEPTH_BYTES
from ..const import HASH_BYTES
from ..const import IN_MSG_TYPES
from ..const import IN_MSG_TYPE_NAMES
from ..const import MSG_TYPE_NAMES
from ..const import OUT_MSG_TYPES
from ..const import OUT_MSG_TYPE_NAMES
from ..const import SHARD_FULL
from ..const import TAG_ACCOUNT_BLOCK
from ..const import TAG_BLOCK
from ..const import TAG_BLOCK_EXTRA
from ..const import TAG_BLOCK_INFO
from ..const import TAG_CHAINED_SIGNATURE
from ..const import TAG_ED25519_SIGNATURE
from ..const import TAG_GLOBAL_VERSION
from ..const import TAG_HASH_UPDATE
from ..const import TAG_MC_BLOCK_EXTRA
from ..const import TAG_MC_STATE_EXTRA
from ..const import TAG_MSG_ENVELOPE
from ..const import TAG_MSG_ENVELOPE_V2
from ..const import TAG_SHARD_DESCR
from ..const import TAG_SHARD_DESCR_NEW
from ..const import TAG_SHARD_STATE
from ..const import TAG_SPLIT_STATE
from ..const import TAG_TRANSACTION
from ..const import TAG_VALUE_FLOW
from ..const import TAG_VALUE_FLOW_V2
from ..dictionary import DictWalk
from ..dictionary import iter_dict
from ..dictionary import load_dict_e
from ..errors import IncompleteDataError
from ..errors import SchemaError
from ..utils import addr_full
from ..utils import shard_hex
from .records import BlockRef
from .records import CurrencyCollection
from .records import Message
from .records import ShardDescr
from .records import Transaction


TR_TYPE_NAMES = {
    0: 'ordinary',
    1: 'storage',
    2: 'tick',
    3: 'tock',
    4: 'splitPrepare',
    5: 'splitInstall',
    6: 'mergePrepare',
    7: 'mergeInstall',
}


def open_cell(cell: Cell) -> Slice:
    if cell.is_pruned:
        cell_hash = cell.get_hash(0)
        raise IncompleteDataError(f'open_cell error: cell {cell_hash.hex()} is pruned', cell_hash)
    if cell.is_exotic:
        raise SchemaError(f'open_cell error: expected ordinary cell, got {cell.type_.name}')
    return cell.begin_parse()


def open_ref(slice_: Slice) -> Slice:
    return open_cell(slice_.read_ref())


def check_tag(slice_: Slice, bits: int, expected: int, name: str) -> int:
    tag = slice_.read_uint(bits)
    if tag != expected:
        raise SchemaError(f'{name} error: unexpected tag {tag:x}, expected {expected:x}')
    return tag


def read_hash(slice_: Slice) -> str:
    return slice_.read_bytes(HASH_BYTES).hex()


def read_maybe(slice_: Slice, reader) -> Optional[Any]:
    if slice_.read_bool():
        return reader(slice_)
    return None


def read_either_ref(slice_: Slice) -> Slice:
    """
    (Either X ^X): the value itself, or a slice of the referenced cell
    """
    if slice_.read_bool():
        return open_ref(slice_)
    return slice_


def read_currency_collection(slice_: Slice) -> CurrencyCollection:
    """
    currencies$_ grams:Grams other:ExtraCurrencyCollection = CurrencyCollection;
    extra_currencies$_ dict:(HashmapE 32 (VarUInteger 32)) = ExtraCurrencyCollection;
    """
    grams = slice_.read_coins()
    other = dict()
    root = load_dict_e(slice_)
    if root is not None:
        for key, value in iter_dict(root, 32, walk=DictWalk(full=True)):
            other[key] = value.read_var_uint(32)
    return CurrencyCollection(grams=grams, other=other)


def read_storage_used_short(slice_: Slice) -> Dict[str, int]:
    return {
        'cells': slice_.read_var_uint(7),
        'bits': slice_.read_var_uint(7),
    }


def read_shard_ident(slice_: Slice) -> Dict[str, Any]:
    """
    shard_ident$00 shard_pfx_bits:(#<= 60) workchain_id:int32 shard_prefix:uint64 = ShardIdent;
    """
    check_tag(slice_, 2, 0, 'ShardIdent')
    pfx_bits = slice_.read_uint(6)
    workchain_id = slice_.read_int(32)
    prefix = slice_.read_uint(64)
    shard = prefix | (SHARD_FULL >> pfx_bits)
    return {
        'workchain_id': workchain_id,
        'shard_pfx_bits': pfx_bits,
        'shard': shard,
    }


def read_ext_blk_ref(slice_: Slice) -> BlockRef:
    """
    ext_blk_ref$_ end_lt:uint64 seq_no:uint32 root_hash:bits256 file_hash:bits256 = ExtBlkRef;
    """
    return BlockRef(
        end_lt=slice_.read_uint(64),
        seq_no=slice_.read_uint(32),
        root_hash=read_hash(slice_),
        file_hash=read_hash(slice_),
    )


def read_blk_prev_info(slice_: Slice, after_merge: bool) -> Tuple[BlockRef, Optional[BlockRef]]:
    """
    prev_blk_info$_ prev:ExtBlkRef = BlkPrevInfo 0;
    prev_blks_info$_ prev1:^ExtBlkRef prev2:^ExtBlkRef = BlkPrevInfo 1;
    """
    if not after_merge:
        return read_ext_blk_ref(slice_), None
    prev1 = read_ext_blk_ref(open_ref(slice_))
    prev2 = read_ext_blk_ref(open_ref(slice_))
    return prev1, prev2


def read_global_version(slice_: Slice) -> Tuple[int, int]:
    """
    capabilities#c4 version:uint32 capabilities:uint64 = GlobalVersion;
    """
    check_tag(slice_, 8, TAG_GLOBAL_VERSION, 'GlobalVersion')
    return slice_.read_uint(32), slice_.read_uint(64)


def read_block_info(slice_: Slice) -> Dict[str, Any]:
    check_tag(slice_, 32, TAG_BLOCK_INFO, 'BlockInfo')
    result = dict()
    result['version'] = slice_.read_uint(32)
    not_master = slice_.read_bool()
    result['after_merge'] = slice_.read_bool()
    result['before_split'] = slice_.read_bool()
    result['after_split'] = slice_.read_bool()
    result['want_split'] = slice_.read_bool()
    result['want_merge'] = slice_.read_bool()
    result['key_block'] = slice_.read_bool()
    result['vert_seqno_incr'] = slice_.read_bool()
    flags = slice_.read_uint(8)
    if flags > 1:
        raise SchemaError(f'BlockInfo error: unknown flags {flags}')
    result['seq_no'] = slice_.read_uint(32)
    result['vert_seq_no'] = slice_.read_uint(32)
    if result['vert_seqno_incr'] and result['vert_seq_no'] == 0:
        raise SchemaError('BlockInfo error: vert_seq_no must be positive when incremented')
    shard = read_shard_ident(slice_)
    result['workchain_id'] = shard['workchain_id']
    result['shard'] = shard_hex(shard['shard'])
    result['gen_utime'] = slice_.read_uint(32)
    result['start_lt'] = slice_.read_uint(64)
    result['end_lt'] = slice_.read_uint(64)
    result['gen_validator_list_hash_short'] = slice_.read_uint(32)
    result['gen_catchain_seqno'] = slice_.read_uint(32)
    result['min_ref_mc_seqno'] = slice_.read_uint(32)
    result['prev_key_block_seqno'] = slice_.read_uint(32)
    if flags & 1:
        version, capabilities = read_global_version(slice_)
        result['gen_software_version'] = version
        result['gen_software_capabilities'] = capabilities
    if not_master:
        result['master_ref'] = read_ext_blk_ref(open_ref(slice_))
    prev_ref, prev_alt_ref = read_blk_prev_info(open_ref(slice_), result['after_merge'])
    result['prev_ref'] = prev_ref
    result['prev_alt_ref'] = prev_alt_ref
    if result['vert_seqno_incr']:
        result['prev_vert_ref'], _ = read_blk_prev_info(open_ref(slice_), False)
    return result


def read_value_flow(slice_: Slice) -> Dict[str, CurrencyCollection]:
    """
    value_flow#b8e48dfb ^[ from_prev_blk to_next_blk imported exported ]
        fees_collected ^[ fees_imported recovered created minted ] = ValueFlow;
    value_flow_v2#3ebf98b7 adds burned:CurrencyCollection after fees_collected
    """
    tag = slice_.read_uint(32)
    if tag not in (TAG_VALUE_FLOW, TAG_VALUE_FLOW_V2):
        raise SchemaError(f'ValueFlow error: unexpected tag {tag:x}')
    result = dict()
    first = open_ref(slice_)
    for name in ('from_prev_blk', 'to_next_blk', 'imported', 'exported'):
        result[name] = read_currency_collection(first)
    result['fees_collected'] = read_currency_collection(slice_)
    if tag == TAG_VALUE_FLOW_V2:
        result['burned'] = read_currency_collection(slice_)
    second = open_ref(slice_)
    for name in ('fees_imported', 'recovered', 'created', 'minted'):
        result[name] = read_currency_collection(second)
    return result


def read_merkle_update(cell: Cell) -> Dict[str, Any]:
    """
    Old and new state hashes and depths of an exotic MerkleUpdate cell
    """
    if cell.is_pruned:
        raise IncompleteDataError('MerkleUpdate error: state update is pruned', cell.get_hash(0))
    if cell.type_ != CellType.merkle_update:
        raise SchemaError(f'MerkleUpdate error: expected merkle update cell, got {cell.type_.name}')
    depth_pos = 1 + 2 * HASH_BYTES
    return {
        'old_hash': cell.data[1:1 + HASH_BYTES].hex(),
        'new_hash': cell.data[1 + HASH_BYTES:depth_pos].hex(),
        'old_depth': int.from_bytes(cell.data[depth_pos:depth_pos + DEPTH_BYTES], byteorder='big'),
        'new_depth': int.from_bytes(cell.data[depth_pos + DEPTH_BYTES:], byteorder='big'),
    }


def read_hash_update(slice_: Slice) -> Tuple[str, str]:
    """
    update_hashes#72 {X:Type} old_hash:bits256 new_hash:bits256 = HASH_UPDATE X;
    """
    check_tag(slice_, 8, TAG_HASH_UPDATE, 'HASH_UPDATE')
    return read_hash(slice_), read_hash(slice_)


def read_msg_address(slice_: Slice) -> Tuple[Optional[str], Optional[int]]:
    """
    addr_none$00 addr_extern$01 addr_std$10 addr_var$11
    :return: address in the "workchain:hex" form and its workchain
    """
    kind = slice_.read_uint(2)
    if kind == 0b00:
        return None, None
    if kind == 0b01:
        length = slice_.read_uint(9)
        bits = slice_.read_bits(length)
        value = format(int(bits, 2), 'x') if bits else ''
        return f':{value}', None
    if slice_.read_bool():
        # anycast_info$_ depth:(#<= 30) rewrite_pfx:(bits depth)
        depth = slice_.read_uint(5)
        slice_.skip_bits(depth)
    if kind == 0b10:
        workchain_id = slice_.read_int(8)
        return addr_full(workchain_id, read_hash(slice_)), workchain_id
    length = slice_.read_uint(9)
    workchain_id = slice_.read_int(32)
    bits = slice_.read_bits(length)
    value = format(int(bits, 2), 'x').zfill((length + 3) // 4) if bits else ''
    return f'{workchain_id}:{value}', workchain_id


def read_state_init(slice_: Slice) -> Dict[str, Any]:
    """
    _ split_depth:(Maybe (## 5)) special:(Maybe TickTock)
      code:(Maybe ^Cell) data:(Maybe ^Cell)
      library:(HashmapE 256 SimpleLib) = StateInit;
    """
    result = dict()
    result['split_depth'] = read_maybe(slice_, lambda item: item.read_uint(5))
    if slice_.read_bool():
        result['tick'] = slice_.read_bool()
        result['tock'] = slice_.read_bool()
    for name in ('code', 'data', 'library'):
        cell = slice_.read_maybe_ref()
        if cell is not None:
            result[f'{name}_hash'] = cell.get_hash(0).hex()
    return result


def read_common_msg_info(slice_: Slice) -> Dict[str, Any]:
    result = dict()
    if not slice_.read_bool():
        # int_msg_info$0
        result['msg_type'] = 0
        result['ihr_disabled'] = slice_.read_bool()
        result['bounce'] = slice_.read_bool()
        result['bounced'] = slice_.read_bool()
        result['src'], result['src_workchain_id'] = read_msg_address(slice_)
        result['dst'], result['dst_workchain_id'] = read_msg_address(slice_)
        result['value'] = read_currency_collection(slice_)
        result['ihr_fee'] = slice_.read_coins()
        result['fwd_fee'] = slice_.read_coins()
        result['created_lt'] = slice_.read_uint(64)
        result['created_at'] = slice_.read_uint(32)
    elif not slice_.read_bool():
        # ext_in_msg_info$10
        result['msg_type'] = 1
        result['src'], result['src_workchain_id'] = read_msg_address(slice_)
        result['dst'], result['dst_workchain_id'] = read_msg_address(slice_)
        result['import_fee'] = slice_.read_coins()
    else:
        # ext_out_msg_info$11
        result['msg_type'] = 2
        result['src'], result['src_workchain_id'] = read_msg_address(slice_)
        result['dst'], result['dst_workchain_id'] = read_msg_address(slice_)
        result['created_lt'] = slice_.read_uint(64)
        result['created_at'] = slice_.read_uint(32)
    result['msg_type_name'] = MSG_TYPE_NAMES[result['msg_type']]
    return result


def read_message(cell: Cell) -> Message:
    """
    message$_ {X:Type} info:CommonMsgInfo
      init:(Maybe (Either StateInit ^StateInit))
      body:(Either X ^X) = Message X;
    """
    slice_ = open_cell(cell)
    fields = read_common_msg_info(slice_)
    if slice_.read_bool():
        fields.update(read_state_init(read_either_ref(slice_)))
    if slice_.read_bool():
        body = slice_.read_ref()
        fields['body_hash'] = body.get_hash(0).hex()
    else:
        body = slice_.to_cell()
        if body.bits_len or body.refs:
            fields['body_hash'] = body.get_hash(0).hex()
    return Message(id=cell.get_hash(0).hex(), **fields)


def read_prefix(slice_: Slice, types: Dict[str, int], name: str) -> int:
    """
    Constructor of a type whose tags have different lengths
    """
    prefix = slice_.read_bits(3)
    while prefix not in types:
        if len(prefix) >= 5:
            raise SchemaError(f'{name} error: unknown tag {prefix}')
        prefix += slice_.read_bits(1)
    return types[prefix]


def read_intermediate_address(slice_: Slice) -> str:
    """
    interm_addr_regular$0 use_dest_bits:(#<= 96) = IntermediateAddress;
    interm_addr_simple$10 workchain_id:int8 addr_pfx:uint64 = IntermediateAddress;
    interm_addr_ext$11 workchain_id:int32 addr_pfx:uint64 = IntermediateAddress;
    """
    if not slice_.read_bool():
        return str(slice_.read_uint(7))
    if not slice_.read_bool():
        workchain_id = slice_.read_int(8)
    else:
        workchain_id = slice_.read_int(32)
    return f'{workchain_id}:{slice_.read_uint(64):x}'


def read_msg_envelope(cell: Cell) -> Tuple[Dict[str, Any], Cell]:
    """
    msg_envelope#4 cur_addr:IntermediateAddress next_addr:IntermediateAddress
      fwd_fee_remaining:Grams msg:^(Message Any) = MsgEnvelope;
    msg_envelope_v2#5 cur_addr next_addr fwd_fee_remaining msg
      emitted_lt:(Maybe uint64) metadata:(Maybe MsgMetadata) = MsgEnvelope;
    msg_metadata#0 depth:uint32 initiator_addr:MsgAddressInt initiator_lt:uint64 = MsgMetadata;
    :return: envelope fields, message cell
    """
    slice_ = open_cell(cell)
    tag = slice_.read_uint(4)
    if tag not in (TAG_MSG_ENVELOPE, TAG_MSG_ENVELOPE_V2):
        raise SchemaError(f'MsgEnvelope error: unexpected tag {tag:x}')
    result = dict()
    result['cur_addr'] = read_intermediate_address(slice_)
    result['next_addr'] = read_intermediate_address(slice_)
    result['fwd_fee_remaining'] = slice_.read_coins()
    msg = slice_.read_ref()
    result['msg_id'] = msg.get_hash(0).hex()
    if tag == TAG_MSG_ENVELOPE_V2:
        result['emitted_lt'] = read_maybe(slice_, lambda item: item.read_uint(64))
        if slice_.read_bool():
            check_tag(slice_, 4, 0, 'MsgMetadata')
            result['depth'] = slice_.read_uint(32)
            result['initiator_addr'], _ = read_msg_address(slice_)
            result['initiator_lt'] = slice_.read_uint(64)
    return result, msg


def read_ref_hash(slice_: Slice) -> str:
    return slice_.read_ref().get_hash(0).hex()


def read_in_msg(slice_: Slice) -> Tuple[Dict[str, Any], Optional[Cell]]:
    """
    msg_import_ext$000 msg:^(Message Any) transaction:^Transaction = InMsg;
    msg_import_ihr$010 msg:^(Message Any) transaction:^Transaction
      ihr_fee:Grams proof_created:^Cell = InMsg;
    msg_import_imm$011 in_msg:^MsgEnvelope transaction:^Transaction fwd_fee:Grams = InMsg;
    msg_import_fin$100 in_msg:^MsgEnvelope transaction:^Transaction fwd_fee:Grams = InMsg;
    msg_import_tr$101 in_msg:^MsgEnvelope out_msg:^MsgEnvelope transit_fee:Grams = InMsg;
    msg_discard_fin$110 in_msg:^MsgEnvelope transaction_id:uint64 fwd_fee:Grams = InMsg;
    msg_discard_tr$111 in_msg:^MsgEnvelope transaction_id:uint64
      fwd_fee:Grams proof_delivered:^Cell = InMsg;
    msg_import_deferred_fin$00100 in_msg:^MsgEnvelope transaction:^Transaction fwd_fee:Grams = InMsg;
    msg_import_deferred_tr$00101 in_msg:^MsgEnvelope out_msg:^MsgEnvelope = InMsg;
    :return: description fields, message cell
    """
    msg_type = read_prefix(slice_, IN_MSG_TYPES, 'InMsg')
    result = {'msg_type': msg_type, 'msg_type_name': IN_MSG_TYPE_NAMES[msg_type]}
    if msg_type in (0, 1):
        msg = slice_.read_ref()
        result['msg_id'] = msg.get_hash(0).hex()
        result['transaction_id'] = read_ref_hash(slice_)
        if msg_type == 1:
            result['ihr_fee'] = slice_.read_coins()
            result['proof_created'] = read_ref_hash(slice_)
        return result, msg

    result['in_msg'], msg = read_msg_envelope(slice_.read_ref())
    result['msg_id'] = result['in_msg']['msg_id']
    if msg_type in (2, 3, 7):
        result['transaction_id'] = read_ref_hash(slice_)
        result['fwd_fee'] = slice_.read_coins()
    elif msg_type in (4, 8):
        result['out_msg'], _ = read_msg_envelope(slice_.read_ref())
        if msg_type == 4:
            result['transit_fee'] = slice_.read_coins()
    else:
        result['discarded_transaction_id'] = slice_.read_uint(64)
        result['fwd_fee'] = slice_.read_coins()
        if msg_type == 6:
            result['proof_delivered'] = read_ref_hash(slice_)
    return result, msg


def read_out_msg(slice_: Slice) -> Tuple[Dict[str, Any], Optional[Cell]]:
    """
    msg_export_ext$000 msg:^(Message Any) transaction:^Transaction = OutMsg;
    msg_export_imm$010 out_msg:^MsgEnvelope transaction:^Transaction reimport:^InMsg = OutMsg;
    msg_export_new$001 out_msg:^MsgEnvelope transaction:^Transaction = OutMsg;
    msg_export_tr$011 out_msg:^MsgEnvelope imported:^InMsg = OutMsg;
    msg_export_deq_imm$100 out_msg:^MsgEnvelope reimport:^InMsg = OutMsg;
    msg_export_deq$1100 out_msg:^MsgEnvelope import_block_lt:uint63 = OutMsg;
    msg_export_deq_short$1101 msg_env_hash:bits256 next_workchain:int32
      next_addr_pfx:uint64 import_block_lt:uint64 = OutMsg;
    msg_export_tr_req$111 out_msg:^MsgEnvelope imported:^InMsg = OutMsg;
    msg_export_new_defer$10100 out_msg:^MsgEnvelope transaction:^Transaction = OutMsg;
    msg_export_deferred_tr$10101 out_msg:^MsgEnvelope imported:^InMsg = OutMsg;
    :return: description fields, message cell (None for dequeueShort)
    """
    msg_type = read_prefix(slice_, OUT_MSG_TYPES, 'OutMsg')
    result = {'msg_type': msg_type, 'msg_type_name': OUT_MSG_TYPE_NAMES[msg_type]}
    if msg_type == 0:
        msg = slice_.read_ref()
        result['msg_id'] = msg.get_hash(0).hex()
        result['transaction_id'] = read_ref_hash(slice_)
        return result, msg
    if msg_type == 7:
        result['msg_env_hash'] = read_hash(slice_)
        result['next_workchain'] = slice_.read_int(32)
        result['next_addr_pfx'] = slice_.read_uint(64)
        result['import_block_lt'] = slice_.read_uint(64)
        return result, None

    result['out_msg'], msg = read_msg_envelope(slice_.read_ref())
    result['msg_id'] = result['out_msg']['msg_id']
    if msg_type in (1, 2, 8):
        result['transaction_id'] = read_ref_hash(slice_)
    if msg_type in (1, 4):
        result['reimport'], _ = read_in_msg(open_ref(slice_))
    elif msg_type in (3, 6, 9):
        result['imported'], _ = read_in_msg(open_ref(slice_))
    elif msg_type == 5:
        result['import_block_lt'] = slice_.read_uint(63)
    return result, msg


def read_import_fees(slice_: Slice) -> Dict[str, Any]:
    """
    import_fees$_ fees_collected:Grams value_imported:CurrencyCollection = ImportFees;
    """
    return {
        'fees_collected': slice_.read_coins(),
        'value_imported': read_currency_collection(slice_),
    }


def iter_msg_descr(cell: Cell, extra, walk: DictWalk) -> Iterator[Tuple[str, Slice]]:
    """
    _ (HashmapAugE 256 InMsg ImportFees) = InMsgDescr;
    _ (HashmapAugE 256 OutMsg CurrencyCollection) = OutMsgDescr;
    :param extra: reader of the augmentation
    :return: (message hash, leaf slice at the augmentation) pairs
    """
    slice_ = open_cell(cell)
    root = load_dict_e(slice_)
    extra(slice_)
    for key, value in iter_dict(root, 256, walk=walk):
        yield f'{key:064x}', value


def read_acc_status_change(slice_: Slice) -> int:
    """
    acst_unchanged$0 = 0, acst_frozen$10 = 1, acst_deleted$11 = 2
    """
    if not slice_.read_bool():
        return 0
    return 1 + slice_.read_uint(1)


def read_storage_phase(slice_: Slice) -> Dict[str, Any]:
    return {
        'storage_fees_collected': slice_.read_coins(),
        'storage_fees_due': read_maybe(slice_, Slice.read_coins),
        'status_change': read_acc_status_change(slice_),
    }


def read_credit_phase(slice_: Slice) -> Dict[str, Any]:
    return {
        'due_fees_collected': read_maybe(slice_, Slice.read_coins),
        'credit': read_currency_collection(slice_).model_dump(),
    }


def read_compute_phase(slice_: Slice) -> Dict[str, Any]:
    if not slice_.read_bool():
        # tr_phase_compute_skipped$0
        if not slice_.read_bool():
            reason = slice_.read_uint(1)
        elif not slice_.read_bool():
            reason = 2
        else:
            check_tag(slice_, 1, 0, 'ComputeSkipReason')
            reason = 3
        return {'compute_type': 0, 'skipped_reason': reason}
    result = {'compute_type': 1}
    result['success'] = slice_.read_bool()
    result['msg_state_used'] = slice_.read_bool()
    result['account_activated'] = slice_.read_bool()
    result['gas_fees'] = slice_.read_coins()
    details = open_ref(slice_)
    result['gas_used'] = details.read_var_uint(7)
    result['gas_limit'] = details.read_var_uint(7)
    result['gas_credit'] = read_maybe(details, lambda item: item.read_var_uint(3))
    result['mode'] = details.read_int(8)
    result['exit_code'] = details.read_int(32)
    result['exit_arg'] = read_maybe(details, lambda item: item.read_int(32))
    result['vm_steps'] = details.read_uint(32)
    result['vm_init_state_hash'] = read_hash(details)
    result['vm_final_state_hash'] = read_hash(details)
    return result


def read_action_phase(slice_: Slice) -> Dict[str, Any]:
    result = dict()
    result['success'] = slice_.read_bool()
    result['valid'] = slice_.read_bool()
    result['no_funds'] = slice_.read_bool()
    result['status_change'] = read_acc_status_change(slice_)
    result['total_fwd_fees'] = read_maybe(slice_, Slice.read_coins)
    result['total_action_fees'] = read_maybe(slice_, Slice.read_coins)
    result['result_code'] = slice_.read_int(32)
    result['result_arg'] = read_maybe(slice_, lambda item: item.read_int(32))
    result['tot_actions'] = slice_.read_uint(16)
    result['spec_actions'] = slice_.read_uint(16)
    result['skipped_actions'] = slice_.read_uint(16)
    result['msgs_created'] = slice_.read_uint(16)
    result['action_list_hash'] = read_hash(slice_)
    size = read_storage_used_short(slice_)
    result['tot_msg_size_cells'] = size['cells']
    result['tot_msg_size_bits'] = size['bits']
    return result


def read_bounce_phase(slice_: Slice) -> Dict[str, Any]:
    if slice_.read_bool():
        # tr_phase_bounce_ok$1
        size = read_storage_used_short(slice_)
        return {
            'bounce_type': 2,
            'msg_size_cells': size['cells'],
            'msg_size_bits': size['bits'],
            'msg_fees': slice_.read_coins(),
            'fwd_fees': slice_.read_coins(),
        }
    if not slice_.read_bool():
        return {'bounce_type': 0}
    size = read_storage_used_short(slice_)
    return {
        'bounce_type': 1,
        'msg_size_cells': size['cells'],
        'msg_size_bits': size['bits'],
        'req_fwd_fees': slice_.read_coins(),
    }


def read_split_merge_info(slice_: Slice) -> Dict[str, Any]:
    return {
        'cur_shard_pfx_len': slice_.read_uint(6),
        'acc_split_depth': slice_.read_uint(6),
        'this_addr': read_hash(slice_),
        'sibling_addr': read_hash(slice_),
    }


def read_action_ref(slice_: Slice) -> Optional[Dict[str, Any]]:
    if slice_.read_bool():
        return read_action_phase(open_ref(slice_))
    return None


def read_transaction_descr(slice_: Slice) -> Dict[str, Any]:
    """
    trans_ord$0000 trans_storage$0001 trans_tick_tock$001
    trans_split_prepare$0100 trans_split_install$0101
    trans_merge_prepare$0110 trans_merge_install$0111
    """
    result = dict()
    tag = slice_.read_uint(3)
    if tag == 0b000:
        if slice_.read_bool():
            result['tr_type'] = 1
            result['storage'] = read_storage_phase(slice_)
            return result
        result['tr_type'] = 0
        result['credit_first'] = slice_.read_bool()
        result['storage'] = read_maybe(slice_, read_storage_phase)
        result['credit'] = read_maybe(slice_, read_credit_phase)
        result['compute'] = read_compute_phase(slice_)
        result['action'] = read_action_ref(slice_)
        result['aborted'] = slice_.read_bool()
        result['bounce'] = read_maybe(slice_, read_bounce_phase)
        result['destroyed'] = slice_.read_bool()
        return result
    if tag == 0b001:
        result['tr_type'] = 3 if slice_.read_bool() else 2
        result['storage'] = read_storage_phase(slice_)
        result['compute'] = read_compute_phase(slice_)
        result['action'] = read_action_ref(slice_)
        result['aborted'] = slice_.read_bool()
        result['destroyed'] = slice_.read_bool()
        return result
    if tag == 0b010:
        if not slice_.read_bool():
            result['tr_type'] = 4
            result['split_info'] = read_split_merge_info(slice_)
            result['storage'] = read_maybe(slice_, read_storage_phase)
            result['compute'] = read_compute_phase(slice_)
            result['action'] = read_action_ref(slice_)
            result['aborted'] = slice_.read_bool()
            result['destroyed'] = slice_.read_bool()
            return result
        result['tr_type'] = 5
        result['split_info'] = read_split_merge_info(slice_)
        result['prepare_transaction'] = slice_.read_ref().get_hash(0).hex()
        result['installed'] = slice_.read_bool()
        return result
    if tag == 0b011:
        if not slice_.read_bool():
            result['tr_type'] = 6
            result['split_info'] = read_split_merge_info(slice_)
            result['storage'] = read_storage_phase(slice_)
            result['aborted'] = slice_.read_bool()
            return result
        result['tr_type'] = 7
        result['split_info'] = read_split_merge_info(slice_)
        result['prepare_transaction'] = slice_.read_ref().get_hash(0).hex()
        result['storage'] = read_maybe(slice_, read_storage_phase)
        result['credit'] = read_maybe(slice_, read_credit_phase)
        result['compute'] = read_compute_phase(slice_)
        result['action'] = read_action_ref(slice_)
        result['aborted'] = slice_.read_bool()
        result['destroyed'] = slice_.read_bool()
        return result
    raise SchemaError(f'TransactionDescr error: unknown tag {tag:03b}')


def read_transaction(cell: Cell, workchain_id: int, walk: Optional[DictWalk] = None) -> Tuple[Transaction, Optional[Cell], List[Cell]]:
    """
    transaction$0111 account_addr:bits256 lt:uint64 prev_trans_hash:bits256
      prev_trans_lt:uint64 now:uint32 outmsg_cnt:uint15
      orig_status:AccountStatus end_status:AccountStatus
      ^[ in_msg:(Maybe ^(Message Any)) out_msgs:(HashmapE 15 ^(Message Any)) ]
      total_fees:CurrencyCollection state_update:^(HASH_UPDATE Account)
      description:^TransactionDescr = Transaction;
    :return: transaction record, in message cell, out message cells
    """
    slice_ = open_cell(cell)
    check_tag(slice_, 4, TAG_TRANSACTION, 'Transaction')
    fields = dict()
    fields['workchain_id'] = workchain_id
    fields['account_addr'] = addr_full(workchain_id, read_hash(slice_))
    fields['lt'] = slice_.read_uint(64)
    fields['prev_trans_hash'] = read_hash(slice_)
    fields['prev_trans_lt'] = slice_.read_uint(64)
    fields['now'] = slice_.read_uint(32)
    fields['outmsg_cnt'] = slice_.read_uint(15)
    fields['orig_status'] = slice_.read_uint(2)
    fields['orig_status_name'] = ACCOUNT_STATUS[fields['orig_status']]
    fields['end_status'] = slice_.read_uint(2)
    fields['end_status_name'] = ACCOUNT_STATUS[fields['end_status']]

    messages = open_ref(slice_)
    in_msg = messages.read_maybe_ref()
    out_msgs = list()
    for _, value in iter_dict(load_dict_e(messages), 15, walk=walk):
        out_msgs.append(value.read_ref())
    fields['in_msg'] = in_msg.get_hash(0).hex() if in_msg is not None else None
    fields['out_msgs'] = [item.get_hash(0).hex() for item in out_msgs]

    fields['total_fees'] = read_currency_collection(slice_)
    fields['old_hash'], fields['new_hash'] = read_hash_update(open_ref(slice_))
    fields.update(read_transaction_descr(open_ref(slice_)))
    fields['tr_type_name'] = TR_TYPE_NAMES[fields['tr_type']]
    return Transaction(id=cell.get_hash(0).hex(), **fields), in_msg, out_msgs


def read_account_block(slice_: Slice) -> Tuple[str, Slice, Tuple[str, str]]:
    """
    acc_trans#5 account_addr:bits256
      transactions:(HashmapAug 64 ^Transaction CurrencyCollection)
      state_update:^(HASH_UPDATE Account) = AccountBlock;
    The transactions dictionary is inline, its root edge shares the cell with
    the block, so state_update is always the last ref and is cut off the
    returned slice.
    :return: account address hex, slice at the transactions root edge, (old_hash, new_hash)
    """
    check_tag(slice_, 4, TAG_ACCOUNT_BLOCK, 'AccountBlock')
    address = read_hash(slice_)
    if slice_.remaining_refs < 1:
        raise SchemaError('AccountBlock error: state_update ref is missing')
    state_update = open_cell(slice_.refs[-1])
    hashes = read_hash_update(state_update)
    slice_.refs = slice_.refs[:-1]
    return address, slice_, hashes


def read_depth_balance_info(slice_: Slice) -> Dict[str, Any]:
    """
    depth_balance$_ split_depth:(#<= 30) balance:CurrencyCollection = DepthBalanceInfo;
    """
    return {
        'split_depth': slice_.read_uint(5),
        'balance': read_currency_collection(slice_),
    }


def read_account(cell: Cell) -> Dict[str, Any]:
    """
    account_none$0 = Account;
    account$1 addr:MsgAddressInt storage_stat:StorageInfo storage:AccountStorage = Account;
    """
    slice_ = open_cell(cell)
    if not slice_.read_bool():
        return {'acc_type': 3, 'acc_type_name': ACCOUNT_STATUS[3]}
    result = dict()
    read_msg_address(slice_)
    # storage_info$_ used:StorageUsed last_paid:uint32 due_payment:(Maybe Grams)
    for _ in range(3):
        slice_.read_var_uint(7)
    result['last_paid'] = slice_.read_uint(32)
    result['due_payment'] = read_maybe(slice_, Slice.read_coins)
    # account_storage$_ last_trans_lt:uint64 balance:CurrencyCollection state:AccountState
    result['last_trans_lt'] = slice_.read_uint(64)
    result['balance'] = read_currency_collection(slice_)
    if slice_.read_bool():
        # account_active$1 _:StateInit
        result['acc_type'] = 2
        result.update(read_state_init(slice_))
    elif slice_.read_bool():
        # account_frozen$01
        result['acc_type'] = 1
        result['state_hash'] = read_hash(slice_)
    else:
        result['acc_type'] = 0
    result['acc_type_name'] = ACCOUNT_STATUS[result['acc_type']]
    return result


def read_shard_account(slice_: Slice) -> Dict[str, Any]:
    """
    account_descr$_ account:^Account last_trans_hash:bits256 last_trans_lt:uint64 = ShardAccount;
    :return: Account record fields
    """
    cell = slice_.read_ref()
    fields = read_account(cell)
    fields['last_trans_hash'] = read_hash(slice_)
    fields['last_trans_lt'] = slice_.read_uint(64)
    fields['hash'] = cell.get_hash(0).hex()
    return fields


def read_future_split_merge(slice_: Slice) -> Dict[str, int]:
    """
    fsm_none$0 fsm_split$10 split_utime:uint32 interval:uint32
    fsm_merge$11 merge_utime:uint32 interval:uint32
    """
    if not slice_.read_bool():
        return dict()
    if not slice_.read_bool():
        return {'split_utime': slice_.read_uint(32), 'split_interval': slice_.read_uint(32)}
    return {'merge_utime': slice_.read_uint(32), 'merge_interval': slice_.read_uint(32)}


def read_shard_descr(slice_: Slice, workchain_id: int, shard: int) -> ShardDescr:
    """
    shard_descr#b seq_no:uint32 reg_mc_seqno:uint32 start_lt:uint64 end_lt:uint64
      root_hash:bits256 file_hash:bits256 before_split:Bool before_merge:Bool
      want_split:Bool want_merge:Bool nx_cc_updated:Bool flags:(## 3)
      next_catchain_seqno:uint32 next_validator_shard:uint64
      min_ref_mc_seqno:uint32 gen_utime:uint32 split_merge_at:FutureSplitMerge
      fees_collected:CurrencyCollection funds_created:CurrencyCollection = ShardDescr;
    shard_descr_new#a keeps the two collections under a ref
    """
    tag = slice_.read_uint(4)
    if tag not in (TAG_SHARD_DESCR, TAG_SHARD_DESCR_NEW):
        raise SchemaError(f'ShardDescr error: unexpected tag {tag:x}')
    fields = dict()
    fields['seq_no'] = slice_.read_uint(32)
    fields['reg_mc_seqno'] = slice_.read_uint(32)
    fields['start_lt'] = slice_.read_uint(64)
    fields['end_lt'] = slice_.read_uint(64)
    fields['root_hash'] = read_hash(slice_)
    fields['file_hash'] = read_hash(slice_)
    fields['before_split'] = slice_.read_bool()
    fields['before_merge'] = slice_.read_bool()
    fields['want_split'] = slice_.read_bool()
    fields['want_merge'] = slice_.read_bool()
    fields['nx_cc_updated'] = slice_.read_bool()
    fields['flags'] = slice_.read_uint(3)
    if fields['flags'] != 0:
        raise SchemaError(f'ShardDescr error: flags must be zero, got {fields["flags"]}')
    fields['next_catchain_seqno'] = slice_.read_uint(32)
    fields['next_validator_shard'] = shard_hex(slice_.read_uint(64))
    fields['min_ref_mc_seqno'] = slice_.read_uint(32)
    fields['gen_utime'] = slice_.read_uint(32)
    fields.update(read_future_split_merge(slice_))
    collections = open_ref(slice_) if tag == TAG_SHARD_DESCR_NEW else slice_
    fields['fees_collected'] = read_currency_collection(collections)
    fields['funds_created'] = read_currency_collection(collections)
    return ShardDescr(workchain_id=workchain_id, shard=shard_hex(shard), **fields)


def iter_bin_tree(cell: Cell, walk: DictWalk):
    """
    bt_leaf$0 {X:Type} leaf:X = BinTree X;
    bt_fork$1 {X:Type} left:^(BinTree X) right:^(BinTree X) = BinTree X;
    :return: (path bits, leaf slice) pairs, left to right
    """
    stack = [(cell, '')]
    while stack:
        cell, path = stack.pop()
        if not walk.check(cell):
            continue
        slice_ = open_cell(cell)
        if not slice_.read_bool():
            yield path, slice_
            continue
        left = slice_.read_ref()
        right = slice_.read_ref()
        stack.append((right, path + '1'))
        stack.append((left, path + '0'))


def shard_from_path(path: str) -> int:
    """
    Shard id of a BinTree leaf: path bits on top, then the tag bit
    """
    prefix = int(path, 2) << (64 - len(path)) if path else 0
    return prefix | (SHARD_FULL >> len(path))


def read_shard_hashes(root: Optional[Cell], walk: DictWalk) -> List[ShardDescr]:
    """
    _ (HashmapE 32 ^(BinTree ShardDescr)) = ShardHashes;
    """
    result = list()
    for workchain_id, value in iter_dict(root, 32, walk=walk):
        workchain_id = workchain_id - (1 << 32) if workchain_id >= 1 << 31 else workchain_id
        for path, leaf in iter_bin_tree(value.read_ref(), walk):
            descr = read_shard_descr(leaf, workchain_id, shard_from_path(path))
            descr.hash = leaf.cell.get_hash(0).hex()
            result.append(descr)
    return result


def read_shard_fee_created(slice_: Slice) -> Tuple[CurrencyCollection, CurrencyCollection]:
    """
    shard_fee_created$_ fees:CurrencyCollection create:CurrencyCollection = ShardFeeCreated;
    """
    return read_currency_collection(slice_), read_currency_collection(slice_)


def read_shard_fees(slice_: Slice, walk: DictWalk) -> Dict[Tuple[int, int], Tuple[CurrencyCollection, CurrencyCollection]]:
    """
    _ (HashmapAugE 96 ShardFeeCreated ShardFeeCreated) = ShardFees;
    key is workchain_id:int32 shard:uint64
    """
    result = dict()
    root = load_dict_e(slice_)
    read_shard_fee_created(slice_)
    for key, value in iter_dict(root, 96, extra=read_shard_fee_created, walk=walk):
        workchain_id = key >> 64
        workchain_id = workchain_id - (1 << 32) if workchain_id >= 1 << 31 else workchain_id
        result[(workchain_id, key & ((1 << 64) - 1))] = read_shard_fee_created(value)
    return result


def read_mc_block_extra(slice_: Slice, walk: DictWalk) -> Dict[str, Any]:
    """
    masterchain_block_extra#cca5 key_block:(## 1)
      shard_hashes:ShardHashes shard_fees:ShardFees
      ^[ prev_blk_signatures recover_create_msg mint_msg ]
      config:key_block?ConfigParams = McBlockExtra;
    """
    check_tag(slice_, 16, TAG_MC_BLOCK_EXTRA, 'McBlockExtra')
    result = dict()
    key_block = slice_.read_bool()
    result['shard_hashes'] = read_shard_hashes(load_dict_e(slice_), walk)
    result['shard_fees'] = read_shard_fees(slice_, walk)
    result['signatures'] = slice_.read_ref()
    if key_block:
        result['config_addr'] = read_hash(slice_)
        result['config'] = slice_.read_ref()
    return result


def read_crypto_signature(slice_: Slice) -> Dict[str, str]:
    """
    ed25519_signature#5 R:bits256 s:bits256 = CryptoSignatureSimple;
    chained_signature#f signed_cert:^SignedCertificate temp_key_signature:CryptoSignatureSimple = CryptoSignature;
    """
    tag = slice_.read_uint(4)
    if tag == TAG_CHAINED_SIGNATURE:
        slice_.skip_refs(1)
        tag = slice_.read_uint(4)
    if tag != TAG_ED25519_SIGNATURE:
        raise SchemaError(f'CryptoSignature error: unexpected tag {tag:x}')
    return {'r': read_hash(slice_), 's': read_hash(slice_)}


def read_mc_block_signatures(cell: Cell, walk: DictWalk) -> Dict[str, Any]:
    """
    ^[ prev_blk_signatures:(HashmapE 16 CryptoSignaturePair)
       recover_create_msg:(Maybe ^InMsg) mint_msg:(Maybe ^InMsg) ]
    sig_pair$_ node_id_short:bits256 sign:CryptoSignature = CryptoSignaturePair;
    """
    slice_ = open_cell(cell)
    signatures = list()
    for _, value in iter_dict(load_dict_e(slice_), 16, walk=walk):
        signature = {'node_id': read_hash(value)}
        signature.update(read_crypto_signature(value))
        signatures.append(signature)
    result = {'prev_blk_signatures': signatures}
    for name in ('recover_create_msg', 'mint_msg'):
        msg_cell = slice_.read_maybe_ref()
        result[name] = read_in_msg(open_cell(msg_cell))[0] if msg_cell is not None else None
    return result


def read_mc_state_extra(slice_: Slice, walk: DictWalk) -> Dict[str, Any]:
    """
    masterchain_state_extra#cc26 shard_hashes:ShardHashes
      config:ConfigParams ^[ ... ] global_balance:CurrencyCollection = McStateExtra;
    _ config_addr:bits256 config:^(Hashmap 32 ^Cell) = ConfigParams;
    """
    check_tag(slice_, 16, TAG_MC_STATE_EXTRA, 'McStateExtra')
    result = dict()
    result['shard_hashes'] = read_shard_hashes(load_dict_e(slice_), walk)
    result['config_addr'] = read_hash(slice_)
    result['config'] = slice_.read_ref()
    return result


def read_shard_state(cell: Cell) -> Dict[str, Any]:
    """
    shard_state#9023afe2 global_id:int32 shard_id:ShardIdent seq_no:uint32
      vert_seq_no:# gen_utime:uint32 gen_lt:uint64 min_ref_mc_seqno:uint32
      out_msg_queue_info:^OutMsgQueueInfo before_split:(## 1)
      accounts:^ShardAccounts ^[ ... ] custom:(Maybe ^McStateExtra) = ShardStateUnsplit;
    split_state#5f327da5 left:^ShardStateUnsplit right:^ShardStateUnsplit = ShardState;
    :return: fields of the state, `accounts` and `custom` as cells
    """
    slice_ = open_cell(cell)
    tag = slice_.read_uint(32)
    if tag == TAG_SPLIT_STATE:
        return {'split': [slice_.read_ref(), slice_.read_ref()]}
    if tag != TAG_SHARD_STATE:
        raise SchemaError(f'ShardState error: unexpected tag {tag:x}')
    result = dict()
    result['global_id'] = slice_.read_int(32)
    result.update(read_shard_ident(slice_))
    result['seq_no'] = slice_.read_uint(32)
    result['vert_seq_no'] = slice_.read_uint(32)
    result['gen_utime'] = slice_.read_uint(32)
    result['gen_lt'] = slice_.read_uint(64)
    result['min_ref_mc_seqno'] = slice_.read_uint(32)
    slice_.skip_refs(1)
    result['before_split'] = slice_.read_bool()
    result['accounts'] = slice_.read_ref()
    slice_.skip_refs(1)
    result['custom'] = slice_.read_maybe_ref()
    return result


def read_block(cell: Cell) -> Dict[str, Any]:
    """
    block#11ef55aa global_id:int32 info:^BlockInfo value_flow:^ValueFlow
      state_update:^(MERKLE_UPDATE ShardState) extra:^BlockExtra = Block;
    :return: global_id and the four section cells
    """
    slice_ = open_cell(cell)
    check_tag(slice_, 32, TAG_BLOCK, 'Block')
    return {
        'global_id': slice_.read_int(32),
        'info': slice_.read_ref(),
        'value_flow': slice_.read_ref(),
        'state_update': slice_.read_ref(),
        'extra': slice_.read_ref(),
    }


def read_block_extra(cell: Cell) -> Dict[str, Any]:
    """
    block_extra in_msg_descr:^InMsgDescr out_msg_descr:^OutMsgDescr
      account_blocks:^ShardAccountBlocks rand_seed:bits256 created_by:bits256
      custom:(Maybe ^McBlockExtra) = BlockExtra;
    """
    slice_ = open_cell(cell)
    check_tag(slice_, 32, TAG_BLOCK_EXTRA, 'BlockExtra')
    return {
        'in_msg_descr': slice_.read_ref(),
        'out_msg_descr': slice_.read_ref(),
        'account_blocks': slice_.read_ref(),
        'rand_seed': read_hash(slice_),
        'created_by': read_hash(slice_),
        'custom': slice_.read_maybe_ref(),
    }
