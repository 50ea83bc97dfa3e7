"""
Decoders of blockchain configuration parameters.

_ config_addr:bits256 config:^(Hashmap 32 ^Cell) = ConfigParams;

Each decoder is registered for the parameter ids it understands and gets a
slice of the parameter cell. Parameters without a decoder are kept as a BOC.
"""

import base64
import logging
from typing import Any
from typing import Callable
from typing import Dict
from typing import List
from typing import Optional
from typing import Union

from ..boc.boc import serialize_boc
from ..boc.cell import Cell
from ..boc.slice import Slice
from ..dictionary import DictWalk
from ..dictionary import iter_dict
from ..dictionary import load_dict_e
from ..errors import FormatError
from ..errors import IncompleteDataError
from ..errors import SchemaError
from ..utils import to_signed
from .records import ConfigParam
from .tlb import check_tag
from .tlb import open_cell
from .tlb import read_hash

logger = logging.getLogger(__name__)

Decoder = Callable[[Slice], Any]
DECODERS: Dict[int, Decoder] = dict()


def config_param(*numbers: int):
    def decorator(func: Decoder) -> Decoder:
        for number in numbers:
            DECODERS[number] = func
        return func
    return decorator


def read_param_limits(slice_: Slice) -> Dict[str, int]:
    """
    param_limits#c3 underload:# soft_limit:# hard_limit:# = ParamLimits;
    """
    check_tag(slice_, 8, 0xc3, 'ParamLimits')
    result = {
        'underload': slice_.read_uint(32),
        'soft_limit': slice_.read_uint(32),
        'hard_limit': slice_.read_uint(32),
    }
    if not result['underload'] <= result['soft_limit'] <= result['hard_limit']:
        raise SchemaError(f'ParamLimits error: limits are not ordered {result}')
    return result


def read_gas_prices(slice_: Slice) -> Dict[str, Any]:
    tag = slice_.read_uint(8)
    if tag == 0xd1:
        result = {
            'flat_gas_limit': slice_.read_uint(64),
            'flat_gas_price': slice_.read_uint(64),
        }
        result.update(read_gas_prices(slice_))
        return result
    if tag == 0xdd:
        names = ('gas_price', 'gas_limit', 'gas_credit', 'block_gas_limit', 'freeze_due_limit', 'delete_due_limit')
    elif tag == 0xde:
        names = (
            'gas_price', 'gas_limit', 'special_gas_limit', 'gas_credit',
            'block_gas_limit', 'freeze_due_limit', 'delete_due_limit'
        )
    else:
        raise SchemaError(f'GasLimitsPrices error: unexpected tag {tag:x}')
    return {name: slice_.read_uint(64) for name in names}


def read_validator_descr(slice_: Slice) -> Dict[str, Any]:
    """
    validator#53 public_key:SigPubKey weight:uint64 = ValidatorDescr;
    validator_addr#73 public_key:SigPubKey weight:uint64 adnl_addr:bits256 = ValidatorDescr;
    ed25519_pubkey#8e81278a pubkey:bits256 = SigPubKey;
    """
    tag = slice_.read_uint(8)
    if tag not in (0x53, 0x73):
        raise SchemaError(f'ValidatorDescr error: unexpected tag {tag:x}')
    check_tag(slice_, 32, 0x8e81278a, 'SigPubKey')
    result = {
        'public_key': read_hash(slice_),
        'weight': slice_.read_uint(64),
    }
    if tag == 0x73:
        result['adnl_addr'] = read_hash(slice_)
    return result


def read_keys(root: Union[Cell, Slice, None], key_len: int) -> List[int]:
    return [key for key, _ in iter_dict(root, key_len, walk=DictWalk(full=True))]


@config_param(0, 1, 2, 3, 4)
def decode_address(slice_: Slice) -> str:
    return read_hash(slice_)


@config_param(5)
def decode_burning(slice_: Slice) -> Dict[str, Any]:
    """
    burning_config#01 blackhole_addr:(Maybe bits256) fee_burn_num:# fee_burn_denom:# = BurningConfig;
    """
    check_tag(slice_, 8, 0x01, 'BurningConfig')
    blackhole_addr = read_hash(slice_) if slice_.read_bool() else None
    return {
        'blackhole_addr': blackhole_addr,
        'fee_burn_num': slice_.read_uint(32),
        'fee_burn_denom': slice_.read_uint(32),
    }


@config_param(6)
def decode_mint_prices(slice_: Slice) -> Dict[str, int]:
    return {
        'mint_new_price': slice_.read_coins(),
        'mint_add_price': slice_.read_coins(),
    }


@config_param(7)
def decode_to_mint(slice_: Slice) -> List[Dict[str, int]]:
    root = load_dict_e(slice_)
    result = list()
    for currency, value in iter_dict(root, 32, walk=DictWalk(full=True)):
        result.append({'currency': currency, 'value': value.read_var_uint(32)})
    return result


@config_param(8)
def decode_global_version(slice_: Slice) -> Dict[str, int]:
    check_tag(slice_, 8, 0xc4, 'GlobalVersion')
    return {
        'version': slice_.read_uint(32),
        'capabilities': slice_.read_uint(64),
    }


@config_param(9, 10)
def decode_param_list(slice_: Slice) -> List[int]:
    """
    _ mandatory_params:(Hashmap 32 True) = ConfigParam 9;
    """
    return read_keys(slice_, 32)


@config_param(11)
def decode_proposal_setup(slice_: Slice) -> Dict[str, Any]:
    """
    cfg_vote_cfg#36 normal_params:^ConfigProposalSetup critical_params:^ConfigProposalSetup = ConfigVotingSetup;
    cfg_vote_setup#91 min_tot_rounds:uint8 max_tot_rounds:uint8 min_wins:uint8
      max_losses:uint8 min_store_sec:uint32 max_store_sec:uint32
      bit_price:uint32 cell_price:uint32 = ConfigProposalSetup;
    """
    check_tag(slice_, 8, 0x36, 'ConfigVotingSetup')
    result = dict()
    for name in ('normal_params', 'critical_params'):
        setup = open_cell(slice_.read_ref())
        check_tag(setup, 8, 0x91, 'ConfigProposalSetup')
        result[name] = {
            'min_tot_rounds': setup.read_uint(8),
            'max_tot_rounds': setup.read_uint(8),
            'min_wins': setup.read_uint(8),
            'max_losses': setup.read_uint(8),
            'min_store_sec': setup.read_uint(32),
            'max_store_sec': setup.read_uint(32),
            'bit_price': setup.read_uint(32),
            'cell_price': setup.read_uint(32),
        }
    return result


@config_param(12)
def decode_workchains(slice_: Slice) -> List[Dict[str, Any]]:
    """
    workchain#a6 enabled_since:uint32 actual_min_split:(## 8) min_split:(## 8)
      max_split:(## 8) basic:(## 1) active:Bool accept_msgs:Bool flags:(## 13)
      zerostate_root_hash:bits256 zerostate_file_hash:bits256 version:uint32
      format:(WorkchainFormat basic) = WorkchainDescr;
    workchain_v2#a7 appends split_merge_timings and persistent_state_split_depth
    """
    result = list()
    for workchain_id, value in iter_dict(load_dict_e(slice_), 32, walk=DictWalk(full=True)):
        tag = value.read_uint(8)
        if tag not in (0xa6, 0xa7):
            raise SchemaError(f'WorkchainDescr error: unexpected tag {tag:x}')
        item = {'workchain_id': to_signed(workchain_id, 32)}
        item['enabled_since'] = value.read_uint(32)
        item['actual_min_split'] = value.read_uint(8)
        item['min_split'] = value.read_uint(8)
        item['max_split'] = value.read_uint(8)
        item['basic'] = value.read_bool()
        item['active'] = value.read_bool()
        item['accept_msgs'] = value.read_bool()
        item['flags'] = value.read_uint(13)
        item['zerostate_root_hash'] = read_hash(value)
        item['zerostate_file_hash'] = read_hash(value)
        item['version'] = value.read_uint(32)
        # wfmt_basic#1 / wfmt_ext#0
        if value.read_uint(4) == 1:
            item['vm_version'] = value.read_int(32)
            item['vm_mode'] = value.read_uint(64)
        else:
            item['min_addr_len'] = value.read_uint(12)
            item['max_addr_len'] = value.read_uint(12)
            item['addr_len_step'] = value.read_uint(12)
            item['workchain_type_id'] = value.read_uint(32)
        result.append(item)
    return result


@config_param(14)
def decode_block_create_fees(slice_: Slice) -> Dict[str, int]:
    check_tag(slice_, 8, 0x6b, 'BlockCreateFees')
    return {
        'masterchain_block_fee': slice_.read_coins(),
        'basechain_block_fee': slice_.read_coins(),
    }


@config_param(15)
def decode_election_timings(slice_: Slice) -> Dict[str, int]:
    names = ('validators_elected_for', 'elections_start_before', 'elections_end_before', 'stake_held_for')
    return {name: slice_.read_uint(32) for name in names}


@config_param(16)
def decode_validators_count(slice_: Slice) -> Dict[str, int]:
    names = ('max_validators', 'max_main_validators', 'min_validators')
    return {name: slice_.read_uint(16) for name in names}


@config_param(17)
def decode_stakes(slice_: Slice) -> Dict[str, int]:
    return {
        'min_stake': slice_.read_coins(),
        'max_stake': slice_.read_coins(),
        'min_total_stake': slice_.read_coins(),
        'max_stake_factor': slice_.read_uint(32),
    }


@config_param(18)
def decode_storage_prices(slice_: Slice) -> List[Dict[str, int]]:
    """
    _ (Hashmap 32 StoragePrices) = ConfigParam 18;
    storage_prices#cc utime_since:uint32 bit_price_ps:uint64 cell_price_ps:uint64
      mc_bit_price_ps:uint64 mc_cell_price_ps:uint64 = StoragePrices;
    """
    result = list()
    for _, value in iter_dict(slice_, 32, walk=DictWalk(full=True)):
        check_tag(value, 8, 0xcc, 'StoragePrices')
        result.append({
            'utime_since': value.read_uint(32),
            'bit_price_ps': value.read_uint(64),
            'cell_price_ps': value.read_uint(64),
            'mc_bit_price_ps': value.read_uint(64),
            'mc_cell_price_ps': value.read_uint(64),
        })
    return result


@config_param(20, 21)
def decode_gas_prices(slice_: Slice) -> Dict[str, Any]:
    return read_gas_prices(slice_)


@config_param(22, 23)
def decode_block_limits(slice_: Slice) -> Dict[str, Any]:
    """
    block_limits#5d bytes:ParamLimits gas:ParamLimits lt_delta:ParamLimits = BlockLimits;
    block_limits_v2#5e appends collated_data:ParamLimits imported_msg_queue:ImportedMsgQueueLimits
    """
    tag = slice_.read_uint(8)
    if tag not in (0x5d, 0x5e):
        raise SchemaError(f'BlockLimits error: unexpected tag {tag:x}')
    result = dict()
    for name in ('bytes', 'gas', 'lt_delta'):
        result[name] = read_param_limits(slice_)
    if tag == 0x5e:
        result['collated_data'] = read_param_limits(slice_)
        check_tag(slice_, 8, 0xd3, 'ImportedMsgQueueLimits')
        result['imported_msg_queue'] = {
            'max_bytes': slice_.read_uint(32),
            'max_msgs': slice_.read_uint(32),
        }
    return result


@config_param(24, 25)
def decode_msg_forward_prices(slice_: Slice) -> Dict[str, int]:
    check_tag(slice_, 8, 0xea, 'MsgForwardPrices')
    return {
        'lump_price': slice_.read_uint(64),
        'bit_price': slice_.read_uint(64),
        'cell_price': slice_.read_uint(64),
        'ihr_price_factor': slice_.read_uint(32),
        'first_frac': slice_.read_uint(16),
        'next_frac': slice_.read_uint(16),
    }


@config_param(28)
def decode_catchain(slice_: Slice) -> Dict[str, Any]:
    tag = slice_.read_uint(8)
    result = dict()
    if tag == 0xc2:
        flags = slice_.read_uint(7)
        if flags:
            raise SchemaError(f'CatchainConfig error: flags must be zero, got {flags}')
        result['shuffle_mc_validators'] = slice_.read_bool()
    elif tag != 0xc1:
        raise SchemaError(f'CatchainConfig error: unexpected tag {tag:x}')
    names = ('mc_catchain_lifetime', 'shard_catchain_lifetime', 'shard_validators_lifetime', 'shard_validators_num')
    for name in names:
        result[name] = slice_.read_uint(32)
    return result


@config_param(29)
def decode_consensus(slice_: Slice) -> Dict[str, Any]:
    """
    consensus_config#d6, consensus_config_new#d7, consensus_config_v3#d8, consensus_config_v4#d9
    """
    tag = slice_.read_uint(8)
    if tag not in (0xd6, 0xd7, 0xd8, 0xd9):
        raise SchemaError(f'ConsensusConfig error: unexpected tag {tag:x}')
    result = dict()
    if tag == 0xd6:
        result['round_candidates'] = slice_.read_uint(32)
    else:
        flags = slice_.read_uint(7)
        if flags:
            raise SchemaError(f'ConsensusConfig error: flags must be zero, got {flags}')
        result['new_catchain_ids'] = slice_.read_bool()
        result['round_candidates'] = slice_.read_uint(8)
    names = (
        'next_candidate_delay_ms', 'consensus_timeout_ms', 'fast_attempts', 'attempt_duration',
        'catchain_max_deps', 'max_block_bytes', 'max_collated_bytes'
    )
    for name in names:
        result[name] = slice_.read_uint(32)
    if tag >= 0xd8:
        result['proto_version'] = slice_.read_uint(16)
    if tag == 0xd9:
        result['catchain_max_blocks_coeff'] = slice_.read_uint(32)
    return result


@config_param(31)
def decode_fundamental_addresses(slice_: Slice) -> List[str]:
    return [f'{key:064x}' for key in read_keys(load_dict_e(slice_), 256)]


@config_param(32, 33, 34, 35, 36, 37)
def decode_validator_set(slice_: Slice) -> Dict[str, Any]:
    """
    validators#11 utime_since:uint32 utime_until:uint32 total:(## 16) main:(## 16)
      list:(Hashmap 16 ValidatorDescr) = ValidatorSet;
    validators_ext#12 utime_since:uint32 utime_until:uint32 total:(## 16) main:(## 16)
      total_weight:uint64 list:(HashmapE 16 ValidatorDescr) = ValidatorSet;
    """
    tag = slice_.read_uint(8)
    if tag not in (0x11, 0x12):
        raise SchemaError(f'ValidatorSet error: unexpected tag {tag:x}')
    result = dict()
    result['utime_since'] = slice_.read_uint(32)
    result['utime_until'] = slice_.read_uint(32)
    result['total'] = slice_.read_uint(16)
    result['main'] = slice_.read_uint(16)
    if not 1 <= result['main'] <= result['total']:
        raise SchemaError(f'ValidatorSet error: main {result["main"]} out of 1..{result["total"]}')
    if tag == 0x12:
        result['total_weight'] = slice_.read_uint(64)
        root = load_dict_e(slice_)
    else:
        root = slice_.read_ref()
    validators = list()
    for _, value in iter_dict(root, 16, walk=DictWalk(full=True)):
        validators.append(read_validator_descr(value))
    result['list'] = validators
    if tag == 0x11:
        result['total_weight'] = sum(item['weight'] for item in validators)
    return result


def encode_boc(cell: Cell) -> str:
    return base64.b64encode(serialize_boc(cell)).decode()


def decode_param(number: int, cell: Cell) -> ConfigParam:
    """
    Decode one parameter. A parameter that does not match its layout keeps
    its BOC and the error text, so one bad parameter never hides the others.
    """
    cell_hash = cell.get_hash(0).hex()
    decoder = DECODERS.get(number)
    if decoder is None:
        return ConfigParam(number=number, boc=encode_boc(cell), hash=cell_hash)
    try:
        value = decoder(open_cell(cell))
    except (SchemaError, FormatError) as ex:
        logger.warning(f'decode_param: config param {number} {cell_hash}: {ex}')
        return ConfigParam(number=number, boc=encode_boc(cell), hash=cell_hash, error=str(ex))
    return ConfigParam(number=number, value=value, hash=cell_hash)


def decode_config(root: Optional[Cell], walk: Optional[DictWalk] = None) -> List[ConfigParam]:
    """
    :param root: root of the Hashmap 32 ^Cell of the configuration
    :return: parameters in dictionary key order
    """
    if walk is None:
        walk = DictWalk()
    result = list()
    for number, value in iter_dict(root, 32, walk=walk):
        number = to_signed(number, 32)
        cell = value.read_ref()
        if cell.is_pruned:
            if walk.full:
                raise IncompleteDataError(f'decode_config error: param {number} is pruned', cell.get_hash(0))
            walk.pruned.append(cell.get_hash(0))
            result.append(ConfigParam(number=number, hash=cell.get_hash(0).hex()))
            continue
        try:
            result.append(decode_param(number, cell))
        except IncompleteDataError as ex:
            if walk.full:
                raise
            walk.pruned.append(ex.cell_hash)
            result.append(ConfigParam(number=number, hash=cell.get_hash(0).hex(), error=str(ex)))
    return result
