import logging
from typing import Any
from typing import Callable
from typing import Dict
from typing import List
from typing import Optional

from ..boc.cell import Cell
from ..boc.loader import CellLoader
from ..boc.slice import Slice
from ..dictionary import DictWalk
from ..dictionary import iter_dict
from ..dictionary import load_dict_e
from ..dictionary import lookup
from ..errors import FormatError
from ..errors import IncompleteDataError
from ..errors import MytonblockError
from ..errors import SchemaError
from ..merkle import apply_update
from ..merkle import graft
from ..settings import ParserSettings
from ..settings import get_settings
from ..utils import addr_full
from .config_params import decode_config
from .records import Account
from .records import BlockHeader
from .records import ConfigParam
from .records import Message
from .records import ParsedBlock
from .records import ProcessingInfo
from .records import ProcessingStatus
from .records import Transaction
from .tlb import iter_msg_descr
from .tlb import open_cell
from .tlb import read_account_block
from .tlb import read_block
from .tlb import read_block_extra
from .tlb import read_block_info
from .tlb import read_currency_collection
from .tlb import read_depth_balance_info
from .tlb import read_in_msg
from .tlb import read_import_fees
from .tlb import read_mc_block_extra
from .tlb import read_mc_block_signatures
from .tlb import read_mc_state_extra
from .tlb import read_merkle_update
from .tlb import read_message
from .tlb import read_out_msg
from .tlb import read_shard_account
from .tlb import read_shard_state
from .tlb import read_transaction
from .tlb import read_value_flow

logger = logging.getLogger(__name__)


class ParserInput:
    """
    Block reduced to cells, whoever produced it
    :param block_root: root of the Block
    :param prev_state_root: shard state the block was applied to
    :param state_root: shard state after the block, when the producer has it
    :param expected_hash: root hash the block is known under
    """
    def __init__(
            self,
            block_root: Cell,
            prev_state_root: Optional[Cell] = None,
            state_root: Optional[Cell] = None,
            expected_hash: Optional[bytes] = None,
            producer: str = 'unknown',
            status: ProcessingStatus = ProcessingStatus.unknown
    ):
        self.block_root = block_root
        self.prev_state_root = prev_state_root
        self.state_root = state_root
        self.expected_hash = expected_hash
        self.producer = producer
        self.status = status

    def __str__(self):
        return f'<ParserInput {self.producer} {self.block_root.get_hash(0).hex()}>'


class ParseContext:
    """
    Mutable state of one parse
    """
    def __init__(self, result: ParsedBlock, walk: DictWalk, status: ProcessingStatus):
        self.result = result
        self.walk = walk
        self.status = status
        self.block_id = result.header.id_
        self.messages: Dict[str, Message] = dict()

    @property
    def full(self) -> bool:
        return self.walk.full

    def pruned(self, ex: IncompleteDataError, cell: Optional[Cell] = None):
        if self.full:
            raise ex
        cell_hash = ex.cell_hash
        if cell_hash is None and cell is not None:
            cell_hash = cell.get_hash(0)
        if cell_hash is not None:
            self.walk.pruned.append(cell_hash)
        logger.warning(f'parse: stub instead of {cell_hash.hex() if cell_hash else "unknown cell"}: {ex}')

    def schema_error(self, ex: MytonblockError, record: str, record_hash: str) -> SchemaError:
        error = SchemaError(str(ex), record, record_hash)
        self.result.errors.append(error)
        logger.warning(f'parse: {error}')
        return error


class BlockParser:
    """
    Turns a block cell graph into records. The parse depends only on the
    cells it is given, never on who produced them.

    Example:

    >> parser = BlockParser()
    >> block = parser.parse(from_full_node(block_boc))
    >> print(block.header.seq_no, len(block.transactions))
    """
    def __init__(self, settings: Optional[ParserSettings] = None, loader: Optional[CellLoader] = None):
        if settings is None:
            settings = get_settings()
        self.settings = settings
        self.loader = loader

    def parse(self, parser_input: ParserInput, full_resolution: Optional[bool] = None) -> ParsedBlock:
        """
        :param full_resolution: fail with IncompleteDataError on pruned data instead of returning stubs
        """
        if full_resolution is None:
            full_resolution = self.settings.full_resolution
        root = parser_input.block_root
        if self.loader is not None:
            root = graft(root, self.loader)
        block_hash = parser_input.expected_hash or root.get_hash(0)
        header = BlockHeader(id=block_hash.hex())
        info = ProcessingInfo(status=parser_input.status, producer=parser_input.producer)
        context = ParseContext(ParsedBlock(header, info), DictWalk(full_resolution), parser_input.status)
        logger.debug(f'parse: block {header.id_} from {parser_input.producer}')

        fields = self._read_block(root, context)
        if fields is not None:
            state = self._new_state(parser_input, fields.get('state_update'), context)
            self._read_extra(fields, state, context)
        else:
            header.stub = True
        self._finish(context)
        return context.result

    def _guard(self, context: ParseContext, cell: Optional[Cell], reader: Callable, *args) -> Optional[Any]:
        """
        Run a reader of a block section, a pruned section becomes None
        """
        if cell is None:
            return None
        try:
            return reader(cell, *args)
        except IncompleteDataError as ex:
            context.pruned(ex, cell)
            return None

    def _read_block(self, root: Cell, context: ParseContext) -> Optional[Dict[str, Any]]:
        block = self._guard(context, root, read_block)
        if block is None:
            return None
        fields = {'global_id': block['global_id'], 'state_update': block['state_update']}
        fields['extra'] = block['extra']
        header = context.result.header
        header.global_id = block['global_id']

        info = self._guard(context, block['info'], lambda cell: read_block_info(open_cell(cell)))
        if info is not None:
            for name, value in info.items():
                setattr(header, name, value)
        else:
            header.stub = True
        header.value_flow = self._guard(context, block['value_flow'], lambda cell: read_value_flow(open_cell(cell)))
        update = self._guard(context, block['state_update'], read_merkle_update)
        if update is not None:
            for name, value in update.items():
                setattr(header, name, value)
        return fields

    def _new_state(self, parser_input: ParserInput, update_cell: Cell, context: ParseContext) -> Optional[Cell]:
        if parser_input.state_root is not None:
            return parser_input.state_root
        if parser_input.prev_state_root is None:
            return None
        if update_cell.is_pruned:
            context.pruned(IncompleteDataError('parse error: state update is pruned'), update_cell)
            return None
        return apply_update(update_cell, parser_input.prev_state_root)

    def _read_extra(self, fields: Dict[str, Any], state: Optional[Cell], context: ParseContext):
        header = context.result.header
        state_fields = self._guard(context, state, read_shard_state)
        if state_fields is not None and 'split' in state_fields:
            logger.warning(f'parse: block {header.id_} state is split, accounts are not resolved')
            state_fields = None
        accounts_root = None
        if state_fields is not None:
            accounts_root = self._guard(context, state_fields['accounts'], self._accounts_root)

        extra = self._guard(context, fields['extra'], read_block_extra)
        if extra is None:
            header.stub = True
            return
        header.rand_seed = extra['rand_seed']
        header.created_by = extra['created_by']
        self._guard(context, extra['account_blocks'], self._read_account_blocks, accounts_root, context)
        self._guard(context, extra['in_msg_descr'], self._read_in_msg_descr, context)
        self._guard(context, extra['out_msg_descr'], self._read_out_msg_descr, context)

        mc_extra = None
        if extra['custom'] is not None:
            mc_extra = self._guard(
                context, extra['custom'],
                lambda cell: read_mc_block_extra(open_cell(cell), context.walk)
            )
        if mc_extra is not None:
            self._read_shards(mc_extra, context)
            signatures = self._guard(context, mc_extra['signatures'], read_mc_block_signatures, context.walk)
            if signatures is not None:
                for name, value in signatures.items():
                    setattr(header, name, value)
        config = None
        if mc_extra is not None and 'config' in mc_extra:
            config = mc_extra['config']
            header.config_addr = mc_extra['config_addr']
        elif state_fields is not None and state_fields['custom'] is not None:
            state_extra = self._guard(
                context, state_fields['custom'],
                lambda cell: read_mc_state_extra(open_cell(cell), context.walk)
            )
            if state_extra is not None:
                config = state_extra['config']
                header.config_addr = state_extra['config_addr']
                if not context.result.shards:
                    context.result.shards = state_extra['shard_hashes']
        if config is not None:
            context.result.config = self._read_config(config, context)

    @staticmethod
    def _accounts_root(cell: Cell) -> Optional[Cell]:
        """
        _ (HashmapAugE 256 ShardAccount DepthBalanceInfo) = ShardAccounts;
        """
        return load_dict_e(open_cell(cell))

    def _read_account_blocks(self, cell: Cell, accounts_root: Optional[Cell], context: ParseContext):
        """
        _ (HashmapAugE 256 AccountBlock CurrencyCollection) = ShardAccountBlocks;
        """
        header = context.result.header
        workchain_id = header.workchain_id if header.workchain_id is not None else 0
        slice_ = open_cell(cell)
        root = load_dict_e(slice_)
        read_currency_collection(slice_)
        for key, value in iter_dict(root, 256, extra=read_currency_collection, walk=context.walk):
            address = addr_full(workchain_id, f'{key:064x}')
            account = Account(id=address, workchain_id=workchain_id, hash=value.cell.get_hash(0).hex())
            context.result.accounts.append(account)
            try:
                _, transactions, hashes = read_account_block(value)
            except IncompleteDataError as ex:
                context.pruned(ex)
                account.stub = True
                continue
            except SchemaError as ex:
                account.error = str(context.schema_error(ex, 'account', address))
                continue
            account.old_hash, account.new_hash = hashes
            try:
                for lt, tr_value in iter_dict(transactions, 64, extra=read_currency_collection, walk=context.walk):
                    account.tr_count += 1
                    self._read_transaction_ref(tr_value, lt, address, workchain_id, context)
            except IncompleteDataError as ex:
                context.pruned(ex)
                account.stub = True
            except FormatError as ex:
                account.error = str(context.schema_error(ex, 'account', address))
            header.tr_count += account.tr_count
            if accounts_root is not None:
                self._read_account_state(account, accounts_root, key, context)

    def _read_account_state(self, account: Account, accounts_root: Cell, key: int, context: ParseContext):
        try:
            value = lookup(accounts_root, key, 256, extra=read_depth_balance_info)
            if value is None:
                logger.debug(f'parse: account {account.id_} is not in the state')
                return
            fields = read_shard_account(value)
        except IncompleteDataError as ex:
            context.pruned(ex)
            account.stub = True
            return
        except (SchemaError, FormatError) as ex:
            account.error = str(context.schema_error(ex, 'account', account.id_))
            return
        for name, value in fields.items():
            if value is not None:
                setattr(account, name, value)

    def _read_transaction_ref(self, value: Slice, lt: int, address: str, workchain_id: int, context: ParseContext):
        """
        Leaf of the transactions dictionary of an AccountBlock: ^Transaction
        """
        try:
            cell = value.read_ref()
        except SchemaError as ex:
            leaf_hash = value.cell.get_hash(0).hex()
            error = context.schema_error(ex, 'transaction', leaf_hash)
            transaction = Transaction(
                id=leaf_hash, account_addr=address, workchain_id=workchain_id, lt=lt, error=str(error)
            )
            transaction.block_id = context.block_id
            transaction.status = context.status
            context.result.transactions.append(transaction)
            return
        self._read_transaction(cell, address, workchain_id, context)

    def _read_transaction(self, cell: Cell, address: str, workchain_id: int, context: ParseContext):
        tr_hash = cell.get_hash(0).hex()
        try:
            transaction, in_msg, out_msgs = read_transaction(cell, workchain_id, context.walk)
        except IncompleteDataError as ex:
            context.pruned(ex, cell)
            transaction = Transaction(id=tr_hash, account_addr=address, workchain_id=workchain_id, stub=True)
            in_msg, out_msgs = None, list()
        except (SchemaError, FormatError) as ex:
            error = context.schema_error(ex, 'transaction', tr_hash)
            transaction = Transaction(id=tr_hash, account_addr=address, workchain_id=workchain_id, error=str(error))
            in_msg, out_msgs = None, list()
        if transaction.account_addr != address:
            error = context.schema_error(
                SchemaError(f'transaction account {transaction.account_addr} is not {address}'),
                'transaction', tr_hash
            )
            transaction.error = str(error)
        transaction.block_id = context.block_id
        transaction.status = context.status
        context.result.transactions.append(transaction)
        if in_msg is not None:
            self._read_message(in_msg, context, dst_transaction_id=tr_hash)
        for cell in out_msgs:
            self._read_message(cell, context, src_transaction_id=tr_hash)

    def _read_message(
            self,
            cell: Cell,
            context: ParseContext,
            src_transaction_id: Optional[str] = None,
            dst_transaction_id: Optional[str] = None
    ) -> Message:
        msg_hash = cell.get_hash(0).hex()
        message = context.messages.get(msg_hash)
        if message is None:
            try:
                message = read_message(cell)
            except IncompleteDataError as ex:
                context.pruned(ex, cell)
                message = Message(id=msg_hash, stub=True)
            except (SchemaError, FormatError) as ex:
                error = context.schema_error(ex, 'message', msg_hash)
                message = Message(id=msg_hash, error=str(error))
            message.block_id = context.block_id
            message.status = context.status
            context.messages[msg_hash] = message
            context.result.messages.append(message)
        if src_transaction_id is not None:
            message.src_transaction_id = src_transaction_id
        if dst_transaction_id is not None:
            message.dst_transaction_id = dst_transaction_id
        return message

    def _read_in_msg_descr(self, cell: Cell, context: ParseContext):
        """
        _ (HashmapAugE 256 InMsg ImportFees) = InMsgDescr;
        """
        for msg_hash, value in iter_msg_descr(cell, read_import_fees, context.walk):
            try:
                fees = read_import_fees(value)
                descr, msg = read_in_msg(value)
            except IncompleteDataError as ex:
                context.pruned(ex)
                continue
            except (SchemaError, FormatError) as ex:
                context.schema_error(ex, 'message', msg_hash)
                continue
            descr['fees_collected'] = fees['fees_collected']
            descr['value_imported'] = fees['value_imported'].model_dump()
            context.result.in_msg_descr.append(descr)

            message = self._read_message(msg, context, dst_transaction_id=descr.get('transaction_id'))
            message.in_msg_type = descr['msg_type']
            message.in_msg_type_name = descr['msg_type_name']
            for name in ('fwd_fee', 'ihr_fee', 'transit_fee'):
                if name in descr:
                    message.in_msg_fee = descr[name]
            message.fees_collected = fees['fees_collected']
            message.value_imported = fees['value_imported']
            message.in_envelope = descr.get('in_msg')

    def _read_out_msg_descr(self, cell: Cell, context: ParseContext):
        """
        _ (HashmapAugE 256 OutMsg CurrencyCollection) = OutMsgDescr;
        """
        for msg_hash, value in iter_msg_descr(cell, read_currency_collection, context.walk):
            try:
                exported = read_currency_collection(value)
                descr, msg = read_out_msg(value)
            except IncompleteDataError as ex:
                context.pruned(ex)
                continue
            except (SchemaError, FormatError) as ex:
                context.schema_error(ex, 'message', msg_hash)
                continue
            descr.setdefault('msg_id', msg_hash)
            descr['value_exported'] = exported.model_dump()
            context.result.out_msg_descr.append(descr)
            if msg is None:
                # dequeueShort keeps only the envelope hash
                continue

            message = self._read_message(msg, context, src_transaction_id=descr.get('transaction_id'))
            message.out_msg_type = descr['msg_type']
            message.out_msg_type_name = descr['msg_type_name']
            message.value_exported = exported
            message.out_envelope = descr.get('out_msg')
            if 'import_block_lt' in descr:
                message.import_block_lt = descr['import_block_lt']

    def _read_shards(self, mc_extra: Dict[str, Any], context: ParseContext):
        header = context.result.header
        shards = mc_extra['shard_hashes']
        fees = mc_extra['shard_fees']
        for shard in shards:
            key = (shard.workchain_id, int(shard.shard, 16))
            if key in fees:
                shard.fees, shard.create = fees[key]
        context.result.shards = shards
        if shards:
            header.min_shard_gen_utime = min(shard.gen_utime for shard in shards)
            header.max_shard_gen_utime = max(shard.gen_utime for shard in shards)

    def _read_config(self, root: Cell, context: ParseContext) -> List[ConfigParam]:
        if root.is_pruned:
            context.pruned(IncompleteDataError('parse error: config is pruned'), root)
            return list()
        return decode_config(root, context.walk)

    def _finish(self, context: ParseContext):
        result = context.result
        header = result.header
        info = result.info
        info.pruned = [item.hex() for item in context.walk.pruned]
        info.complete = not context.walk.pruned
        info.errors = len(result.errors)
        if header.workchain_id == -1:
            info.mc_seq_no = header.seq_no
        elif header.master_ref is not None:
            info.mc_seq_no = header.master_ref.seq_no
        logger.debug(f'parse: {result}, complete={info.complete}, errors={info.errors}')
