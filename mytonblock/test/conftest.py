from typing import Dict
from typing import List
from typing import Optional
from typing import Tuple

from pytest import fixture

from mytonblock.boc import Builder
from mytonblock.boc import Cell
from mytonblock.dictionary import serialize_dict
from mytonblock.merkle import create_update

BOC = bytes.fromhex("b5ee9c7201010301000e000201c002010101ff0200060aaaaa")

ACCOUNT = 'a1' * 32
OTHER = 'b2' * 32
SHARD_FULL = 1 << 63
GEN_UTIME = 1700000000


def store_cc(builder: Builder, grams: int, other: Optional[Dict[int, int]] = None) -> Builder:
    builder.store_coins(grams)
    root = None
    if other:
        root = serialize_dict(other, 32, lambda b, v: b.store_var_uint(v, 32))
    return builder.store_maybe_ref(root)


def store_addr(builder: Builder, workchain: int, addr: str) -> Builder:
    builder.store_bits('100')
    builder.store_int(workchain, 8)
    return builder.store_bytes(bytes.fromhex(addr))


def store_shard_ident(builder: Builder, workchain: int, prefix_bits: int = 0, prefix: int = 0) -> Builder:
    builder.store_bits('00')
    builder.store_uint(prefix_bits, 6)
    builder.store_int(workchain, 32)
    return builder.store_uint(prefix, 64)


def int_message(src: str, dst: str, value: int, created_lt: int, workchain: int = 0, body: bytes = b'') -> Cell:
    builder = Builder()
    builder.store_bit(0)
    builder.store_bit(1).store_bit(1).store_bit(0)
    store_addr(builder, workchain, src)
    store_addr(builder, workchain, dst)
    store_cc(builder, value)
    builder.store_coins(0)
    builder.store_coins(1000)
    builder.store_uint(created_lt, 64)
    builder.store_uint(GEN_UTIME, 32)
    builder.store_bit(0)
    builder.store_bit(0)
    builder.store_bytes(body)
    return builder.end_cell()


def ext_in_message(dst: str, workchain: int = 0, body: bytes = b'') -> Cell:
    builder = Builder()
    builder.store_bits('10')
    builder.store_bits('00')
    store_addr(builder, workchain, dst)
    builder.store_coins(0)
    builder.store_bit(0)
    if body:
        builder.store_bit(1)
        builder.store_ref(Builder().store_bytes(body).end_cell())
    else:
        builder.store_bit(0)
    return builder.end_cell()


def hash_update(old: bytes = b'\x00' * 32, new: bytes = b'\x11' * 32) -> Cell:
    return Builder().store_uint(0x72, 8).store_bytes(old).store_bytes(new).end_cell()


def compute_details() -> Cell:
    builder = Builder()
    builder.store_var_uint(1500, 7)
    builder.store_var_uint(10000, 7)
    builder.store_bit(0)
    builder.store_int(0, 8)
    builder.store_int(0, 32)
    builder.store_bit(0)
    builder.store_uint(42, 32)
    builder.store_bytes(b'\x01' * 32)
    builder.store_bytes(b'\x02' * 32)
    return builder.end_cell()


def action_phase() -> Cell:
    builder = Builder()
    builder.store_bit(1).store_bit(1).store_bit(0)
    builder.store_bit(0)
    builder.store_bit(1).store_coins(1000)
    builder.store_bit(0)
    builder.store_int(0, 32)
    builder.store_bit(0)
    builder.store_uint(1, 16).store_uint(0, 16).store_uint(0, 16).store_uint(1, 16)
    builder.store_bytes(b'\x03' * 32)
    builder.store_var_uint(1, 7).store_var_uint(100, 7)
    return builder.end_cell()


def ordinary_descr() -> Cell:
    builder = Builder()
    builder.store_bits('0000')
    builder.store_bit(0)
    # storage phase
    builder.store_bit(1)
    builder.store_coins(10).store_bit(0).store_bit(0)
    # credit phase
    builder.store_bit(1)
    builder.store_bit(0)
    store_cc(builder, 1000)
    # compute phase
    builder.store_bit(1)
    builder.store_bit(1).store_bit(0).store_bit(0)
    builder.store_coins(1500)
    builder.store_ref(compute_details())
    # action phase
    builder.store_bit(1)
    builder.store_ref(action_phase())
    builder.store_bit(0)
    builder.store_bit(0)
    builder.store_bit(0)
    return builder.end_cell()


def transaction(
        account: str,
        lt: int,
        in_msg: Optional[Cell] = None,
        out_msgs: Tuple[Cell, ...] = (),
        tag: str = '0111',
        descr: Optional[Cell] = None,
        messages: Optional[Cell] = None
) -> Cell:
    if messages is None:
        builder = Builder()
        builder.store_maybe_ref(in_msg)
        out_root = serialize_dict(dict(enumerate(out_msgs)), 15, lambda b, v: b.store_ref(v))
        builder.store_maybe_ref(out_root)
        messages = builder.end_cell()

    builder = Builder()
    builder.store_bits(tag)
    builder.store_bytes(bytes.fromhex(account))
    builder.store_uint(lt, 64)
    builder.store_bytes(b'\x00' * 32)
    builder.store_uint(0, 64)
    builder.store_uint(GEN_UTIME, 32)
    builder.store_uint(len(out_msgs), 15)
    builder.store_uint(0b10, 2).store_uint(0b10, 2)
    builder.store_ref(messages)
    store_cc(builder, 1510)
    builder.store_ref(hash_update())
    builder.store_ref(descr if descr is not None else ordinary_descr())
    return builder.end_cell()


def store_tx_ref(builder: Builder, cell: Optional[Cell]):
    # None leaves the leaf without its ^Transaction
    if cell is not None:
        builder.store_ref(cell)


def account_block(account: str, transactions: List[Tuple[int, Optional[Cell]]]) -> Cell:
    root = serialize_dict(
        dict(transactions), 64,
        store_tx_ref,
        aug=lambda b, values: store_cc(b, 1510 * len(values))
    )
    builder = Builder()
    builder.store_uint(0x5, 4)
    builder.store_bytes(bytes.fromhex(account))
    builder.store_slice(root.begin_parse())
    builder.store_ref(hash_update())
    return builder.end_cell()


def account_blocks(blocks: Dict[str, Cell]) -> Cell:
    root = serialize_dict(
        {int(addr, 16): cell for addr, cell in blocks.items()}, 256,
        lambda b, v: b.store_slice(v.begin_parse()),
        aug=lambda b, values: store_cc(b, 0)
    )
    builder = Builder()
    builder.store_maybe_ref(root)
    store_cc(builder, 0)
    return builder.end_cell()


def account_state(account: str, balance: int, workchain: int = 0, last_trans_lt: int = 0) -> Cell:
    builder = Builder()
    builder.store_bit(1)
    store_addr(builder, workchain, account)
    builder.store_var_uint(3, 7).store_var_uint(500, 7).store_var_uint(0, 7)
    builder.store_uint(GEN_UTIME - 1, 32)
    builder.store_bit(0)
    builder.store_uint(last_trans_lt, 64)
    store_cc(builder, balance)
    # account_active with StateInit
    builder.store_bit(1)
    builder.store_bit(0).store_bit(0)
    builder.store_maybe_ref(Builder().store_bytes(b'code').end_cell())
    builder.store_maybe_ref(Builder().store_bytes(b'data').end_cell())
    builder.store_bit(0)
    return builder.end_cell()


def shard_accounts(accounts: Dict[str, Tuple[Cell, int]]) -> Cell:
    def store_value(builder, value):
        cell, lt = value
        builder.store_ref(cell)
        builder.store_bytes(b'\x44' * 32)
        builder.store_uint(lt, 64)

    def aug(builder, values):
        builder.store_uint(0, 5)
        store_cc(builder, 0)

    root = serialize_dict({int(addr, 16): value for addr, value in accounts.items()}, 256, store_value, aug)
    builder = Builder()
    builder.store_maybe_ref(root)
    builder.store_uint(0, 5)
    store_cc(builder, 0)
    return builder.end_cell()


def shard_state(accounts: Cell, seq_no: int, workchain: int = 0, custom: Optional[Cell] = None) -> Cell:
    builder = Builder()
    builder.store_uint(0x9023afe2, 32)
    builder.store_int(-239, 32)
    store_shard_ident(builder, workchain)
    builder.store_uint(seq_no, 32)
    builder.store_uint(0, 32)
    builder.store_uint(GEN_UTIME, 32)
    builder.store_uint(seq_no * 1000, 64)
    builder.store_uint(0, 32)
    builder.store_ref(Cell())
    builder.store_bit(0)
    builder.store_ref(accounts)
    builder.store_ref(Cell())
    builder.store_maybe_ref(custom)
    return builder.end_cell()


def ext_blk_ref(seq_no: int) -> Cell:
    builder = Builder()
    builder.store_uint(seq_no * 1000, 64)
    builder.store_uint(seq_no, 32)
    builder.store_bytes(b'\x05' * 32)
    builder.store_bytes(b'\x06' * 32)
    return builder.end_cell()


def block_info(seq_no: int, workchain: int = 0, key_block: bool = False, mc_seq_no: int = 77) -> Cell:
    not_master = workchain != -1
    builder = Builder()
    builder.store_uint(0x9bc7a987, 32)
    builder.store_uint(0, 32)
    builder.store_bit(not_master)
    builder.store_bits('0000')
    builder.store_bit(0)
    builder.store_bit(key_block)
    builder.store_bit(0)
    builder.store_uint(1, 8)
    builder.store_uint(seq_no, 32)
    builder.store_uint(0, 32)
    store_shard_ident(builder, workchain)
    builder.store_uint(GEN_UTIME, 32)
    builder.store_uint(seq_no * 1000, 64)
    builder.store_uint(seq_no * 1000 + 10, 64)
    builder.store_uint(0x12345678, 32)
    builder.store_uint(5, 32)
    builder.store_uint(mc_seq_no, 32)
    builder.store_uint(0, 32)
    builder.store_uint(0xc4, 8).store_uint(4, 32).store_uint(0x2e, 64)
    if not_master:
        builder.store_ref(ext_blk_ref(mc_seq_no))
    builder.store_ref(ext_blk_ref(seq_no - 1))
    return builder.end_cell()


def value_flow() -> Cell:
    first = Builder()
    for grams in (100, 200, 0, 0):
        store_cc(first, grams)
    second = Builder()
    for grams in (0, 0, 5, 0):
        store_cc(second, grams)
    builder = Builder()
    builder.store_uint(0xb8e48dfb, 32)
    builder.store_ref(first.end_cell())
    store_cc(builder, 1510)
    builder.store_ref(second.end_cell())
    return builder.end_cell()


def msg_envelope(msg: Cell, fwd_fee_remaining: int = 0) -> Cell:
    builder = Builder()
    builder.store_uint(0x4, 4)
    # interm_addr_regular with use_dest_bits 0, then 96
    builder.store_bit(0).store_uint(0, 7)
    builder.store_bit(0).store_uint(96, 7)
    builder.store_coins(fwd_fee_remaining)
    builder.store_ref(msg)
    return builder.end_cell()


def in_msg_ext(msg: Cell, tx: Cell) -> Cell:
    return Builder().store_bits('000').store_ref(msg).store_ref(tx).end_cell()


def in_msg_imm(msg: Cell, tx: Cell, fwd_fee: int) -> Cell:
    builder = Builder()
    builder.store_bits('011')
    builder.store_ref(msg_envelope(msg))
    builder.store_ref(tx)
    return builder.store_coins(fwd_fee).end_cell()


def out_msg_new(msg: Cell, tx: Cell, fwd_fee_remaining: int = 0) -> Cell:
    builder = Builder()
    builder.store_bits('001')
    builder.store_ref(msg_envelope(msg, fwd_fee_remaining))
    return builder.store_ref(tx).end_cell()


def store_import_fees(builder: Builder, amount: int) -> Builder:
    builder.store_coins(amount)
    return store_cc(builder, amount)


def msg_descr(entries: List[Tuple[Cell, Cell, int]], store_aug) -> Cell:
    """
    :param entries: (message, InMsg or OutMsg, amount) triples, keyed by the message hash
    """
    root = serialize_dict(
        {int.from_bytes(msg.hash, 'big'): (descr, amount) for msg, descr, amount in entries}, 256,
        lambda b, v: b.store_slice(v[0].begin_parse()),
        aug=lambda b, values: store_aug(b, sum(amount for _, amount in values))
    )
    builder = Builder()
    builder.store_maybe_ref(root)
    store_aug(builder, sum(amount for _, _, amount in entries))
    return builder.end_cell()


def in_msg_descr(entries: List[Tuple[Cell, Cell, int]]) -> Cell:
    return msg_descr(entries, store_import_fees)


def out_msg_descr(entries: List[Tuple[Cell, Cell, int]]) -> Cell:
    return msg_descr(entries, store_cc)


def block_extra(
        blocks: Cell,
        custom: Optional[Cell] = None,
        in_descr: Optional[Cell] = None,
        out_descr: Optional[Cell] = None
) -> Cell:
    builder = Builder()
    builder.store_uint(0x4a33f6fd, 32)
    builder.store_ref(in_descr if in_descr is not None else in_msg_descr([]))
    builder.store_ref(out_descr if out_descr is not None else out_msg_descr([]))
    builder.store_ref(blocks)
    builder.store_bytes(b'\x07' * 32)
    builder.store_bytes(b'\x08' * 32)
    builder.store_maybe_ref(custom)
    return builder.end_cell()


def block(info: Cell, update: Cell, extra: Cell, global_id: int = -239) -> Cell:
    builder = Builder()
    builder.store_uint(0x11ef55aa, 32)
    builder.store_int(global_id, 32)
    builder.store_ref(info)
    builder.store_ref(value_flow())
    builder.store_ref(update)
    builder.store_ref(extra)
    return builder.end_cell()


def shard_descr(seq_no: int) -> Cell:
    builder = Builder()
    builder.store_bit(0)
    builder.store_uint(0xb, 4)
    builder.store_uint(seq_no, 32)
    builder.store_uint(70, 32)
    builder.store_uint(seq_no * 1000, 64)
    builder.store_uint(seq_no * 1000 + 10, 64)
    builder.store_bytes(b'\x09' * 32)
    builder.store_bytes(b'\x0a' * 32)
    builder.store_bits('00000')
    builder.store_uint(0, 3)
    builder.store_uint(3, 32)
    builder.store_uint(SHARD_FULL, 64)
    builder.store_uint(70, 32)
    builder.store_uint(GEN_UTIME - 5, 32)
    builder.store_bit(0)
    store_cc(builder, 11)
    store_cc(builder, 22)
    return builder.end_cell()


def config_dict(params: Dict[int, Cell]) -> Cell:
    return serialize_dict(params, 32, lambda b, v: b.store_ref(v))


def block_signatures(nodes: Dict[int, bytes], mint_msg: Optional[Cell] = None) -> Cell:
    def store_pair(builder, node_id):
        builder.store_bytes(node_id)
        builder.store_uint(0x5, 4)
        builder.store_bytes(b'\x0c' * 32).store_bytes(b'\x0d' * 32)

    builder = Builder()
    builder.store_maybe_ref(serialize_dict(nodes, 16, store_pair))
    builder.store_maybe_ref(None)
    builder.store_maybe_ref(mint_msg)
    return builder.end_cell()


def mc_block_extra(
        config: Optional[Cell] = None,
        shard_seq_no: int = 200,
        signatures: Optional[Cell] = None
) -> Cell:
    shard_hashes = serialize_dict({0: shard_descr(shard_seq_no)}, 32, lambda b, v: b.store_ref(v))

    def store_fees(builder, value):
        store_cc(builder, value[0])
        store_cc(builder, value[1])

    fees_root = serialize_dict(
        {SHARD_FULL: (3, 4)}, 96, store_fees,
        aug=lambda b, values: store_fees(b, (3, 4))
    )
    builder = Builder()
    builder.store_uint(0xcca5, 16)
    builder.store_bit(config is not None)
    builder.store_maybe_ref(shard_hashes)
    builder.store_maybe_ref(fees_root)
    store_fees(builder, (3, 4))
    builder.store_ref(signatures if signatures is not None else block_signatures({}))
    if config is not None:
        builder.store_bytes(b'\x55' * 32)
        builder.store_ref(config)
    return builder.end_cell()


class SyntheticBlock:
    """
    Shard block with accounts, their transactions and the states around it
    """
    def __init__(
            self,
            transactions: Dict[str, List[Tuple[int, Optional[Cell]]]],
            workchain: int = 0,
            seq_no: int = 100,
            custom=None,
            in_descr: Optional[Cell] = None,
            out_descr: Optional[Cell] = None
    ):
        blocks = {addr: account_block(addr, items) for addr, items in transactions.items()}
        old_accounts = {addr: (account_state(addr, 10 ** 9, workchain), 0) for addr in transactions}
        new_accounts = {
            addr: (account_state(addr, 10 ** 9 - 1510 * len(items), workchain, items[-1][0]), items[-1][0])
            for addr, items in transactions.items()
        }
        new_accounts[OTHER] = (account_state(OTHER, 5 * 10 ** 8, workchain), 0)
        old_accounts[OTHER] = new_accounts[OTHER]
        self.old_state = shard_state(shard_accounts(old_accounts), seq_no - 1, workchain)
        self.new_state = shard_state(shard_accounts(new_accounts), seq_no, workchain)
        self.update = create_update(self.old_state, self.new_state)
        self.info = block_info(seq_no, workchain)
        self.extra = block_extra(account_blocks(blocks), custom, in_descr, out_descr)
        self.root = block(self.info, self.update, self.extra)


@fixture
def out_msg():
    return int_message(ACCOUNT, OTHER, 10 ** 6, 100001)


@fixture
def one_tx_block(out_msg):
    tx = transaction(ACCOUNT, 100001, out_msgs=(out_msg,))
    return SyntheticBlock({ACCOUNT: [(100001, tx)]})


@fixture
def masterchain_params():
    return {
        8: Builder().store_uint(0xc4, 8).store_uint(4, 32).store_uint(0x2e, 64).end_cell(),
        15: Builder().store_uint(65536, 32).store_uint(32768, 32).store_uint(8192, 32).store_uint(32768, 32).end_cell(),
        999: Builder().store_uint(0xdeadbeef, 32).end_cell(),
    }
