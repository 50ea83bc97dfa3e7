"""
Producer adapters: each one reduces what a producer exports to a ParserInput.

A full node exports raw BOCs, an external indexing service a JSON document
with base64 BOCs, the local emulator a document with hex or base64 BOCs.
"""

import logging
from typing import Any
from typing import Mapping
from typing import Optional
from typing import Tuple
from typing import Union

from ..boc.boc import deserialize_boc
from ..boc.cell import Cell
from ..boc.cell import CellType
from ..const import HASH_BYTES
from ..errors import FormatError
from ..errors import ProofError
from ..merkle import verify_proof
from ..settings import ParserSettings
from ..utils import decode_data
from .parser import ParserInput
from .records import ProcessingStatus

logger = logging.getLogger(__name__)


def unwrap_proof(root: Cell) -> Tuple[Cell, bytes]:
    """
    :return: block root and its hash, a merkle proof is verified and opened
    """
    if root.type_ != CellType.merkle_proof:
        return root, root.get_hash(0)
    stored_hash = root.data[1:1 + HASH_BYTES]
    virtual_root = verify_proof(root, stored_hash)
    logger.debug(f'unwrap_proof: opened proof of {stored_hash.hex()}')
    return virtual_root, stored_hash


def load_root(data: Union[str, bytes], settings: Optional[ParserSettings] = None) -> Tuple[Cell, bytes]:
    roots = deserialize_boc(decode_data(data), settings=settings)
    if len(roots) != 1:
        raise FormatError(f'load_root error: expected one root, got {len(roots)}')
    return unwrap_proof(roots[0])


def check_hash(expected: Optional[Union[str, bytes]], actual: bytes) -> bytes:
    if expected is None:
        return actual
    if isinstance(expected, str):
        expected = bytes.fromhex(expected)
    if expected != actual:
        raise ProofError(f'check_hash error: block hash {actual.hex()} is not {expected.hex()}')
    return expected


def read_status(value: Any, default: ProcessingStatus) -> ProcessingStatus:
    if value is None:
        return default
    if isinstance(value, str):
        try:
            return ProcessingStatus[value.lower()]
        except KeyError:
            raise FormatError(f'read_status error: unknown status {value}')
    return ProcessingStatus(value)


def from_full_node(
        block_boc: bytes,
        prev_state_boc: Optional[bytes] = None,
        proof_boc: Optional[bytes] = None,
        settings: Optional[ParserSettings] = None
) -> ParserInput:
    """
    :param block_boc: block, plain or wrapped into a merkle proof
    :param prev_state_boc: shard state before the block
    :param proof_boc: merkle proof the block must match
    """
    block_root, block_hash = load_root(block_boc, settings)
    if proof_boc is not None:
        proof = deserialize_boc(decode_data(proof_boc), settings=settings)[0]
        verify_proof(proof, block_hash)
    prev_state_root = None
    if prev_state_boc is not None:
        prev_state_root, _ = load_root(prev_state_boc, settings)
    return ParserInput(
        block_root,
        prev_state_root=prev_state_root,
        expected_hash=block_hash,
        producer='full_node',
        status=ProcessingStatus.finalized
    )


def from_external_service(doc: Mapping[str, Any], settings: Optional[ParserSettings] = None) -> ParserInput:
    """
    :param doc: {"id": root hash hex, "boc": base64 block, "shard_state": base64 state after the block, "status": name}
    """
    if 'boc' not in doc:
        raise FormatError('from_external_service error: document has no boc')
    block_root, block_hash = load_root(doc['boc'], settings)
    block_hash = check_hash(doc.get('id'), block_hash)
    state_root = None
    if doc.get('shard_state') is not None:
        state_root, _ = load_root(doc['shard_state'], settings)
    return ParserInput(
        block_root,
        state_root=state_root,
        expected_hash=block_hash,
        producer='external_service',
        status=read_status(doc.get('status'), ProcessingStatus.finalized)
    )


def from_emulator(doc: Mapping[str, Any], settings: Optional[ParserSettings] = None) -> ParserInput:
    """
    :param doc: {"block": hex or base64 block, "prev_state": hex or base64 state before the block}
    """
    if 'block' not in doc:
        raise FormatError('from_emulator error: document has no block')
    block_root, block_hash = load_root(doc['block'], settings)
    prev_state_root = None
    if doc.get('prev_state') is not None:
        prev_state_root, _ = load_root(doc['prev_state'], settings)
    return ParserInput(
        block_root,
        prev_state_root=prev_state_root,
        expected_hash=block_hash,
        producer='emulator',
        status=ProcessingStatus.preliminary
    )
