import base64

import pytest

from mytonblock.block import BlockParser
from mytonblock.block import ProcessingStatus
from mytonblock.block import from_emulator
from mytonblock.block import from_external_service
from mytonblock.block import from_full_node
from mytonblock.block.adapters import read_status
from mytonblock.block.adapters import unwrap_proof
from mytonblock.boc import Cell
from mytonblock.boc import serialize_boc
from mytonblock.errors import FormatError
from mytonblock.errors import ProofError
from mytonblock.merkle import create_proof


def b64(data: bytes) -> str:
    return base64.b64encode(data).decode()


def test_full_node(one_tx_block):
    parser_input = from_full_node(serialize_boc(one_tx_block.root))
    assert parser_input.producer == 'full_node'
    assert parser_input.status == ProcessingStatus.finalized
    assert parser_input.expected_hash == one_tx_block.root.hash
    assert parser_input.prev_state_root is None


def test_full_node_with_proof(one_tx_block):
    proof = create_proof(one_tx_block.root, [one_tx_block.info.hash])
    parser_input = from_full_node(serialize_boc(one_tx_block.root), proof_boc=serialize_boc(proof))
    assert parser_input.block_root.hash == one_tx_block.root.hash


def test_full_node_with_foreign_proof(one_tx_block):
    proof = create_proof(one_tx_block.old_state, [one_tx_block.old_state.hash])
    with pytest.raises(ProofError):
        from_full_node(serialize_boc(one_tx_block.root), proof_boc=serialize_boc(proof))


def test_unwrap_plain_root(one_tx_block):
    root, root_hash = unwrap_proof(one_tx_block.root)
    assert root is one_tx_block.root
    assert root_hash == one_tx_block.root.hash


def test_two_roots(one_tx_block):
    data = serialize_boc([one_tx_block.root, Cell()])
    with pytest.raises(FormatError):
        from_full_node(data)


def test_external_service(one_tx_block):
    doc = {
        'id': one_tx_block.root.hash.hex(),
        'boc': b64(serialize_boc(one_tx_block.root)),
        'status': 'proposed',
    }
    parser_input = from_external_service(doc)
    assert parser_input.producer == 'external_service'
    assert parser_input.status == ProcessingStatus.proposed
    result = BlockParser().parse(parser_input)
    assert result.transactions[0].status == ProcessingStatus.proposed
    assert result.messages[0].status == ProcessingStatus.proposed


def test_external_service_wrong_id(one_tx_block):
    doc = {'id': '00' * 32, 'boc': b64(serialize_boc(one_tx_block.root))}
    with pytest.raises(ProofError):
        from_external_service(doc)


def test_external_service_without_boc():
    with pytest.raises(FormatError):
        from_external_service({'id': '00' * 32})


def test_emulator(one_tx_block):
    doc = {
        'block': serialize_boc(one_tx_block.root).hex(),
        'prev_state': b64(serialize_boc(one_tx_block.old_state)),
    }
    parser_input = from_emulator(doc)
    assert parser_input.producer == 'emulator'
    assert parser_input.status == ProcessingStatus.preliminary
    result = BlockParser().parse(parser_input)
    assert result.accounts[0].balance.grams == 10 ** 9 - 1510
    assert result.info.status == ProcessingStatus.preliminary


def test_emulator_without_block():
    with pytest.raises(FormatError):
        from_emulator({'prev_state': ''})


def test_producers_give_same_records(one_tx_block):
    block_boc = serialize_boc(one_tx_block.root)
    full_node = BlockParser().parse(from_full_node(block_boc)).to_dict()
    external = BlockParser().parse(from_external_service({'boc': b64(block_boc)})).to_dict()
    for result in (full_node, external):
        result['info'].pop('producer')
    assert full_node == external


@pytest.mark.parametrize('value,expected', (
    (None, ProcessingStatus.finalized),
    ('Refused', ProcessingStatus.refused),
    (1, ProcessingStatus.proposed),
))
def test_read_status(value, expected):
    assert read_status(value, ProcessingStatus.finalized) == expected


def test_read_unknown_status():
    with pytest.raises(FormatError):
        read_status('lost', ProcessingStatus.finalized)
