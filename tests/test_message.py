from unittest.mock import MagicMock

import pytest
import rlp
from eth_abi import abi
from hexbytes import HexBytes
from web3 import Web3
from web3.exceptions import ContractCustomError, TimeExhausted, TransactionNotFound

from chains.nitro_stack import message as message_module
from chains.nitro_stack.custom_errors import MessageError, RetryableTicketError
from chains.nitro_stack.message import (
    REDEEM_SCHEDULED_SIGNATURE,
    ParentToChildMessageReader,
    ParentToChildMessageWriter,
    ParentTransactionReceipt,
    calculate_retryable_id,
    decode_inbox_message_data,
)
from chains.nitro_stack.networks import ensure_child_network
from chains.nitro_stack.types import MessageStatus
from utils.chain import get_error_selector
from utils.config import ARB_RETRYABLE_TX_ADDRESS

from conftest import (
    CHILD_CHAIN_ID,
    OFFLINE_W3,
    PARENT_CHAIN_ID,
    TX_HASH,
    make_eth_bridge,
    offline_contract,
)

SENDER = Web3.to_checksum_address("0x" + "5a" * 20)
DEST = Web3.to_checksum_address("0x" + "de" * 20)
REFUND = Web3.to_checksum_address("0x" + "4f" * 20)
CALLDATA = HexBytes("0x" + "c0ffee" * 12)

MESSAGE_DATA = {
    "dest_address": DEST,
    "l2_call_value": 0,
    "l1_value": 1_000,
    "max_submission_fee": 1_000,
    "excess_fee_refund_address": REFUND,
    "call_value_refund_address": REFUND,
    "gas_limit": 0,
    "max_fee_per_gas": 0,
    "data": CALLDATA,
}


def inbox_message_bytes() -> HexBytes:
    head = abi.encode(
        ["uint256"] * 9,
        [
            int(DEST, 16),
            0,
            1_000,
            1_000,
            int(REFUND, 16),
            int(REFUND, 16),
            0,
            0,
            len(CALLDATA),
        ],
    )
    return HexBytes(head + bytes(CALLDATA))


def make_reader(child_provider) -> ParentToChildMessageReader:
    return ParentToChildMessageReader(
        child_provider, CHILD_CHAIN_ID, SENDER, 3, 7, dict(MESSAGE_DATA)
    )


def test_decode_inbox_message_data():
    decoded = decode_inbox_message_data(inbox_message_bytes())

    assert decoded == MESSAGE_DATA


def test_retryable_id_encodes_zero_as_empty():
    expected_fields = [
        HexBytes(CHILD_CHAIN_ID.to_bytes(3, "big")),
        HexBytes((3).to_bytes(32, "big")),
        HexBytes(SENDER),
        HexBytes(b"\x07"),
        HexBytes((1_000).to_bytes(2, "big")),
        b"",
        b"",
        HexBytes(DEST),
        b"",
        HexBytes(REFUND),
        HexBytes((1_000).to_bytes(2, "big")),
        HexBytes(REFUND),
        CALLDATA,
    ]
    expected = Web3.keccak(b"\x69" + rlp.encode(expected_fields))

    assert calculate_retryable_id(CHILD_CHAIN_ID, SENDER, 3, 7, MESSAGE_DATA) == expected


def test_retryable_id_depends_on_message_number():
    first = calculate_retryable_id(CHILD_CHAIN_ID, SENDER, 3, 7, MESSAGE_DATA)
    second = calculate_retryable_id(CHILD_CHAIN_ID, SENDER, 4, 7, MESSAGE_DATA)

    assert first != second


def test_retryable_id_matches_raw_rlp_bytes():
    # hand-encoded rlp list, independent of the rlp package
    payload = bytes.fromhex(
        "f8a8"
        + "83064aba"  # chain id 412346
        + "a0" + "00" * 31 + "03"  # message number, fixed 32 bytes
        + "94" + "5a" * 20  # sender
        + "07"  # parent base fee
        + "8203e8"  # l1 value
        + "80"  # max fee per gas
        + "80"  # gas limit
        + "94" + "de" * 20  # destination
        + "80"  # l2 call value
        + "94" + "4f" * 20  # call value refund address
        + "8203e8"  # max submission fee
        + "94" + "4f" * 20  # excess fee refund address
        + "a4" + "c0ffee" * 12  # calldata
    )

    expected = Web3.keccak(b"\x69" + payload)

    assert calculate_retryable_id(CHILD_CHAIN_ID, SENDER, 3, 7, MESSAGE_DATA) == expected


def test_status_not_yet_created(child_provider):
    child_provider.eth.get_transaction_receipt.side_effect = TransactionNotFound("nope")

    assert make_reader(child_provider).status() == MessageStatus.NOT_YET_CREATED


def test_status_creation_failed(child_provider):
    child_provider.eth.get_transaction_receipt.return_value = {"status": 0, "logs": []}

    assert make_reader(child_provider).status() == MessageStatus.CREATION_FAILED


def test_status_auto_redeemed(child_provider):
    reader = make_reader(child_provider)
    retry_hash = HexBytes("0x" + "77" * 32)

    creation_receipt = {
        "status": 1,
        "logs": [
            {
                "address": ARB_RETRYABLE_TX_ADDRESS.lower(),
                "topics": [
                    HexBytes(Web3.keccak(text=REDEEM_SCHEDULED_SIGNATURE)),
                    reader.retryable_creation_id,
                    retry_hash,
                    HexBytes((0).to_bytes(32, "big")),
                ]
            }
        ],
    }
    receipts = {
        reader.retryable_creation_id: creation_receipt,
        retry_hash: {"status": 1, "logs": []},
    }
    child_provider.eth.get_transaction_receipt.side_effect = lambda h: receipts[HexBytes(h)]

    assert reader.status() == MessageStatus.REDEEMED


def test_redeem_scheduled_from_other_contract_is_ignored(child_provider):
    reader = make_reader(child_provider)
    creation_receipt = {
        "status": 1,
        "logs": [
            {
                "address": Web3.to_checksum_address("0x" + "e1" * 20),
                "topics": [
                    HexBytes(Web3.keccak(text=REDEEM_SCHEDULED_SIGNATURE)),
                    reader.retryable_creation_id,
                    HexBytes("0x" + "77" * 32),
                    HexBytes((0).to_bytes(32, "big")),
                ],
            }
        ],
    }

    assert reader.get_auto_redeem_txn(creation_receipt) is None


def test_status_funds_deposited(child_provider):
    child_provider.eth.get_transaction_receipt.return_value = {"status": 1, "logs": []}
    arb_retryable_tx = child_provider.eth.contract.return_value
    arb_retryable_tx.functions.getTimeout.return_value.call.return_value = 1_700_000_000

    assert make_reader(child_provider).status() == MessageStatus.FUNDS_DEPOSITED_ON_CHILD


def test_status_expired(child_provider):
    child_provider.eth.get_transaction_receipt.return_value = {"status": 1, "logs": []}
    selector = get_error_selector("NoTicketWithID()").to_0x_hex()
    arb_retryable_tx = child_provider.eth.contract.return_value
    arb_retryable_tx.functions.getTimeout.return_value.call.side_effect = (
        ContractCustomError(selector, data=selector)
    )

    assert make_reader(child_provider).status() == MessageStatus.EXPIRED


def test_wait_for_status_times_out(child_provider):
    child_provider.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("slow")

    with pytest.raises(MessageError, match="Timed out"):
        make_reader(child_provider).wait_for_status(timeout_ms=1_000)

    kwargs = child_provider.eth.wait_for_transaction_receipt.call_args.kwargs
    assert kwargs["timeout"] == 1


def test_wait_for_status_returns_receipt(child_provider):
    creation_receipt = {"status": 1, "logs": []}
    child_provider.eth.wait_for_transaction_receipt.return_value = creation_receipt
    child_provider.eth.get_transaction_receipt.return_value = creation_receipt
    arb_retryable_tx = child_provider.eth.contract.return_value
    arb_retryable_tx.functions.getTimeout.return_value.call.return_value = 1

    result = make_reader(child_provider).wait_for_status(timeout_ms=1_000)

    assert result["status"] == MessageStatus.FUNDS_DEPOSITED_ON_CHILD
    assert result["child_tx_receipt"] is creation_receipt


def make_writer(child_provider, child_account) -> ParentToChildMessageWriter:
    child_provider.eth.contract.side_effect = offline_contract
    return ParentToChildMessageWriter(
        child_account, child_provider, CHILD_CHAIN_ID, SENDER, 3, 7, dict(MESSAGE_DATA)
    )


def test_redeem(monkeypatch, child_provider, child_account):
    sent = []

    def fake_sign_and_send(w3, account, contract_fn, value=0):
        sent.append(contract_fn)
        return TX_HASH

    monkeypatch.setattr(message_module, "sign_and_send", fake_sign_and_send)
    child_provider.eth.wait_for_transaction_receipt.return_value = {"status": 1}

    writer = make_writer(child_provider, child_account)
    receipt = writer.redeem()

    assert receipt == {"status": 1}
    assert sent[0].args == (writer.retryable_creation_id,)


def test_redeem_missing_ticket(monkeypatch, child_provider, child_account):
    selector = get_error_selector("NoTicketWithID()").to_0x_hex()

    def fake_sign_and_send(w3, account, contract_fn, value=0):
        raise ContractCustomError(selector, data=selector)

    monkeypatch.setattr(message_module, "sign_and_send", fake_sign_and_send)

    with pytest.raises(RetryableTicketError, match="NoTicketWithID"):
        make_writer(child_provider, child_account).redeem()


def test_redeem_reverted(monkeypatch, child_provider, child_account):
    monkeypatch.setattr(
        message_module, "sign_and_send", lambda w3, account, fn, value=0: TX_HASH
    )
    child_provider.eth.wait_for_transaction_receipt.return_value = {"status": 0}

    with pytest.raises(RetryableTicketError, match="reverted"):
        make_writer(child_provider, child_account).redeem()


def _log(address, topics, data, log_index):
    return {
        "address": address,
        "topics": topics,
        "data": HexBytes(data),
        "logIndex": log_index,
        "transactionIndex": 0,
        "transactionHash": TX_HASH,
        "blockHash": HexBytes("0x" + "bb" * 32),
        "blockNumber": 105,
    }


def make_parent_receipt(include_inbox_event: bool = True):
    eth_bridge = make_eth_bridge()
    message_number = 3

    message_delivered = _log(
        eth_bridge["bridge"],
        [
            HexBytes(
                Web3.keccak(
                    text="MessageDelivered(uint256,bytes32,address,uint8,address,bytes32,uint256,uint64)"
                )
            ),
            HexBytes(message_number.to_bytes(32, "big")),
            HexBytes("0x" + "00" * 32),
        ],
        abi.encode(
            ["address", "uint8", "address", "bytes32", "uint256", "uint64"],
            [eth_bridge["inbox"], 9, SENDER, b"\x00" * 32, 7, 1_700_000_000],
        ),
        0,
    )
    inbox_delivered = _log(
        eth_bridge["inbox"],
        [
            HexBytes(Web3.keccak(text="InboxMessageDelivered(uint256,bytes)")),
            HexBytes(message_number.to_bytes(32, "big")),
        ],
        abi.encode(["bytes"], [bytes(inbox_message_bytes())]),
        1,
    )

    logs = [message_delivered, inbox_delivered] if include_inbox_event else [message_delivered]

    return {
        "status": 1,
        "blockNumber": 105,
        "transactionHash": TX_HASH,
        "logs": logs,
    }


@pytest.fixture
def child_network():
    return ensure_child_network(
        PARENT_CHAIN_ID, CHILD_CHAIN_ID, make_eth_bridge(), log=lambda message: None
    )


def test_get_parent_to_child_messages(child_provider, child_account, child_network):
    receipt = ParentTransactionReceipt(make_parent_receipt(), OFFLINE_W3, child_network)

    messages = receipt.get_parent_to_child_messages(child_provider, child_account)

    assert len(messages) == 1
    message = messages[0]
    assert message.chain_id == CHILD_CHAIN_ID
    assert message.sender == SENDER
    assert message.message_number == 3
    assert message.parent_base_fee == 7
    assert message.message_data == MESSAGE_DATA
    assert message.retryable_creation_id == calculate_retryable_id(
        CHILD_CHAIN_ID, SENDER, 3, 7, MESSAGE_DATA
    )


def test_missing_inbox_event(child_provider, child_account, child_network):
    receipt = ParentTransactionReceipt(
        make_parent_receipt(include_inbox_event=False), OFFLINE_W3, child_network
    )

    with pytest.raises(MessageError):
        receipt.get_parent_to_child_messages(child_provider, child_account)


def test_wait_for_child_uses_network_deposit_timeout(
    child_provider, child_account, child_network
):
    child_provider.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("slow")
    receipt = ParentTransactionReceipt(make_parent_receipt(), OFFLINE_W3, child_network)

    with pytest.raises(MessageError):
        receipt.wait_for_child(child_provider, child_account)

    kwargs = child_provider.eth.wait_for_transaction_receipt.call_args.kwargs
    assert kwargs["timeout"] == child_network["deposit_timeout"] / 1000
