"""
Parent-to-child messages (retryable tickets) on Nitro chains: locating them in a
parent-chain receipt, tracking their status on the child chain and redeeming them
manually when auto-redeem didn't happen.
"""

from typing import List, Optional
import rlp
from eth_abi import abi
from eth_account.signers.local import LocalAccount
from eth_typing import ChecksumAddress
from hexbytes import HexBytes
from web3 import Web3
from web3.constants import ADDRESS_ZERO
from web3.contract import Contract
from web3.exceptions import ContractLogicError, TimeExhausted, TransactionNotFound
from web3.logs import DISCARD
from web3.types import TxReceipt

from utils.chain import get_abi, sign_and_send
from utils.config import (
    ABI_ARB_RETRYABLE_TX,
    ABI_BRIDGE,
    ABI_INBOX,
    ARB_RETRYABLE_TX_ADDRESS,
)
from .custom_errors import MessageError, RetryableTicketError
from .types import (
    ChildNetwork,
    MessageStatus,
    MessageWaitResult,
    RetryableMessageParams,
)

TXN_SUCCESSFUL = 1

# EIP-2718 type of ArbitrumSubmitRetryableTx
SUBMIT_RETRYABLE_TX_TYPE = b"\x69"

REDEEM_SCHEDULED_SIGNATURE = (
    "RedeemScheduled(bytes32,bytes32,uint64,uint64,address,uint256,uint256)"
)


def _format_number(value: int) -> HexBytes:
    # minimal big-endian bytes, zero encodes as empty
    return HexBytes(HexBytes(value).lstrip(b"\x00"))


def decode_inbox_message_data(data: HexBytes) -> RetryableMessageParams:
    """
    decodes the `data` of an `InboxMessageDelivered` event emitted for a retryable ticket

    Parameters
    ----------
    `data` : HexBytes

    Returns
    -------
    RetryableMessageParams
    """
    data_abi_types = [
        "uint256",  ## dest
        "uint256",  ## l2 call value
        "uint256",  ## msg val
        "uint256",  ## max submission
        "uint256",  ## excess fee refund addr
        "uint256",  ## call value refund addr
        "uint256",  ## max gas
        "uint256",  ## gas price bid
        "uint256",  ## data length
    ]

    decoded = abi.decode(data_abi_types, data, strict=False)

    calldata_length = decoded[8]

    if calldata_length > 0:
        calldata = HexBytes(data[-calldata_length:])
    else:
        calldata = HexBytes("0x")

    def to_address(value: int) -> ChecksumAddress:
        return Web3.to_checksum_address(value.to_bytes(20, byteorder="big"))

    return {
        "dest_address": to_address(decoded[0]),
        "l2_call_value": decoded[1],
        "l1_value": decoded[2],
        "max_submission_fee": decoded[3],
        "excess_fee_refund_address": to_address(decoded[4]),
        "call_value_refund_address": to_address(decoded[5]),
        "gas_limit": decoded[6],
        "max_fee_per_gas": decoded[7],
        "data": calldata,
    }


def calculate_retryable_id(
    chain_id: int,
    from_: ChecksumAddress,
    message_number: int,
    parent_base_fee: int,
    message_data: RetryableMessageParams,
) -> HexBytes:
    """
    Helper method to calculate retryable ticket transaction hash that is created on the
    child chain once the parent transaction is included. All the parameters are available
    in events emitted by the Bridge and Inbox on the parent chain.

    Parameters
    ----------
    `chain_id` : int
    `from_` : ChecksumAddress
    `message_number` : int
    `parent_base_fee` : int
    `message_data` : RetryableMessageParams

    Returns
    -------
    `retryable_ticket_id` : HexBytes
    """
    dest_address = message_data["dest_address"]

    fields: List[HexBytes] = [
        _format_number(chain_id),
        HexBytes(message_number.to_bytes(32, byteorder="big")),
        # sender address (as in MessageDelivered event)
        HexBytes(from_),
        _format_number(parent_base_fee),
        _format_number(message_data["l1_value"]),
        _format_number(message_data["max_fee_per_gas"]),
        _format_number(message_data["gas_limit"]),
        # empty in case of contract creation
        HexBytes(dest_address) if dest_address != ADDRESS_ZERO else HexBytes(b""),
        _format_number(message_data["l2_call_value"]),
        HexBytes(message_data["call_value_refund_address"]),
        _format_number(message_data["max_submission_fee"]),
        HexBytes(message_data["excess_fee_refund_address"]),
        HexBytes(message_data["data"]),
    ]

    rlp_encoded = rlp.encode(fields)

    return HexBytes(Web3.keccak(SUBMIT_RETRYABLE_TX_TYPE + bytes(rlp_encoded)))


class ParentToChildMessageReader:
    """
    Read-only view of a retryable ticket on the child chain.

    Parameters
    ----------
    `child_provider` : Web3
    `chain_id` : int
        child chain id
    `sender` : ChecksumAddress
        (aliased) sender as recorded by the Bridge
    `message_number` : int
    `parent_base_fee` : int
    `message_data` : RetryableMessageParams
    """

    def __init__(
        self,
        child_provider: Web3,
        chain_id: int,
        sender: ChecksumAddress,
        message_number: int,
        parent_base_fee: int,
        message_data: RetryableMessageParams,
    ) -> None:
        self.child_provider = child_provider
        self.chain_id = chain_id
        self.sender = sender
        self.message_number = message_number
        self.parent_base_fee = parent_base_fee
        self.message_data = message_data
        self.retryable_creation_id = calculate_retryable_id(
            chain_id, sender, message_number, parent_base_fee, message_data
        )

    def _get_arb_retryable_tx(self) -> Contract:
        return self.child_provider.eth.contract(
            ARB_RETRYABLE_TX_ADDRESS, abi=get_abi(ABI_ARB_RETRYABLE_TX)
        )

    def get_retryable_creation_receipt(self) -> Optional[TxReceipt]:
        try:
            return self.child_provider.eth.get_transaction_receipt(
                self.retryable_creation_id
            )
        except TransactionNotFound:
            return None

    def get_auto_redeem_txn(self, creation_receipt: TxReceipt) -> Optional[HexBytes]:
        """
        Looks for the `RedeemScheduled` event in the ticket creation receipt and returns
        the hash of the scheduled (auto-redeem) retry transaction.
        """
        redeem_scheduled_topic = HexBytes(Web3.keccak(text=REDEEM_SCHEDULED_SIGNATURE))

        for log in creation_receipt.get("logs", []):
            topics = log.get("topics", [])

            if not topics or log.get("address") is None:
                continue

            # only the ArbRetryableTx precompile schedules redeems
            if Web3.to_checksum_address(log["address"]) != ARB_RETRYABLE_TX_ADDRESS:
                continue

            if HexBytes(topics[0]) == redeem_scheduled_topic and len(topics) >= 3:
                return HexBytes(topics[2])

        return None

    def is_ticket_alive(self) -> bool:
        arb_retryable_tx = self._get_arb_retryable_tx()

        try:
            timeout = arb_retryable_tx.functions.getTimeout(
                self.retryable_creation_id
            ).call()
        except ContractLogicError:
            # NoTicketWithID: redeemed or expired
            return False

        return timeout > 0

    def status(self) -> MessageStatus:
        """
        Provides status of the retryable ticket on the child chain.

        `REDEEMED` means the auto-redeem succeeded. `FUNDS_DEPOSITED_ON_CHILD` means the
        ticket exists but hasn't been redeemed, so it needs a manual `redeem()`.

        `EXPIRED` represents both manually redeemed and expired tickets, as telling them
        apart requires scanning child blocks for a successful redeem.

        Returns
        -------
        MessageStatus
        """
        creation_receipt = self.get_retryable_creation_receipt()

        if creation_receipt is None:
            return MessageStatus.NOT_YET_CREATED

        if creation_receipt["status"] != TXN_SUCCESSFUL:
            return MessageStatus.CREATION_FAILED

        auto_redeem_txn = self.get_auto_redeem_txn(creation_receipt)

        if auto_redeem_txn is not None:
            try:
                redeem_receipt = self.child_provider.eth.get_transaction_receipt(
                    auto_redeem_txn
                )
                if redeem_receipt["status"] == TXN_SUCCESSFUL:
                    return MessageStatus.REDEEMED
            except TransactionNotFound:
                pass

        if self.is_ticket_alive():
            return MessageStatus.FUNDS_DEPOSITED_ON_CHILD

        return MessageStatus.EXPIRED

    def wait_for_status(
        self, timeout_ms: int, poll_latency: float = 1.0
    ) -> MessageWaitResult:
        """
        Waits for the ticket to be created on the child chain and returns its status.

        Parameters
        ----------
        `timeout_ms` : int
            how long to wait for the creation receipt (milliseconds)
        `poll_latency` : float
            seconds between polls

        Returns
        -------
        MessageWaitResult
        TypedDict[status, child_tx_receipt]
        """
        try:
            creation_receipt = self.child_provider.eth.wait_for_transaction_receipt(
                self.retryable_creation_id,
                timeout=timeout_ms / 1000,
                poll_latency=poll_latency,
            )
        except TimeExhausted as e:
            raise MessageError(
                "Timed out waiting to retrieve retryable creation receipt: "
                f"{self.retryable_creation_id.to_0x_hex()}",
                e,
            )

        return {"status": self.status(), "child_tx_receipt": creation_receipt}


class ParentToChildMessageWriter(ParentToChildMessageReader):
    """
    Same as the reader, but signs redemptions on the child chain with `child_account`.
    """

    def __init__(
        self,
        child_account: LocalAccount,
        child_provider: Web3,
        chain_id: int,
        sender: ChecksumAddress,
        message_number: int,
        parent_base_fee: int,
        message_data: RetryableMessageParams,
    ) -> None:
        super().__init__(
            child_provider,
            chain_id,
            sender,
            message_number,
            parent_base_fee,
            message_data,
        )
        self.child_account = child_account

    def redeem(self) -> TxReceipt:
        """
        Manually redeem the retryable ticket via `redeem()` in ARB_RETRYABLE_TX precompile.

        Returns
        -------
        TxReceipt
        """
        arb_retryable_tx = self._get_arb_retryable_tx()

        redeem = arb_retryable_tx.functions.redeem(self.retryable_creation_id)

        try:
            txn_hash = sign_and_send(self.child_provider, self.child_account, redeem)
        except ContractLogicError as e:
            raise RetryableTicketError.from_contract_error(arb_retryable_tx, e)

        redeem_receipt = self.child_provider.eth.wait_for_transaction_receipt(txn_hash)

        if redeem_receipt["status"] != TXN_SUCCESSFUL:
            raise RetryableTicketError(
                f"`redeem` transaction {txn_hash.to_0x_hex()} reverted."
            )

        return redeem_receipt


class ParentTransactionReceipt:
    """
    Wraps a parent-chain receipt that created one or more retryable tickets.

    Parameters
    ----------
    `receipt` : TxReceipt
    `parent_provider` : Web3
    `child_network` : ChildNetwork
        network whose Bridge and Inbox emitted the messages
    """

    def __init__(
        self, receipt: TxReceipt, parent_provider: Web3, child_network: ChildNetwork
    ) -> None:
        self.receipt = receipt
        self.parent_provider = parent_provider
        self.child_network = child_network

    @property
    def transaction_hash(self) -> HexBytes:
        return HexBytes(self.receipt["transactionHash"])

    @property
    def block_number(self) -> int:
        return self.receipt["blockNumber"]

    def get_parent_to_child_messages(
        self, child_provider: Web3, child_account: LocalAccount
    ) -> List[ParentToChildMessageWriter]:
        """
        Parses `MessageDelivered` (Bridge) and `InboxMessageDelivered` (Inbox) events
        from the receipt and pairs them by message number.
        """
        eth_bridge = self.child_network["eth_bridge"]

        bridge = self.parent_provider.eth.contract(
            eth_bridge["bridge"], abi=get_abi(ABI_BRIDGE)
        )
        inbox = self.parent_provider.eth.contract(
            eth_bridge["inbox"], abi=get_abi(ABI_INBOX)
        )

        message_delivered_events = bridge.events.MessageDelivered().process_receipt(
            self.receipt, errors=DISCARD
        )
        inbox_message_events = inbox.events.InboxMessageDelivered().process_receipt(
            self.receipt, errors=DISCARD
        )

        if not inbox_message_events:
            raise MessageError(
                f"`txn_hash: {self.transaction_hash.to_0x_hex()}` does not emit "
                "`InboxMessageDelivered` event."
            )

        delivered_by_index = {
            event["args"]["messageIndex"]: event for event in message_delivered_events
        }

        chain_id = self.child_network["chain_id"]
        messages: List[ParentToChildMessageWriter] = []

        for inbox_event in inbox_message_events:
            message_number: int = inbox_event["args"]["messageNum"]
            delivered = delivered_by_index.get(message_number)

            if delivered is None:
                raise MessageError(
                    f"No `MessageDelivered` event for message {message_number}."
                )

            messages.append(
                ParentToChildMessageWriter(
                    child_account,
                    child_provider,
                    chain_id,
                    Web3.to_checksum_address(delivered["args"]["sender"]),
                    message_number,
                    delivered["args"]["baseFeeL1"],
                    decode_inbox_message_data(HexBytes(inbox_event["args"]["data"])),
                )
            )

        return messages

    def wait_for_child(
        self, child_provider: Web3, child_account: LocalAccount
    ) -> MessageWaitResult:
        """
        Waits for the first message of this receipt on the child chain.
        """
        message = self.get_parent_to_child_messages(child_provider, child_account)[0]

        return message.wait_for_status(self.child_network["deposit_timeout"])

