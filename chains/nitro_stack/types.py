from enum import Enum
from typing import List, Optional, TypedDict

from eth_typing import ChecksumAddress
from hexbytes import HexBytes
from web3.types import TxReceipt, Wei


class EstimateRetryableTicketParams(TypedDict):
    sender: ChecksumAddress
    to: ChecksumAddress
    l2_call_value: Wei
    excess_fee_refund_address: ChecksumAddress
    call_value_refund_address: ChecksumAddress
    data: HexBytes


class RetryableGasParams(TypedDict):
    max_submission_cost: int
    max_fee_per_gas: int
    gas_limit: int


class GasEstimates(RetryableGasParams):
    deposit: int


class CallRequest(TypedDict):
    to: ChecksumAddress
    data: HexBytes
    value: int
    from_: ChecksumAddress


class RetryableData(TypedDict):
    from_: ChecksumAddress
    to: ChecksumAddress
    l2_call_value: int
    deposit: int
    max_submission_cost: int
    excess_fee_refund_address: ChecksumAddress
    call_value_refund_address: ChecksumAddress
    gas_limit: int
    max_fee_per_gas: int
    data: HexBytes


class PopulatedFunctionParams(TypedDict):
    estimates: GasEstimates
    retryable: RetryableData
    request: CallRequest


class RetryableMessageParams(TypedDict):
    dest_address: ChecksumAddress
    l2_call_value: int
    l1_value: int
    max_submission_fee: int
    excess_fee_refund_address: ChecksumAddress
    call_value_refund_address: ChecksumAddress
    gas_limit: int
    max_fee_per_gas: int
    data: HexBytes


class MessageStatus(Enum):
    NOT_YET_CREATED = 1
    CREATION_FAILED = 2
    FUNDS_DEPOSITED_ON_CHILD = 3
    REDEEMED = 4
    EXPIRED = 5


class MessageWaitResult(TypedDict):
    status: MessageStatus
    child_tx_receipt: Optional[TxReceipt]


class EthBridge(TypedDict):
    bridge: ChecksumAddress
    inbox: ChecksumAddress
    sequencer_inbox: ChecksumAddress
    outbox: ChecksumAddress
    rollup: ChecksumAddress


class ParentNetwork(TypedDict):
    chain_id: int
    name: str
    explorer_url: str
    is_custom: bool
    is_arbitrum: bool
    block_time: int
    partner_chain_ids: List[int]


class ChildNetwork(ParentNetwork):
    partner_chain_id: int
    eth_bridge: EthBridge
    confirm_period_blocks: int
    retryable_lifetime_seconds: int
    nitro_genesis_block: int
    nitro_genesis_l1_block: int
    # milliseconds
    deposit_timeout: int
    native_token: Optional[ChecksumAddress]
