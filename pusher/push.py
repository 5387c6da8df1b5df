"""
Pushes parent-chain block hashes to a child chain's Buffer via the Pusher contract,
which forwards them as a retryable ticket. Optionally redeems the ticket manually
on the child chain when it wasn't auto-redeemed.
"""

from typing import Callable, Optional, Tuple
from eth_account.signers.local import LocalAccount
from eth_typing import ChecksumAddress
from hexbytes import HexBytes
from web3 import Web3
from web3.contract import Contract
from web3.types import TxReceipt

from chains.nitro_stack.custom_errors import (
    NitroStackError,
    UnexpectedMessageStatusError,
)
from chains.nitro_stack.gas_estimator import GasEstimator
from chains.nitro_stack.message import TXN_SUCCESSFUL, ParentTransactionReceipt
from chains.nitro_stack.networks import (
    ensure_child_network,
    get_eth_bridge,
    get_native_token,
)
from chains.nitro_stack.types import (
    CallRequest,
    ChildNetwork,
    GasEstimates,
    MessageStatus,
    RetryableGasParams,
)
from utils.chain import get_abi, sign_and_send
from utils.config import ABI_ERC20, ABI_PUSHER, MAX_UINT256
from .types import PushRequest

BLOCK_HASHES_PUSHED_SIGNATURE = "BlockHashesPushed(uint256,uint256)"


class PusherTransactionError(NitroStackError):
    """Raised when a parent-chain transaction is mined but reverted."""


class BlockHashPusher:
    """
    Drives a single push: recency check -> network setup -> fee planning ->
    submit -> wait for (or perform) redemption on the child chain.

    Parameters
    ----------
    `parent_provider` : Web3
    `child_provider` : Web3
    `parent_account` : LocalAccount
        signs the push (and token approval) on the parent chain
    `child_account` : LocalAccount
        signs manual redemptions on the child chain
    `pusher_address` : ChecksumAddress
    `log` : Callable[[str], None]
        progress output, `print` by default
    """

    def __init__(
        self,
        parent_provider: Web3,
        child_provider: Web3,
        parent_account: LocalAccount,
        child_account: LocalAccount,
        pusher_address: ChecksumAddress,
        log: Callable[[str], None] = print,
    ) -> None:
        self.parent_provider = parent_provider
        self.child_provider = child_provider
        self.parent_account = parent_account
        self.child_account = child_account
        self.pusher_address = Web3.to_checksum_address(pusher_address)
        self.log = log

    def _get_pusher_contract(self) -> Contract:
        return self.parent_provider.eth.contract(
            self.pusher_address, abi=get_abi(ABI_PUSHER)
        )

    def _wait_for_success(self, txn_hash: HexBytes, name: str) -> TxReceipt:
        receipt = self.parent_provider.eth.wait_for_transaction_receipt(txn_hash)

        if receipt["status"] != TXN_SUCCESSFUL:
            raise PusherTransactionError(
                f"`{name}` transaction {txn_hash.to_0x_hex()} reverted."
            )

        return receipt

    def find_recent_push(self, min_elapsed: Optional[int]) -> Optional[int]:
        """
        Looks for a `BlockHashesPushed` event within the last `min_elapsed` parent blocks.

        Returns
        -------
        block number of the latest matching log, or None if no push is recent enough
        (or the check is disabled)
        """
        if not min_elapsed:
            return None

        latest_block = self.parent_provider.eth.block_number

        logs = self.parent_provider.eth.get_logs(
            {
                "address": self.pusher_address,
                "topics": [Web3.keccak(text=BLOCK_HASHES_PUSHED_SIGNATURE)],
                "fromBlock": max(latest_block - min_elapsed, 0),
            }
        )

        if not logs:
            return None

        return logs[-1]["blockNumber"]

    def setup_networks(
        self, request: PushRequest
    ) -> Tuple[ChildNetwork, Optional[ChecksumAddress]]:
        """
        Makes sure the child chain behind `request.inbox` is registered.

        Returns
        -------
        the registered child network, and the fee token read from the bridge
        (None unless `request.is_custom_fee`)
        """
        child_chain_id = self.child_provider.eth.chain_id
        parent_chain_id = self.parent_provider.eth.chain_id

        eth_bridge = get_eth_bridge(request.inbox, self.parent_provider)

        native_token = (
            get_native_token(eth_bridge["bridge"], self.parent_provider)
            if request.is_custom_fee
            else None
        )

        child_network = ensure_child_network(
            parent_chain_id,
            child_chain_id,
            eth_bridge,
            native_token,
            log=self.log,
        )

        return child_network, native_token

    def approve_native_token(self, native_token: ChecksumAddress) -> None:
        """
        Approves the Pusher to spend the child chain's fee token, unless the allowance
        is already unlimited.
        """
        token = self.parent_provider.eth.contract(native_token, abi=get_abi(ABI_ERC20))

        current_allowance = token.functions.allowance(
            self.parent_account.address, self.pusher_address
        ).call()

        if current_allowance == MAX_UINT256:
            return

        approve = token.functions.approve(self.pusher_address, MAX_UINT256)
        txn_hash = sign_and_send(self.parent_provider, self.parent_account, approve)

        self.log(f"Approving Pusher contract {txn_hash.to_0x_hex()}")
        self._wait_for_success(txn_hash, "approve")
        self.log("Pusher contract approved")

    def build_push_request(
        self, request: PushRequest, params: RetryableGasParams
    ) -> CallRequest:
        """
        Encodes `pushHashes` for the given gas params. Custom fee chains pull the fee
        token instead of taking value.
        """
        pusher = self._get_pusher_contract()

        data = pusher.functions.pushHashes(
            request.inbox,
            request.num_blocks,
            params["max_fee_per_gas"],
            params["gas_limit"],
            params["max_submission_cost"],
            request.is_custom_fee,
        )._encode_transaction_data()

        value = (
            0
            if request.is_custom_fee
            else params["gas_limit"] * params["max_fee_per_gas"]
            + params["max_submission_cost"]
        )

        return {
            "to": self.pusher_address,
            "data": HexBytes(data),
            "value": value,
            "from_": self.parent_account.address,
        }

    def plan_fees(
        self,
        request: PushRequest,
        child_network: ChildNetwork,
        native_token: Optional[ChecksumAddress] = None,
    ) -> GasEstimates:
        """
        | is_custom_fee | manual_redeem | estimates                                   |
        |---------------|---------------|---------------------------------------------|
        | True          | True          | all zero                                    |
        | True          | False         | approve fee token, full estimate            |
        | False         | True          | submission cost only, deposit = submission  |
        | False         | False         | full estimate                               |
        """
        if request.is_custom_fee and request.manual_redeem:
            return {
                "max_submission_cost": 0,
                "max_fee_per_gas": 0,
                "gas_limit": 0,
                "deposit": 0,
            }

        if request.is_custom_fee:
            if native_token is None:
                raise NitroStackError(
                    f"Child network {child_network['chain_id']} has no native token."
                )

            # Pusher pulls the fee token during estimation too
            self.approve_native_token(native_token)

        gas_estimator = GasEstimator(
            child_network,
            self.parent_provider,
            self.child_provider,
        )

        estimates = gas_estimator.populate_function_params(
            lambda params: self.build_push_request(request, params)
        )["estimates"]

        if request.manual_redeem:
            return {
                "max_submission_cost": estimates["max_submission_cost"],
                "max_fee_per_gas": 0,
                "gas_limit": 0,
                "deposit": estimates["max_submission_cost"],
            }

        return estimates

    def submit(self, request: PushRequest, estimates: GasEstimates) -> TxReceipt:
        pusher = self._get_pusher_contract()

        push_hashes = pusher.functions.pushHashes(
            request.inbox,
            request.num_blocks,
            estimates["max_fee_per_gas"],
            estimates["gas_limit"],
            estimates["max_submission_cost"],
            request.is_custom_fee,
        )

        txn_hash = sign_and_send(
            self.parent_provider,
            self.parent_account,
            push_hashes,
            value=estimates["deposit"],
        )

        self.log(
            "Parent transaction sent, waiting for confirmation. "
            f"Hash: {txn_hash.to_0x_hex()}"
        )

        receipt = self._wait_for_success(txn_hash, "pushHashes")

        self.log(f"Parent transaction confirmed {receipt['blockNumber']}")

        return receipt

    def wait_for_redemption(self, receipt: ParentTransactionReceipt) -> MessageStatus:
        """
        Waits for the ticket on the child chain, redeeming it manually if funds were
        deposited but auto-redeem didn't run.
        """
        wait_result = receipt.wait_for_child(self.child_provider, self.child_account)
        status = wait_result["status"]

        if status == MessageStatus.REDEEMED:
            self.log("Message automatically redeemed")
            return status

        if status == MessageStatus.FUNDS_DEPOSITED_ON_CHILD:
            self.log("Attempting manual redeem")

            message = receipt.get_parent_to_child_messages(
                self.child_provider, self.child_account
            )[0]
            message.redeem()

            self.log("Manual redeem complete")
            return status

        raise UnexpectedMessageStatusError(f"Unexpected Message Status: {status.name}")

    def push(self, request: PushRequest) -> Optional[ParentTransactionReceipt]:
        """
        Runs the whole push.

        Parameters
        ----------
        `request` : PushRequest

        Returns
        -------
        ParentTransactionReceipt, or None if skipped because of a recent push
        """
        recent_block = self.find_recent_push(request.min_elapsed)

        if recent_block is not None:
            self.log(f"Skipping push, recent push found at block {recent_block}")
            return None

        child_network, native_token = self.setup_networks(request)

        estimates = self.plan_fees(request, child_network, native_token)

        receipt = ParentTransactionReceipt(
            self.submit(request, estimates),
            self.parent_provider,
            child_network,
        )

        self.wait_for_redemption(receipt)

        return receipt
