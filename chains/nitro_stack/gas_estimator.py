from typing import Callable, Optional
from eth_abi import abi
from hexbytes import HexBytes
from web3 import Web3
from web3.contract import Contract
from web3.exceptions import ContractCustomError, ContractLogicError
from web3.types import BlockData, Wei
from utils.chain import add_gas_buffer, get_abi, get_error_selector, get_revert_data
from utils.config import ABI_INBOX, ABI_NODE_INTERFACE, NODE_INTERFACE_ADDRESS
from .custom_errors import GasEstimationError
from .types import (
    CallRequest,
    ChildNetwork,
    EstimateRetryableTicketParams,
    GasEstimates,
    PopulatedFunctionParams,
    RetryableData,
    RetryableGasParams,
)


class GasEstimator:
    """
    Intends to assist in gas estimations for Retryable Tickets, as Arbitrum Nitro,
    requires the users to manually estimate gas for parent submission cost and
    child execution cost.

    In case, user fails to submit enough submission cost, it will lead to
    transaction failure.

    But, failing to submit enough child execution cost, disables the child transaction
    for auto-redeem. In such cases, users have to manually redeem the ticket.

    Parameters
    ----------
    `child_network` : ChildNetwork
    `parent_provider` : Web3
    `child_provider` : Web3
    """

    # 500% increase
    GAS_PRICE_MULTIPLIER = 5
    # 300% increase
    SUBMISSION_COST_MULITPLIER = 3

    # Inbox reverts with `RetryableData` when either gas_limit or max_fee_per_gas is 1
    ERROR_TRIGGERING_PARAMS: RetryableGasParams = {
        "gas_limit": 1,
        "max_fee_per_gas": 1,
        "max_submission_cost": 1,
    }
    RETRYABLE_DATA_SIGNATURE = (
        "RetryableData(address,address,uint256,uint256,uint256,"
        "address,address,uint256,uint256,bytes)"
    )
    RETRYABLE_DATA_TYPES = [
        "address",  ## from
        "address",  ## to
        "uint256",  ## l2 call value
        "uint256",  ## deposit
        "uint256",  ## max submission cost
        "address",  ## excess fee refund addr
        "address",  ## call value refund addr
        "uint256",  ## gas limit
        "uint256",  ## max fee per gas
        "bytes",  ## data
    ]

    def __init__(
        self, child_network: ChildNetwork, parent_provider: Web3, child_provider: Web3
    ) -> None:
        self.child_network = child_network
        self.parent_provider = parent_provider
        self.child_provider = child_provider

    def _get_node_interface(self) -> Contract:
        """
        returns Node Interface contract instance

        Returns
        -------
        web3.contract.Contract
        """
        return self.child_provider.eth.contract(
            NODE_INTERFACE_ADDRESS,
            abi=get_abi(ABI_NODE_INTERFACE),
        )

    def _get_inbox_contract(self) -> Contract:
        """
        returns the child network's Inbox contract instance on the parent chain

        Returns
        -------
        web3.contract.Contract
        """
        return self.parent_provider.eth.contract(
            self.child_network["eth_bridge"]["inbox"], abi=get_abi(ABI_INBOX)
        )

    def rt_max_fee_per_gas(self) -> int:
        """
        returns child gas price with an added buffer of 500% (GAS_PRICE_MULTIPLIER) as recommended
        in Arbitrum SDK

        Returns
        -------
        int
        """
        child_gas_price = self.child_provider.eth.gas_price

        return add_gas_buffer(
            child_gas_price,
            multiplier=(1 + self.GAS_PRICE_MULTIPLIER),
            buffer=0,
        )

    def rt_estimate_gas_limit(self, params: EstimateRetryableTicketParams) -> int:
        """
        returns gas estimates for Retryable Ticket for child execution costs that is to be
        submitted on the parent chain.

        Parameters
        ----------
        `params` : EstimateRetryableTicketParams
        TypedDict[sender, to, l2_call_value, excess_fee_refund_address, call_value_refund_address, data]

        Returns
        -------
        int
        """
        node_interface = self._get_node_interface()

        assumed_deposit = Web3.to_wei(1, "ether")

        try:
            gas_limit = node_interface.functions.estimateRetryableTicket(
                params["sender"],
                assumed_deposit,
                params["to"],
                params["l2_call_value"],
                params["excess_fee_refund_address"],
                params["call_value_refund_address"],
                params["data"],
            ).estimate_gas(
                {"from": params["sender"]},
                "latest",
            )

            return gas_limit
        except ContractLogicError as e:
            raise GasEstimationError(f"`estimateRetryableTicket` failed: {e}", e)

    def rt_max_submission_cost(self, data: HexBytes) -> int:
        """
        returns submission cost (enough to submit transaction to the Inbox contract) with
        an added buffer of 300% (SUBMISSION_COST_MULITPLIER) as recommended in Arbitrum SDK

        Returns
        -------
        int
        """
        inbox = self._get_inbox_contract()

        latest_parent_block: BlockData = self.parent_provider.eth.get_block("latest")
        parent_base_fee = latest_parent_block.get("baseFeePerGas")

        if parent_base_fee is None:
            raise GasEstimationError("Latest parent block has no `baseFeePerGas`")

        base_submission_cost = inbox.functions.calculateRetryableSubmissionFee(
            len(data),
            parent_base_fee,
        ).call()

        return add_gas_buffer(
            gas_estimate=base_submission_cost,
            multiplier=(1 + self.SUBMISSION_COST_MULITPLIER),
            buffer=0,
        )

    def estimate_all(self, params: EstimateRetryableTicketParams) -> GasEstimates:
        """
        A wrapper function that returns all the required gas estimates i.e. submission cost,
        child execution cost, child gas price and total deposits.

        Parameters
        ----------
        `params` : EstimateRetryableTicketParams
        TypedDict[sender, to, l2_call_value, excess_fee_refund_address, call_value_refund_address, data]

        Returns
        -------
        GasEstimates
        TypedDict[max_submission_cost, max_fee_per_gas, gas_limit, deposit]
        """
        max_fee_per_gas = self.rt_max_fee_per_gas()
        gas_limit = self.rt_estimate_gas_limit(params)
        max_submission_cost = self.rt_max_submission_cost(params["data"])
        l2_call_value = params["l2_call_value"]

        deposit = gas_limit * max_fee_per_gas + max_submission_cost + l2_call_value

        return {
            "max_submission_cost": max_submission_cost,
            "max_fee_per_gas": max_fee_per_gas,
            "gas_limit": gas_limit,
            "deposit": deposit,
        }

    @classmethod
    def decode_retryable_data(cls, revert_data: HexBytes) -> Optional[RetryableData]:
        """
        Decodes the `RetryableData` custom error thrown by the Inbox. Returns None if
        `revert_data` is any other error.
        """
        selector = get_error_selector(cls.RETRYABLE_DATA_SIGNATURE)

        if revert_data[:4] != selector:
            return None

        decoded = abi.decode(cls.RETRYABLE_DATA_TYPES, revert_data[4:])

        return {
            "from_": Web3.to_checksum_address(decoded[0]),
            "to": Web3.to_checksum_address(decoded[1]),
            "l2_call_value": decoded[2],
            "deposit": decoded[3],
            "max_submission_cost": decoded[4],
            "excess_fee_refund_address": Web3.to_checksum_address(decoded[5]),
            "call_value_refund_address": Web3.to_checksum_address(decoded[6]),
            "gas_limit": decoded[7],
            "max_fee_per_gas": decoded[8],
            "data": HexBytes(decoded[9]),
        }

    def get_retryable_data(self, request: CallRequest) -> RetryableData:
        """
        Executes `request` as an `eth_call` on the parent chain. The request must be built
        with ERROR_TRIGGERING_PARAMS so the Inbox reverts and reveals the retryable ticket
        the call would create.
        """
        try:
            self.parent_provider.eth.call(
                {
                    "to": request["to"],
                    "from": request["from_"],
                    "data": request["data"],
                    "value": Wei(request["value"]),
                }
            )
        except ContractCustomError as e:
            retryable = self.decode_retryable_data(get_revert_data(e))

            if retryable is None:
                raise GasEstimationError(
                    f"Call reverted with an unexpected custom error: {e}", e
                )

            return retryable
        except ContractLogicError as e:
            raise GasEstimationError(f"Call reverted without `RetryableData`: {e}", e)

        raise GasEstimationError(
            "No `RetryableData` revert. Is the call creating a retryable ticket?"
        )

    def populate_function_params(
        self, data_func: Callable[[RetryableGasParams], CallRequest]
    ) -> PopulatedFunctionParams:
        """
        Estimates gas params for a parent-chain call that internally creates a retryable
        ticket, and returns them alongside the request rebuilt with real params.

        Parameters
        ----------
        `data_func` : Callable[[RetryableGasParams], CallRequest]
            Builds the parent-chain call for a given set of gas params.

        Returns
        -------
        PopulatedFunctionParams
        TypedDict[estimates, retryable, request]
        """
        null_request = data_func(self.ERROR_TRIGGERING_PARAMS)
        retryable = self.get_retryable_data(null_request)

        estimates = self.estimate_all(
            {
                "sender": retryable["from_"],
                "to": retryable["to"],
                "l2_call_value": Wei(retryable["l2_call_value"]),
                "excess_fee_refund_address": retryable["excess_fee_refund_address"],
                "call_value_refund_address": retryable["call_value_refund_address"],
                "data": retryable["data"],
            }
        )

        request = data_func(
            {
                "max_submission_cost": estimates["max_submission_cost"],
                "max_fee_per_gas": estimates["max_fee_per_gas"],
                "gas_limit": estimates["gas_limit"],
            }
        )

        return {"estimates": estimates, "retryable": retryable, "request": request}
