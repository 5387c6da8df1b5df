from typing import Optional
from web3.contract import Contract

from utils.chain import get_contract_error_info


class NitroStackError(Exception):
    """Base Exception for Nitro Stack operations."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error


class NetworkError(NitroStackError):
    """Raised when registering or looking up a network fails."""


class GasEstimationError(NitroStackError):
    """Raised when retryable ticket parameters can't be estimated."""


class MessageError(NitroStackError):
    """Raised when a parent receipt doesn't carry a parent-to-child message."""


class UnexpectedMessageStatusError(NitroStackError):
    """Raised when a message ends up in a state that can't be redeemed."""


class RetryableTicketError(NitroStackError):
    """Raised in case retryable ticket manual-redeem fails."""

    @classmethod
    def from_contract_error(cls, contract: Contract, error: Exception):
        error_info = get_contract_error_info(contract, error)

        if error_info and error_info.name == "NoTicketWithID":
            return RetryableTicketError(
                f"`{error_info.signature}` from ArbRetryableTx precompile! "
                "Either doesn't exist, expired or redeemed already.",
                original_error=error,
            )

        if error_info:
            return RetryableTicketError(
                f"`{error_info.signature}` error occurred.",
                original_error=error,
            )

        return NitroStackError(str(error), original_error=error)
