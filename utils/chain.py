import os
import json
from typing import Any, List, NamedTuple, Optional, Sequence, cast
from eth_account.signers.local import LocalAccount
from eth_typing import ABIComponent
from hexbytes import HexBytes
from web3 import Account, Web3
from web3.contract import Contract
from web3.contract.contract import ContractFunction
from web3.exceptions import ContractCustomError
from web3.types import TxParams, Wei

from .config import BUFFER, ENV, MULTIPLIER, get_env


def add_gas_buffer(
    gas_estimate: int, multiplier: Optional[float] = None, buffer: Optional[int] = None
) -> int:
    if multiplier is not None:
        if multiplier < 1.0:
            raise ValueError("`multiplier` should be >= 1.0 to ensure sufficient gas")
        effective_multiplier = multiplier
    else:
        effective_multiplier = MULTIPLIER

    # Use provided buffer, fallback to global BUFFER if not provided
    if buffer is not None:
        if buffer < 0:
            raise ValueError("`buffer` must be non-negative")
        effective_buffer = buffer
    else:
        effective_buffer = BUFFER

    return int(gas_estimate * effective_multiplier) + effective_buffer


def parse_int_throwing(x: str) -> int:
    try:
        return int(x, 10)
    except (TypeError, ValueError):
        raise ValueError(f"Cannot parse {x} as a number")


def get_account(key_env: ENV) -> LocalAccount:
    if key_env not in (ENV.PARENT_PRIVATE_KEY, ENV.CHILD_PRIVATE_KEY):
        raise ValueError(f"Not a private key variable: {key_env}")

    account: LocalAccount = Account.from_key(get_env(key_env))

    return account


def get_abi(path: str) -> List[Any]:
    if os.path.isfile(path):
        with open(path, "r") as file:
            abi = json.load(file)

        return abi
    else:
        raise FileNotFoundError(f"File path not found: {path}")


def sign_and_send(
    w3: Web3,
    account: LocalAccount,
    contract_fn: ContractFunction,
    value: int = 0,
) -> HexBytes:
    """
    Estimates, signs and broadcasts a contract call from `account`.
    Doesn't wait for the receipt, so callers can log the hash first.

    Parameters
    ----------
    `w3` : Web3
    `account` : LocalAccount
    `contract_fn` : ContractFunction
    `value` : int
        wei attached to the call

    Returns
    -------
    `txn_hash` : HexBytes
    """
    txn: TxParams = {
        "from": account.address,
        "value": Wei(value),
        "nonce": w3.eth.get_transaction_count(account.address),
    }

    gas_estimate = contract_fn.estimate_gas(txn)

    txn_payload: TxParams = contract_fn.build_transaction(
        {**txn, "gas": add_gas_buffer(gas_estimate)}
    )

    signed_txn = account.sign_transaction(cast(dict, txn_payload))
    txn_hash = w3.eth.send_raw_transaction(signed_txn.raw_transaction)

    return HexBytes(txn_hash)


class ContractErrorInfo(NamedTuple):
    """
    Named tuple containing contract error information.

    Attributes:
        name: Error name (e.g., "NoTicketWithID")
        signature: Full error signature (e.g., "NoTicketWithID()")
        inputs: List of input parameters from ABI
        selector: 4-byte error selector hex string (e.g., "0x80698456")
    """

    name: str
    signature: str
    inputs: Sequence[ABIComponent]
    selector: str


def get_error_selector(signature: str) -> HexBytes:
    return HexBytes(Web3.keccak(text=signature)[:4])


def get_revert_data(error: ContractCustomError) -> HexBytes:
    data = error.data if error.data is not None else error.args[0]
    return HexBytes(data)


def get_contract_error_info(
    contract: Contract, error: Exception
) -> Optional[ContractErrorInfo]:
    """
    Match a contract error to its ABI definition and return error information.

    Args:
        contract: Web3 Contract instance containing ABI
        error: Exception raised by contract call

    Returns:
        ContractErrorInfo named tuple if matched, None otherwise

    Example:
        >>> try:
        >>>     contract.functions.redeem(ticket_id).call()
        >>> except Exception as e:
        >>>     error_info = get_contract_error_info(contract, e)
        >>>     if error_info:
        >>>         print(f"Error: {error_info.name}")
    """
    if not isinstance(error, ContractCustomError):
        return None

    error_selector = get_revert_data(error)[:4]

    for item in contract.abi:
        if item.get("type") != "error":
            continue

        error_name = item.get("name")
        if error_name is None:
            continue

        inputs = item.get("inputs", [])

        input_types = []
        for inp in inputs:
            inp_type = inp.get("type")
            if inp_type is None:
                continue
            input_types.append(inp_type)

        signature = f"{error_name}({','.join(input_types)})"

        selector = get_error_selector(signature)

        if selector == error_selector:
            return ContractErrorInfo(
                name=error_name,
                signature=signature,
                inputs=inputs,
                selector=selector.to_0x_hex(),
            )

    return None
