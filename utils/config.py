import os
from enum import StrEnum
from typing import Final

from dotenv import load_dotenv
from eth_utils.address import to_checksum_address


class ENV(StrEnum):
    PARENT_RPC_URL = "PARENT_RPC_URL"
    CHILD_RPC_URL = "CHILD_RPC_URL"
    PARENT_PRIVATE_KEY = "PARENT_PRIVATE_KEY"
    CHILD_PRIVATE_KEY = "CHILD_PRIVATE_KEY"
    PUSHER_ADDRESS = "PUSHER_ADDRESS"


class ConfigError(ValueError):
    """Raised when a required environment variable is missing."""


def get_env(name: ENV) -> str:
    load_dotenv()

    value = os.getenv(name)

    if not value:
        raise ConfigError(f"Missing environment variable `{name}`. Set it in .env")

    return value


# GAS ESTIMATE

MULTIPLIER = 1.3
BUFFER = 20_000

MAX_UINT256: Final[int] = 2**256 - 1

# milliseconds to wait for the retryable ticket to be created on child chain
DEFAULT_DEPOSIT_TIMEOUT_MS = 1_800_000


# NITRO CONFIG

ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
ABI_DIR = os.path.join(ROOT_DIR, "chains", "nitro_stack", "ABI")

ABI_PUSHER = os.path.join(ABI_DIR, "pusher.json")
ABI_BUFFER = os.path.join(ABI_DIR, "buffer.json")
ABI_INBOX = os.path.join(ABI_DIR, "inbox.json")
ABI_BRIDGE = os.path.join(ABI_DIR, "bridge.json")
ABI_ROLLUP = os.path.join(ABI_DIR, "rollup.json")
ABI_ERC20 = os.path.join(ABI_DIR, "erc20.json")
ABI_NODE_INTERFACE = os.path.join(ABI_DIR, "node_interface.json")
ABI_ARB_RETRYABLE_TX = os.path.join(ABI_DIR, "arb_retryable_tx_precompile.json")

# precompiles, same address on every nitro chain
NODE_INTERFACE_ADDRESS = to_checksum_address(
    "0x00000000000000000000000000000000000000C8"
)
ARB_RETRYABLE_TX_ADDRESS = to_checksum_address(
    "0x000000000000000000000000000000000000006E"
)
