"""
Process-wide registry of parent and child networks, keyed by chain id.

Child chains that aren't known up front (local devnets, Orbit chains) are
registered at runtime from their inbox address. The registry is not guarded
by a lock and is expected to be mutated from a single thread.
"""

from typing import Callable, Dict, Optional

from eth_typing import ChecksumAddress
from web3 import Web3

from utils.chain import get_abi
from utils.config import ABI_BRIDGE, ABI_INBOX, ABI_ROLLUP, DEFAULT_DEPOSIT_TIMEOUT_MS
from .custom_errors import NetworkError
from .types import ChildNetwork, EthBridge, ParentNetwork


def _eth_bridge(
    bridge: str, inbox: str, sequencer_inbox: str, outbox: str, rollup: str
) -> EthBridge:
    return {
        "bridge": Web3.to_checksum_address(bridge),
        "inbox": Web3.to_checksum_address(inbox),
        "sequencer_inbox": Web3.to_checksum_address(sequencer_inbox),
        "outbox": Web3.to_checksum_address(outbox),
        "rollup": Web3.to_checksum_address(rollup),
    }


parent_networks: Dict[int, ParentNetwork] = {
    1: {
        "chain_id": 1,
        "name": "Mainnet",
        "explorer_url": "https://etherscan.io",
        "is_custom": False,
        "is_arbitrum": False,
        "block_time": 14,
        "partner_chain_ids": [42161],
    },
    11155111: {
        "chain_id": 11155111,
        "name": "Sepolia",
        "explorer_url": "https://sepolia.etherscan.io",
        "is_custom": False,
        "is_arbitrum": False,
        "block_time": 12,
        "partner_chain_ids": [421614],
    },
}

child_networks: Dict[int, ChildNetwork] = {
    42161: {
        "chain_id": 42161,
        "name": "Arbitrum One",
        "explorer_url": "https://arbiscan.io",
        "is_custom": False,
        "is_arbitrum": True,
        "block_time": 0,
        "partner_chain_ids": [],
        "partner_chain_id": 1,
        "eth_bridge": _eth_bridge(
            bridge="0x8315177aB297bA92A06054cE80a67Ed4DBd7ed3a",
            inbox="0x4Dbd4fc535Ac27206064B68FfCf827b0A60BAB3f",
            sequencer_inbox="0x1c479675ad559DC151F6Ec7ed3FbF8ceE79582B6",
            outbox="0x0B9857ae2D4A3DBe74ffE1d7DF045bb7F96E4840",
            rollup="0x5eF0D09d1E6204141B4d37530808eD19f60FBa35",
        ),
        "confirm_period_blocks": 45818,
        "retryable_lifetime_seconds": 604800,
        "nitro_genesis_block": 22207817,
        "nitro_genesis_l1_block": 15447158,
        "deposit_timeout": DEFAULT_DEPOSIT_TIMEOUT_MS,
        "native_token": None,
    },
    421614: {
        "chain_id": 421614,
        "name": "Arbitrum Sepolia",
        "explorer_url": "https://sepolia.arbiscan.io",
        "is_custom": False,
        "is_arbitrum": True,
        "block_time": 0,
        "partner_chain_ids": [],
        "partner_chain_id": 11155111,
        "eth_bridge": _eth_bridge(
            bridge="0x38f918D0E9F1b721EDaA41302E399fa1B79333a9",
            inbox="0xaAe29B0366299461418F5324a79Afc425BE5ae21",
            sequencer_inbox="0x6c97864CE4bEf387dE0b3310A44230f7E3F1be0D",
            outbox="0x65f07C7D521164a4d5DaC6eB8Fac8DA067A3B78F",
            rollup="0xd80810638dbDF9081b72C1B33c65375e807281C8",
        ),
        "confirm_period_blocks": 20,
        "retryable_lifetime_seconds": 604800,
        "nitro_genesis_block": 0,
        "nitro_genesis_l1_block": 0,
        "deposit_timeout": DEFAULT_DEPOSIT_TIMEOUT_MS,
        "native_token": None,
    },
}


def is_known_chain(chain_id: int) -> bool:
    """A chain can be a parent either as an L1 or as an L2 hosting an L3."""
    return chain_id in parent_networks or chain_id in child_networks


def get_child_network(chain_id: int) -> ChildNetwork:
    network = child_networks.get(chain_id)

    if network is None:
        raise NetworkError(f"Unrecognized child network {chain_id}.")

    return network


def add_custom_network(
    custom_child_network: ChildNetwork,
    custom_parent_network: Optional[ParentNetwork] = None,
) -> None:
    """
    Register a custom child network, and optionally its parent.

    Parameters
    ----------
    `custom_child_network` : ChildNetwork
    `custom_parent_network` : ParentNetwork, optional
        Only needed when the parent isn't already registered.

    Raises
    ------
    NetworkError
        If a chain id is already registered or the child's partner chain is unknown.
    """
    if custom_parent_network is not None:
        parent_id = custom_parent_network["chain_id"]

        if parent_id in parent_networks:
            raise NetworkError(f"Network {parent_id} already included")
        if not custom_parent_network["is_custom"]:
            raise NetworkError(f"Custom network {parent_id} must have `is_custom` flag set")

        parent_networks[parent_id] = custom_parent_network

    child_id = custom_child_network["chain_id"]

    if child_id in child_networks:
        raise NetworkError(f"Network {child_id} already included")
    if not custom_child_network["is_custom"]:
        raise NetworkError(f"Custom network {child_id} must have `is_custom` flag set")

    partner_id = custom_child_network["partner_chain_id"]
    partner = parent_networks.get(partner_id) or child_networks.get(partner_id)

    if partner is None:
        raise NetworkError(
            f"Network {child_id}'s partner network, {partner_id}, not recognized"
        )

    child_networks[child_id] = custom_child_network

    if child_id not in partner["partner_chain_ids"]:
        partner["partner_chain_ids"].append(child_id)


def get_eth_bridge(inbox_address: ChecksumAddress, parent_provider: Web3) -> EthBridge:
    """
    Resolves the rollup's core contracts from its inbox:
    inbox -> bridge -> rollup -> outbox
    """
    inbox = parent_provider.eth.contract(inbox_address, abi=get_abi(ABI_INBOX))

    bridge_address = inbox.functions.bridge().call()
    sequencer_inbox_address = inbox.functions.sequencerInbox().call()

    bridge = parent_provider.eth.contract(
        Web3.to_checksum_address(bridge_address), abi=get_abi(ABI_BRIDGE)
    )
    rollup_address = bridge.functions.rollup().call()

    rollup = parent_provider.eth.contract(
        Web3.to_checksum_address(rollup_address), abi=get_abi(ABI_ROLLUP)
    )
    outbox_address = rollup.functions.outbox().call()

    return _eth_bridge(
        bridge=bridge_address,
        inbox=inbox_address,
        sequencer_inbox=sequencer_inbox_address,
        outbox=outbox_address,
        rollup=rollup_address,
    )


def get_native_token(bridge_address: ChecksumAddress, parent_provider: Web3) -> ChecksumAddress:
    bridge = parent_provider.eth.contract(bridge_address, abi=get_abi(ABI_BRIDGE))

    return Web3.to_checksum_address(bridge.functions.nativeToken().call())


def ensure_child_network(
    parent_chain_id: int,
    child_chain_id: int,
    eth_bridge: EthBridge,
    native_token: Optional[ChecksumAddress] = None,
    log: Callable[[str], None] = print,
) -> ChildNetwork:
    """
    Registers the child chain (and its parent, if unknown) unless it's already
    in the registry. Safe to call repeatedly within a process.
    """
    if child_chain_id in child_networks:
        return child_networks[child_chain_id]

    log(f"Adding custom child network {child_chain_id}")

    custom_parent_network: Optional[ParentNetwork] = None

    if not is_known_chain(parent_chain_id):
        custom_parent_network = {
            "chain_id": parent_chain_id,
            "name": "parentChain",
            "explorer_url": "",
            "is_custom": True,
            "is_arbitrum": False,
            "block_time": 0,
            "partner_chain_ids": [child_chain_id],
        }

    custom_child_network: ChildNetwork = {
        "chain_id": child_chain_id,
        "name": "childChain",
        "explorer_url": "",
        "is_custom": True,
        "is_arbitrum": True,
        "block_time": 0,
        "partner_chain_ids": [],
        "partner_chain_id": parent_chain_id,
        "eth_bridge": eth_bridge,
        "confirm_period_blocks": 0,
        "retryable_lifetime_seconds": 0,
        "nitro_genesis_block": 0,
        "nitro_genesis_l1_block": 0,
        "deposit_timeout": DEFAULT_DEPOSIT_TIMEOUT_MS,
        "native_token": native_token,
    }

    add_custom_network(custom_child_network, custom_parent_network)

    return custom_child_network
