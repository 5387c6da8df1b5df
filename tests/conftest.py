"""
Shared fixtures. Providers are mocks; contracts that only need ABI encoding or
event decoding are real web3 contracts bound to a provider-less Web3.
"""

import copy
from unittest.mock import MagicMock

import pytest
from eth_account import Account
from hexbytes import HexBytes
from web3 import Web3

from chains.nitro_stack import networks
from chains.nitro_stack.types import EthBridge

OFFLINE_W3 = Web3()

# eth-account docs example key
PARENT_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
PARENT_ADDRESS = "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23"
CHILD_KEY = "0x" + "22" * 32

PUSHER_ADDRESS = Web3.to_checksum_address("0x" + "aa" * 20)
INBOX_ADDRESS = Web3.to_checksum_address("0x" + "1b" * 20)
NATIVE_TOKEN = Web3.to_checksum_address("0x" + "70" * 20)

PARENT_CHAIN_ID = 1337
CHILD_CHAIN_ID = 412346

TX_HASH = HexBytes("0x" + "ab" * 32)


def make_eth_bridge() -> EthBridge:
    return {
        "bridge": Web3.to_checksum_address("0x" + "b1" * 20),
        "inbox": INBOX_ADDRESS,
        "sequencer_inbox": Web3.to_checksum_address("0x" + "5e" * 20),
        "outbox": Web3.to_checksum_address("0x" + "0b" * 20),
        "rollup": Web3.to_checksum_address("0x" + "12" * 20),
    }


def offline_contract(address, abi):
    return OFFLINE_W3.eth.contract(address, abi=abi)


@pytest.fixture(autouse=True)
def registry(monkeypatch):
    monkeypatch.setattr(
        networks, "parent_networks", copy.deepcopy(networks.parent_networks)
    )
    monkeypatch.setattr(
        networks, "child_networks", copy.deepcopy(networks.child_networks)
    )
    return networks


@pytest.fixture
def parent_account():
    return Account.from_key(PARENT_KEY)


@pytest.fixture
def child_account():
    return Account.from_key(CHILD_KEY)


@pytest.fixture
def child_provider():
    provider = MagicMock()
    provider.eth.chain_id = CHILD_CHAIN_ID
    return provider
