from eth_typing import ChecksumAddress
from hexbytes import HexBytes
from web3 import Web3

from utils.chain import get_abi
from utils.config import ABI_BUFFER


class Buffer:
    """
    Child-chain contract holding the parent block hashes delivered by the Pusher.

    Parameters
    ----------
    `child_provider` : Web3
    `address` : ChecksumAddress
    """

    def __init__(self, child_provider: Web3, address: ChecksumAddress) -> None:
        self.contract = child_provider.eth.contract(address, abi=get_abi(ABI_BUFFER))

    def parent_chain_block_hash(self, block_number: int) -> HexBytes:
        return HexBytes(
            self.contract.functions.parentChainBlockHash(block_number).call()
        )

    def matches_parent_block(self, parent_provider: Web3, block_number: int) -> bool:
        """
        Compares the stored hash for `block_number` with the parent chain's block hash.
        """
        block = parent_provider.eth.get_block(block_number)
        block_hash = block.get("hash")

        if block_hash is None:
            raise ValueError(f"Error finding `hash` for parent block {block_number}")

        return self.parent_chain_block_hash(block_number) == HexBytes(block_hash)
