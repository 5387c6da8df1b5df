from typing import NamedTuple, Optional

from eth_typing import ChecksumAddress


class PushRequest(NamedTuple):
    """
    A single push of parent block hashes through a child chain's inbox.

    Attributes:
        inbox: Inbox address of the child chain
        num_blocks: number of most recent parent blocks to push
        min_elapsed: skip if a push happened within this many blocks (None or 0 disables)
        is_custom_fee: child chain pays fees in an ERC20 native token
        manual_redeem: don't pay for auto-redeem, redeem on the child chain instead
    """

    inbox: ChecksumAddress
    num_blocks: int
    min_elapsed: Optional[int] = None
    is_custom_fee: bool = False
    manual_redeem: bool = False
