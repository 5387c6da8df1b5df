import argparse
from typing import List, Optional

from web3 import Web3

from pusher.push import BlockHashPusher
from pusher.types import PushRequest
from utils.chain import get_account, parse_int_throwing
from utils.config import ENV, get_env
from utils.providers import get_web3


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="push-block-hashes",
        description="Push parent chain block hashes to a child chain Buffer via the Pusher contract.",
    )
    parser.add_argument(
        "inbox",
        type=Web3.to_checksum_address,
        help="The inbox address to push through",
    )
    parser.add_argument(
        "num_blocks",
        metavar="num-blocks",
        type=parse_int_throwing,
        help="The number of blocks to push",
    )
    parser.add_argument(
        "--min-elapsed",
        metavar="BLOCKS",
        type=parse_int_throwing,
        default=None,
        help=(
            "The minimum number of elapsed blocks since the last push. "
            "If a batch was pushed more recently than this, pushing will be skipped. "
            "For example, if a push was performed at block 100, latest is 110. "
            "numBlocks >= 10 will skip. If 0, disabled."
        ),
    )
    parser.add_argument(
        "--is-custom-fee",
        action="store_true",
        help="Indicates if the child chain is a custom fee child chain",
    )
    parser.add_argument(
        "--manual-redeem",
        action="store_true",
        help=(
            "Disable payment for auto redeem on parent chain. "
            "Always set for custom fee child chains"
        ),
    )
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)

    request = PushRequest(
        inbox=args.inbox,
        num_blocks=args.num_blocks,
        min_elapsed=args.min_elapsed,
        is_custom_fee=args.is_custom_fee,
        manual_redeem=args.manual_redeem,
    )

    pusher = BlockHashPusher(
        parent_provider=get_web3(ENV.PARENT_RPC_URL),
        child_provider=get_web3(ENV.CHILD_RPC_URL),
        parent_account=get_account(ENV.PARENT_PRIVATE_KEY),
        child_account=get_account(ENV.CHILD_PRIVATE_KEY),
        pusher_address=Web3.to_checksum_address(get_env(ENV.PUSHER_ADDRESS)),
    )

    receipt = pusher.push(request)

    if receipt is not None:
        print("-" * 75)
        print(f"Push Txn: {receipt.transaction_hash.to_0x_hex()}")
        print("-" * 75)


if __name__ == "__main__":
    main()
