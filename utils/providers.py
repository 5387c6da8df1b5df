from web3 import Web3
from .config import ENV, get_env


def get_web3(rpc_env: ENV) -> Web3:
    if rpc_env not in (ENV.PARENT_RPC_URL, ENV.CHILD_RPC_URL):
        raise ValueError(f"Not an RPC url variable: {rpc_env}")

    w3 = Web3(Web3.HTTPProvider(get_env(rpc_env)))

    return w3
