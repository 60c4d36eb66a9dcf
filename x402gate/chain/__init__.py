"""
Chain-RPC access for on-chain payment verification.
"""
from .base import ChainClient
from .web3_client import Web3ChainClient

__all__ = [
    'ChainClient',
    'Web3ChainClient',
]
