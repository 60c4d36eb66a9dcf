"""
Chain client backed by web3's async HTTP provider.
"""
from typing import Any, Mapping, Optional

from loguru import logger
from web3 import AsyncWeb3
from web3.exceptions import TransactionNotFound

from .base import ChainClient


class Web3ChainClient(ChainClient):
    """JSON-RPC client for a single EVM chain."""

    def __init__(self, rpc_url: str):
        if not rpc_url:
            raise ValueError('RPC URL is not configured.')
        self.rpc_url = rpc_url
        self._web3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Mapping[str, Any]]:
        try:
            return await self._web3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            logger.debug('no receipt for {} on {}', tx_hash, self.rpc_url)
            return None

    async def get_block(self, block_number: int) -> Mapping[str, Any]:
        return await self._web3.eth.get_block(block_number)
