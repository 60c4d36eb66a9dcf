"""
In-memory chain client and log builders for tests.
"""
import asyncio
from typing import Any, Dict, Optional

from web3 import Web3
from web3.exceptions import BlockNotFound

from x402gate.chain import ChainClient
from x402gate.transaction_verifier import TRANSFER_TOPIC

APPROVAL_TOPIC = '0x' + bytes(Web3.keccak(text='Approval(address,address,uint256)')).hex()


def _address_topic(address: str) -> str:
    return '0x' + '00' * 12 + address.lower()[2:]


def _uint_data(value: int) -> str:
    return '0x' + value.to_bytes(32, 'big').hex()


def transfer_log(token: str, sender: str, recipient: str, value: int) -> Dict[str, Any]:
    return {
        'address': token,
        'topics': [
            '0x' + bytes(TRANSFER_TOPIC).hex(),
            _address_topic(sender),
            _address_topic(recipient),
        ],
        'data': _uint_data(value),
    }


def approval_log(token: str, owner: str, spender: str, value: int) -> Dict[str, Any]:
    return {
        'address': token,
        'topics': [APPROVAL_TOPIC, _address_topic(owner), _address_topic(spender)],
        'data': _uint_data(value),
    }


class FakeChainClient(ChainClient):
    def __init__(self, delay: float = 0.0, error: Optional[Exception] = None):
        self.receipts: Dict[str, Dict[str, Any]] = {}
        self.blocks: Dict[int, Dict[str, Any]] = {}
        self.delay = delay
        self.error = error
        self.calls = []

    def add_transaction(self, tx_hash: str, *logs, status: int = 1,
                        block_number: int = 19000000, timestamp: int = 1700000000) -> None:
        self.receipts[tx_hash.lower()] = {
            'transactionHash': tx_hash.lower(),
            'status': status,
            'blockNumber': block_number,
            'logs': list(logs),
        }
        self.blocks[block_number] = {'number': block_number, 'timestamp': timestamp}

    async def get_transaction_receipt(self, tx_hash: str):
        self.calls.append(('receipt', tx_hash))
        await self._simulate()
        return self.receipts.get(tx_hash)

    async def get_block(self, block_number: int):
        self.calls.append(('block', block_number))
        await self._simulate()
        if block_number not in self.blocks:
            raise BlockNotFound(f'Block {block_number} not found')
        return self.blocks[block_number]

    async def _simulate(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
