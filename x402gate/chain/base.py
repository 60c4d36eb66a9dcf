"""
Chain client interface.
"""
from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional


class ChainClient(ABC):
    """
    Read-only view of the chain used by the transaction verifier.

    Receipts expose ``status``, ``blockNumber`` and ``logs`` (each with
    ``address``, ``topics`` and ``data``); blocks expose ``timestamp``.
    """

    @abstractmethod
    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Mapping[str, Any]]:
        """
        Fetch the receipt of a mined transaction.

        Args:
            tx_hash: Canonical transaction hash

        Returns:
            The receipt, or None when the transaction is unknown or pending
        """

    @abstractmethod
    async def get_block(self, block_number: int) -> Mapping[str, Any]:
        """Fetch the block header for ``block_number``."""
