"""
Durable storage for verified payments and consumed authorization nonces.

Both stores rely on the primary-key constraint for their insert-if-absent
semantics: the insert runs in its own savepoint and an ``IntegrityError``
means another caller got there first.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from asgiref.sync import sync_to_async
from django.db import IntegrityError, transaction
from loguru import logger

from x402gate.addresses import canonical_address
from x402gate.exceptions import AlreadyConsumed
from x402gate.models import ConsumedNonce, Payment

DEFAULT_HISTORY_LIMIT = 100


@dataclass(frozen=True)
class LedgerStats:
    count: int
    total_amount: str
    unique_payers: int

    def to_dict(self) -> dict:
        return {
            'count': self.count,
            'total_amount': self.total_amount,
            'unique_payers': self.unique_payers,
        }


def format_amount(amount: str, decimals: int = 6) -> str:
    """Render a smallest-unit amount as a two-decimal figure, e.g. ``'80.00'``."""
    value = Decimal(int(amount)) / (Decimal(10) ** decimals)
    return str(value.quantize(Decimal('0.01')))


class PaymentLedger:
    """Verified on-chain payments keyed by transaction hash."""

    async def get(self, tx_hash: str) -> Optional[Payment]:
        return await sync_to_async(self._get)(tx_hash)

    async def insert_if_absent(self, payment: Payment) -> bool:
        """Store ``payment``; return False if its tx hash is already recorded."""
        return await sync_to_async(self._insert_if_absent)(payment)

    async def history(self, address: str, limit: int = DEFAULT_HISTORY_LIMIT) -> List[Payment]:
        return await sync_to_async(self._history)(canonical_address(address), limit)

    async def stats(self) -> LedgerStats:
        return await sync_to_async(self._stats)()

    def _get(self, tx_hash: str) -> Optional[Payment]:
        return Payment.objects.filter(tx_hash=tx_hash).first()

    def _insert_if_absent(self, payment: Payment) -> bool:
        try:
            with transaction.atomic():
                payment.save(force_insert=True)
        except IntegrityError:
            logger.info('payment {} already recorded, insert skipped', payment.tx_hash)
            return False
        logger.debug('payment stored: tx={} payer={} amount={}',
                     payment.tx_hash, payment.from_address, payment.amount)
        return True

    def _history(self, address: str, limit: int) -> List[Payment]:
        queryset = Payment.objects.filter(
            from_address=address).order_by('-verified_at', '-timestamp')
        limit = max(1, min(int(limit), DEFAULT_HISTORY_LIMIT))
        return list(queryset[:limit])

    def _stats(self) -> LedgerStats:
        count = 0
        total = 0
        payers = set()
        rows = Payment.objects.values_list('from_address', 'amount')
        for from_address, amount in rows.iterator():
            count += 1
            total += int(amount)
            payers.add(from_address)
        return LedgerStats(count=count, total_amount=str(total), unique_payers=len(payers))


class ReplayGuard:
    """Nonces of signed authorizations that have already been accepted."""

    async def has_consumed(self, nonce: str) -> bool:
        return await sync_to_async(self._has_consumed)(nonce)

    async def consume(self, nonce: str, timestamp: int) -> None:
        """Record ``nonce``; raises AlreadyConsumed if it was recorded before."""
        await sync_to_async(self._consume)(nonce, timestamp)

    def _has_consumed(self, nonce: str) -> bool:
        return ConsumedNonce.objects.filter(nonce=nonce).exists()

    def _consume(self, nonce: str, timestamp: int) -> None:
        try:
            with transaction.atomic():
                ConsumedNonce(nonce=nonce, used_at=timestamp).save(force_insert=True)
        except IntegrityError as exc:
            logger.info('replay detected for nonce {}', nonce)
            raise AlreadyConsumed(nonce) from exc
