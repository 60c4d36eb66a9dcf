"""
Verification of USDC payments made as on-chain transactions.
"""
import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Mapping, Optional

from django.utils import timezone
from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from hexbytes import HexBytes
from loguru import logger
from web3 import Web3

from x402gate.addresses import canonical_address, canonical_tx_hash
from x402gate.chain import ChainClient
from x402gate.ledger import PaymentLedger
from x402gate.models import Payment
from x402gate.results import InvalidReason, VerificationResult

# keccak256("Transfer(address,address,uint256)")
TRANSFER_TOPIC = HexBytes(Web3.keccak(text='Transfer(address,address,uint256)'))


@dataclass(frozen=True)
class TransferEvent:
    """A decoded ERC-20 Transfer log."""
    token: str
    sender: str
    recipient: str
    value: int


def _now_ts() -> int:
    return int(timezone.now().timestamp())


def _topic_to_address(topic: HexBytes) -> str:
    if len(topic) != 32 or any(topic[:12]):
        raise ValueError('Topic is not an ABI encoded address.')
    return canonical_address(topic[12:])


def decode_transfer_log(log: Mapping[str, Any]) -> TransferEvent:
    """
    Decode a receipt log as ``Transfer(address indexed, address indexed, uint256)``.

    Raises ValueError or DecodingError when the log is a different event.
    """
    topics = [HexBytes(topic) for topic in log['topics']]
    if len(topics) != 3 or topics[0] != TRANSFER_TOPIC:
        raise ValueError('Log is not a Transfer event.')
    (value,) = abi_decode(['uint256'], HexBytes(log['data']))
    return TransferEvent(
        token=canonical_address(log['address']),
        sender=_topic_to_address(topics[1]),
        recipient=_topic_to_address(topics[2]),
        value=value,
    )


class TransactionVerifier:
    """
    Checks that a transaction moved exactly the expected USDC amount to the
    payment address, and records it in the ledger.
    """

    def __init__(
        self,
        chain: ChainClient,
        ledger: PaymentLedger,
        pay_to: str,
        asset: str,
        rpc_timeout: float = 10.0,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.chain = chain
        self.ledger = ledger
        self.pay_to = canonical_address(pay_to)
        self.asset = canonical_address(asset)
        self.rpc_timeout = rpc_timeout
        self._clock = clock or _now_ts

    async def verify(self, tx_hash: str, expected_amount: str, service: str) -> VerificationResult:
        try:
            tx_hash = canonical_tx_hash(tx_hash)
        except ValueError as exc:
            return VerificationResult.invalid(InvalidReason.MALFORMED, str(exc))

        try:
            existing = await self.ledger.get(tx_hash)
            if existing is not None:
                logger.info('payment {} already verified, serving cached record', tx_hash)
                return VerificationResult.paid(existing, was_cached=True)
            return await self._verify_on_chain(tx_hash, str(expected_amount), service)
        except asyncio.TimeoutError:
            logger.error('chain RPC timed out after {}s verifying {}', self.rpc_timeout, tx_hash)
            return VerificationResult.invalid(
                InvalidReason.VERIFICATION_ERROR,
                f'Chain RPC timed out after {self.rpc_timeout}s',
            )
        except Exception as exc:
            logger.error('payment verification error for {}: {}', tx_hash, exc)
            return VerificationResult.invalid(
                InvalidReason.VERIFICATION_ERROR, f'Verification error: {exc}')

    async def _verify_on_chain(self, tx_hash: str, expected_amount: str, service: str) -> VerificationResult:
        receipt = await self._rpc(self.chain.get_transaction_receipt(tx_hash))
        if receipt is None:
            return VerificationResult.invalid(InvalidReason.NOT_FOUND)
        if receipt.get('status') != 1:
            return VerificationResult.invalid(InvalidReason.TX_FAILED)

        transfer = next(
            (event for event in self._transfers(tx_hash, receipt.get('logs') or [])
             if event.recipient == self.pay_to),
            None,
        )
        if transfer is None:
            return VerificationResult.invalid(InvalidReason.NO_TRANSFER_FOUND)

        received = str(transfer.value)
        if received != expected_amount:
            return VerificationResult.invalid(
                InvalidReason.AMOUNT_MISMATCH,
                f'Amount mismatch: expected {expected_amount}, received {received}',
                expected=expected_amount,
                actual=received,
            )

        block = await self._rpc(self.chain.get_block(receipt['blockNumber']))
        payment = Payment(
            tx_hash=tx_hash,
            from_address=transfer.sender,
            amount=received,
            service=service,
            timestamp=int(block['timestamp']),
            verified_at=self._clock(),
        )

        if not await self.ledger.insert_if_absent(payment):
            stored = await self.ledger.get(tx_hash)
            logger.info('payment {} was recorded by a concurrent verification', tx_hash)
            return VerificationResult.paid(stored or payment, was_cached=True)

        logger.info('payment verified: tx={} payer={} amount={} service={}',
                    tx_hash, payment.from_address, payment.amount, service)
        return VerificationResult.paid(payment, was_cached=False)

    def _transfers(self, tx_hash: str, logs: Iterable[Mapping[str, Any]]) -> List[TransferEvent]:
        transfers = []
        for log in logs:
            try:
                if canonical_address(log['address']) != self.asset:
                    continue
                event = decode_transfer_log(log)
            except (KeyError, TypeError, ValueError, DecodingError) as exc:
                logger.debug('skipping non-transfer log in {}: {}', tx_hash, exc)
                continue
            logger.debug('found transfer in {}: {} -> {} | {}',
                         tx_hash, event.sender, event.recipient, event.value)
            transfers.append(event)
        return transfers

    async def _rpc(self, call):
        return await asyncio.wait_for(call, timeout=self.rpc_timeout)
