import asyncio

from django.test import TestCase
from eth_abi.exceptions import DecodingError

from x402gate.ledger import PaymentLedger
from x402gate.models import Payment
from x402gate.results import InvalidReason
from x402gate.testing import FakeChainClient, approval_log, transfer_log
from x402gate.transaction_verifier import TransactionVerifier, decode_transfer_log

ASSET = '0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48'
OTHER_TOKEN = '0xdAC17F958D2ee523a2206206994597C13D831ec7'
PAY_TO = '0xAA31F97BE2c7f90Ff2cf3b7eD44855E750CEF81f'
PAYER = '0xC0ffee254729296a45a3885639AC7E10F9d54979'
STRANGER = '0x1111111111111111111111111111111111111111'
TX_HASH = '0x' + 'ab' * 32
VERIFIED_AT = 1700000500


class RacingLedger(PaymentLedger):
    """Misses the first lookup, as if a concurrent request had not committed yet."""

    def __init__(self):
        self.lookups = 0

    async def get(self, tx_hash):
        self.lookups += 1
        if self.lookups == 1:
            return None
        return await super().get(tx_hash)


class TransactionVerifierTests(TestCase):
    def setUp(self) -> None:
        self.chain = FakeChainClient()
        self.verifier = self._make_verifier()

    def _make_verifier(self, ledger=None, rpc_timeout=1.0):
        return TransactionVerifier(
            chain=self.chain,
            ledger=ledger or PaymentLedger(),
            pay_to=PAY_TO,
            asset=ASSET,
            rpc_timeout=rpc_timeout,
            clock=lambda: VERIFIED_AT,
        )

    async def test_verifies_transfer_to_payment_address(self):
        self.chain.add_transaction(
            TX_HASH, transfer_log(ASSET, PAYER, PAY_TO, 50000000), timestamp=1700000000)

        result = await self.verifier.verify(TX_HASH, '50000000', '/api/x')

        self.assertTrue(result.is_valid)
        self.assertFalse(result.was_cached)
        self.assertEqual(result.payment.to_dict(), {
            'tx_hash': TX_HASH,
            'from_address': PAYER.lower(),
            'amount': '50000000',
            'service': '/api/x',
            'timestamp': 1700000000,
            'verified_at': VERIFIED_AT,
        })
        self.assertEqual(await Payment.objects.acount(), 1)

    async def test_second_verification_is_served_from_ledger(self):
        self.chain.add_transaction(TX_HASH, transfer_log(ASSET, PAYER, PAY_TO, 50000000))

        first = await self.verifier.verify(TX_HASH, '50000000', '/api/x')
        calls_after_first = len(self.chain.calls)
        second = await self.verifier.verify(TX_HASH.upper().replace('0X', '0x'), '50000000', '/api/x')

        self.assertTrue(first.is_valid)
        self.assertFalse(first.was_cached)
        self.assertTrue(second.is_valid)
        self.assertTrue(second.was_cached)
        self.assertEqual(second.payment.tx_hash, TX_HASH)
        self.assertEqual(len(self.chain.calls), calls_after_first)
        self.assertEqual(await Payment.objects.acount(), 1)

    async def test_amount_must_match_exactly(self):
        for value in (49999999, 50000001):
            with self.subTest(value=value):
                tx_hash = '0x' + f'{value:064x}'
                self.chain.add_transaction(tx_hash, transfer_log(ASSET, PAYER, PAY_TO, value))

                result = await self.verifier.verify(tx_hash, '50000000', '/api/x')

                self.assertFalse(result.is_valid)
                self.assertEqual(result.invalid_reason, InvalidReason.AMOUNT_MISMATCH)
                self.assertEqual(result.details, {'expected': '50000000', 'actual': str(value)})
        self.assertEqual(await Payment.objects.acount(), 0)

    async def test_missing_receipt_is_not_found(self):
        result = await self.verifier.verify(TX_HASH, '50000000', '/api/x')

        self.assertFalse(result.is_valid)
        self.assertEqual(result.invalid_reason, InvalidReason.NOT_FOUND)

    async def test_reverted_transaction_fails(self):
        self.chain.add_transaction(
            TX_HASH, transfer_log(ASSET, PAYER, PAY_TO, 50000000), status=0)

        result = await self.verifier.verify(TX_HASH, '50000000', '/api/x')

        self.assertEqual(result.invalid_reason, InvalidReason.TX_FAILED)

    async def test_transfer_between_other_parties_is_rejected(self):
        self.chain.add_transaction(TX_HASH, transfer_log(ASSET, PAYER, STRANGER, 50000000))

        result = await self.verifier.verify(TX_HASH, '50000000', '/api/x')

        self.assertEqual(result.invalid_reason, InvalidReason.NO_TRANSFER_FOUND)

    async def test_transfer_of_another_token_is_ignored(self):
        self.chain.add_transaction(TX_HASH, transfer_log(OTHER_TOKEN, PAYER, PAY_TO, 50000000))

        result = await self.verifier.verify(TX_HASH, '50000000', '/api/x')

        self.assertEqual(result.invalid_reason, InvalidReason.NO_TRANSFER_FOUND)

    async def test_non_transfer_logs_are_skipped(self):
        broken = {'address': ASSET, 'topics': [], 'data': '0x'}
        self.chain.add_transaction(
            TX_HASH,
            approval_log(ASSET, PAYER, PAY_TO, 50000000),
            broken,
            transfer_log(ASSET, PAYER, PAY_TO, 50000000),
        )

        result = await self.verifier.verify(TX_HASH, '50000000', '/api/x')

        self.assertTrue(result.is_valid)

    async def test_first_transfer_to_payment_address_wins(self):
        self.chain.add_transaction(
            TX_HASH,
            transfer_log(ASSET, STRANGER, PAYER, 7),
            transfer_log(ASSET, PAYER, PAY_TO, 30000000),
            transfer_log(ASSET, PAYER, PAY_TO, 50000000),
        )

        result = await self.verifier.verify(TX_HASH, '50000000', '/api/x')

        self.assertEqual(result.invalid_reason, InvalidReason.AMOUNT_MISMATCH)
        self.assertEqual(result.details['actual'], '30000000')

    async def test_malformed_hash_makes_no_rpc_call(self):
        result = await self.verifier.verify('not-a-hash', '50000000', '/api/x')

        self.assertEqual(result.invalid_reason, InvalidReason.MALFORMED)
        self.assertEqual(self.chain.calls, [])

    async def test_rpc_failure_is_reported_as_verification_error(self):
        self.chain.error = ConnectionError('connection refused')

        result = await self.verifier.verify(TX_HASH, '50000000', '/api/x')

        self.assertEqual(result.invalid_reason, InvalidReason.VERIFICATION_ERROR)
        self.assertIn('connection refused', result.message)

    async def test_rpc_timeout_is_reported_as_verification_error(self):
        self.chain.delay = 0.5
        verifier = self._make_verifier(rpc_timeout=0.01)

        result = await verifier.verify(TX_HASH, '50000000', '/api/x')

        self.assertEqual(result.invalid_reason, InvalidReason.VERIFICATION_ERROR)
        self.assertIn('timed out', result.message)

    async def test_missing_block_is_reported_as_verification_error(self):
        self.chain.add_transaction(TX_HASH, transfer_log(ASSET, PAYER, PAY_TO, 50000000))
        self.chain.blocks.clear()

        result = await self.verifier.verify(TX_HASH, '50000000', '/api/x')

        self.assertEqual(result.invalid_reason, InvalidReason.VERIFICATION_ERROR)
        self.assertIn('not found', result.message)
        self.assertEqual(await Payment.objects.acount(), 0)

    async def test_block_lookup_timeout_records_nothing(self):
        self.chain.add_transaction(TX_HASH, transfer_log(ASSET, PAYER, PAY_TO, 50000000))
        verifier = self._make_verifier(rpc_timeout=0.05)
        original_get_block = self.chain.get_block

        async def slow_get_block(block_number):
            await asyncio.sleep(0.5)
            return await original_get_block(block_number)

        self.chain.get_block = slow_get_block

        result = await verifier.verify(TX_HASH, '50000000', '/api/x')

        self.assertEqual(result.invalid_reason, InvalidReason.VERIFICATION_ERROR)
        self.assertIn('timed out', result.message)
        self.assertEqual(await Payment.objects.acount(), 0)

    async def test_lost_insert_race_returns_stored_payment(self):
        await Payment.objects.acreate(
            tx_hash=TX_HASH,
            from_address=PAYER.lower(),
            amount='50000000',
            service='/api/x',
            timestamp=1700000000,
            verified_at=1700000100,
        )
        self.chain.add_transaction(TX_HASH, transfer_log(ASSET, PAYER, PAY_TO, 50000000))
        verifier = self._make_verifier(ledger=RacingLedger())

        result = await verifier.verify(TX_HASH, '50000000', '/api/x')

        self.assertTrue(result.is_valid)
        self.assertTrue(result.was_cached)
        self.assertEqual(result.payment.verified_at, 1700000100)
        self.assertEqual(await Payment.objects.acount(), 1)


class DecodeTransferLogTests(TestCase):
    def test_decodes_indexed_addresses_and_value(self):
        event = decode_transfer_log(transfer_log(ASSET, PAYER, PAY_TO, 50000000))

        self.assertEqual(event.token, ASSET.lower())
        self.assertEqual(event.sender, PAYER.lower())
        self.assertEqual(event.recipient, PAY_TO.lower())
        self.assertEqual(event.value, 50000000)

    def test_rejects_other_events(self):
        with self.assertRaises(ValueError):
            decode_transfer_log(approval_log(ASSET, PAYER, PAY_TO, 1))

    def test_rejects_truncated_data(self):
        log = transfer_log(ASSET, PAYER, PAY_TO, 1)
        log['data'] = '0x01'
        with self.assertRaises((ValueError, DecodingError)):
            decode_transfer_log(log)
