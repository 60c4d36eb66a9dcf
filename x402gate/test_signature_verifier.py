import base64
import json
import os

from django.test import TestCase
from eth_account import Account
from eth_account.messages import encode_typed_data

from x402gate.authorization import SignedAuthorization
from x402gate.exceptions import AlreadyConsumed
from x402gate.gate import GateConfig, VerificationGate
from x402gate.ledger import ReplayGuard
from x402gate.models import ConsumedNonce, Payment
from x402gate.results import InvalidReason
from x402gate.signature_verifier import SignatureVerifier, TokenDomain, build_typed_data
from x402gate.testing import FakeChainClient

USDC = '0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913'
PAY_TO = '0xAA31F97BE2c7f90Ff2cf3b7eD44855E750CEF81f'
STRANGER = '0x1111111111111111111111111111111111111111'
DOMAIN = TokenDomain(name='USD Coin', version='2', chain_id=8453, verifying_contract=USDC)
NOW = 1700000000
VALID_AFTER = NOW - 60
VALID_BEFORE = NOW + 300


def _hex32(value: int) -> str:
    return '0x' + value.to_bytes(32, 'big').hex()


def sign_authorization(account, domain=DOMAIN, **overrides) -> dict:
    """Build a payload signed by ``account``; overrides apply before signing."""
    message = {
        'from': account.address,
        'to': PAY_TO,
        'value': '50000000',
        'validAfter': VALID_AFTER,
        'validBefore': VALID_BEFORE,
        'nonce': '0x' + os.urandom(32).hex(),
    }
    message.update(overrides)
    unsigned = SignedAuthorization.model_validate(
        {**message, 'v': 27, 'r': _hex32(1), 's': _hex32(1)})
    signable = encode_typed_data(full_message=build_typed_data(unsigned, domain))
    signed = account.sign_message(signable)
    return {**message, 'v': signed.v, 'r': _hex32(signed.r), 's': _hex32(signed.s)}


class AlwaysFreshGuard(ReplayGuard):
    """Reports every nonce as unused, as a request racing another would see it."""

    async def has_consumed(self, nonce):
        return False


class SignatureVerifierTests(TestCase):
    def setUp(self) -> None:
        self.payer = Account.create('x402-gate-payer')
        self.now = NOW
        self.verifier = SignatureVerifier(
            replay_guard=ReplayGuard(),
            pay_to=PAY_TO,
            domain=DOMAIN,
            clock=lambda: self.now,
        )

    async def _verify(self, payload: dict, expected_amount: str = '50000000'):
        authorization = SignedAuthorization.model_validate(payload)
        return await self.verifier.verify(authorization, expected_amount)

    async def test_valid_authorization_is_accepted_once(self):
        payload = sign_authorization(self.payer)

        result = await self._verify(payload)

        self.assertTrue(result.is_valid)
        self.assertEqual(result.signer, self.payer.address.lower())
        self.assertIsNone(result.payment)
        self.assertTrue(await ConsumedNonce.objects.filter(nonce=payload['nonce']).aexists())
        self.assertEqual(await Payment.objects.acount(), 0)

    async def test_reused_nonce_is_rejected_even_with_new_signature(self):
        payload = sign_authorization(self.payer)
        first = await self._verify(payload)

        other_payer = Account.create('x402-gate-other-payer')
        replay = sign_authorization(other_payer, nonce=payload['nonce'])
        second = await self._verify(replay)

        self.assertTrue(first.is_valid)
        self.assertEqual(second.invalid_reason, InvalidReason.NONCE_REUSED)
        self.assertEqual(await ConsumedNonce.objects.acount(), 1)

    async def test_nonce_check_runs_before_other_checks(self):
        payload = sign_authorization(self.payer)
        await self._verify(payload)

        result = await self._verify({**payload, 'to': STRANGER}, expected_amount='1')

        self.assertEqual(result.invalid_reason, InvalidReason.NONCE_REUSED)

    async def test_wrong_recipient_is_rejected(self):
        payload = sign_authorization(self.payer, to=STRANGER)

        result = await self._verify(payload, expected_amount='1')

        self.assertEqual(result.invalid_reason, InvalidReason.INVALID_RECIPIENT)
        self.assertEqual(await ConsumedNonce.objects.acount(), 0)

    async def test_recipient_comparison_ignores_case(self):
        payload = sign_authorization(self.payer, to=PAY_TO.upper().replace('0X', '0x'))

        result = await self._verify(payload)

        self.assertTrue(result.is_valid)

    async def test_amount_must_match_exactly(self):
        for value in ('49999999', '50000001'):
            with self.subTest(value=value):
                payload = sign_authorization(self.payer, value=value)

                result = await self._verify(payload)

                self.assertEqual(result.invalid_reason, InvalidReason.AMOUNT_MISMATCH)

    async def test_window_bounds_are_inclusive(self):
        for now in (VALID_AFTER, VALID_BEFORE):
            with self.subTest(now=now):
                self.now = now
                result = await self._verify(sign_authorization(self.payer))
                self.assertTrue(result.is_valid)

    async def test_outside_window_is_expired(self):
        for now in (VALID_AFTER - 1, VALID_BEFORE + 1):
            with self.subTest(now=now):
                self.now = now
                result = await self._verify(sign_authorization(self.payer))
                self.assertEqual(result.invalid_reason, InvalidReason.EXPIRED)
        self.assertEqual(await ConsumedNonce.objects.acount(), 0)

    async def test_tampered_value_breaks_signature(self):
        payload = sign_authorization(self.payer)
        payload['value'] = '50000001'

        result = await self._verify(payload, expected_amount='50000001')

        self.assertEqual(result.invalid_reason, InvalidReason.INVALID_SIGNATURE)
        self.assertEqual(await ConsumedNonce.objects.acount(), 0)

    async def test_flipped_signature_bits_are_rejected(self):
        for field in ('r', 's'):
            for bit in (0, 128, 255):
                with self.subTest(field=field, bit=bit):
                    payload = sign_authorization(self.payer)
                    payload[field] = _hex32(int(payload[field], 16) ^ (1 << bit))

                    result = await self._verify(payload)

                    self.assertEqual(result.invalid_reason, InvalidReason.INVALID_SIGNATURE)

    async def test_signature_for_another_domain_is_rejected(self):
        other_chain = TokenDomain(name='USD Coin', version='2', chain_id=1, verifying_contract=USDC)
        payload = sign_authorization(self.payer, domain=other_chain)

        result = await self._verify(payload)

        self.assertEqual(result.invalid_reason, InvalidReason.INVALID_SIGNATURE)

    async def test_claimed_sender_must_be_signer(self):
        payload = sign_authorization(self.payer)
        payload['from'] = STRANGER

        result = await self._verify(payload)

        self.assertEqual(result.invalid_reason, InvalidReason.INVALID_SIGNATURE)

    async def test_zero_based_recovery_id_is_accepted(self):
        payload = sign_authorization(self.payer)
        payload['v'] = payload['v'] - 27

        result = await self._verify(payload)

        self.assertTrue(result.is_valid)

    async def test_concurrent_consumption_reports_already_consumed(self):
        payload = sign_authorization(self.payer)
        await ConsumedNonce.objects.acreate(nonce=payload['nonce'], used_at=NOW)
        verifier = SignatureVerifier(
            replay_guard=AlwaysFreshGuard(),
            pay_to=PAY_TO,
            domain=DOMAIN,
            clock=lambda: NOW,
        )

        result = await verifier.verify(SignedAuthorization.model_validate(payload), '50000000')

        self.assertEqual(result.invalid_reason, InvalidReason.ALREADY_CONSUMED)


class ReplayGuardTests(TestCase):
    async def test_consume_is_single_use(self):
        guard = ReplayGuard()
        nonce = '0x' + 'cd' * 32

        self.assertFalse(await guard.has_consumed(nonce))
        await guard.consume(nonce, NOW)
        self.assertTrue(await guard.has_consumed(nonce))

        with self.assertRaises(AlreadyConsumed):
            await guard.consume(nonce, NOW + 1)
        used_at = (await ConsumedNonce.objects.aget(nonce=nonce)).used_at
        self.assertEqual(used_at, NOW)


class AuthorizationHeaderTests(TestCase):
    def setUp(self) -> None:
        self.payer = Account.create('x402-gate-header-payer')
        config = GateConfig(
            pay_to=PAY_TO,
            asset=USDC,
            network='base',
            chain_id=8453,
            rpc_url='http://localhost:8545',
        )
        self.gate = VerificationGate(config, chain=FakeChainClient(), clock=lambda: NOW)

    def _encode(self, data) -> str:
        return base64.b64encode(json.dumps(data).encode()).decode()

    async def test_header_round_trip(self):
        payload = sign_authorization(self.payer)

        result = await self.gate.verify_authorization_header(self._encode(payload), '50000000')

        self.assertTrue(result.is_valid)
        self.assertEqual(result.signer, self.payer.address.lower())

    async def test_malformed_headers_are_rejected(self):
        payload = sign_authorization(self.payer)
        missing_nonce = {k: v for k, v in payload.items() if k != 'nonce'}
        cases = {
            'not base64': '%%%not-base64%%%',
            'not json': base64.b64encode(b'{oops').decode(),
            'missing field': self._encode(missing_nonce),
            'bad address': self._encode({**payload, 'to': '0x1234'}),
            'float value': self._encode({**payload, 'value': 50.5}),
            'short nonce': self._encode({**payload, 'nonce': '0x1234'}),
        }
        for label, header in cases.items():
            with self.subTest(label):
                result = await self.gate.verify_authorization_header(header, '50000000')
                self.assertEqual(result.invalid_reason, InvalidReason.MALFORMED)
        self.assertEqual(await ConsumedNonce.objects.acount(), 0)

    async def test_mapping_payload_is_parsed(self):
        payload = sign_authorization(self.payer)

        result = await self.gate.verify_authorization(payload, '50000000')

        self.assertTrue(result.is_valid)
