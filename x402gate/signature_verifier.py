"""
Verification of off-chain EIP-3009 transfer authorizations.
"""
from dataclasses import dataclass
from typing import Callable, Optional

from django.utils import timezone
from eth_account import Account
from eth_account.messages import encode_typed_data
from hexbytes import HexBytes
from loguru import logger
from web3 import Web3

from x402gate.addresses import canonical_address
from x402gate.authorization import SignedAuthorization
from x402gate.exceptions import AlreadyConsumed
from x402gate.ledger import ReplayGuard
from x402gate.results import InvalidReason, VerificationResult


@dataclass(frozen=True)
class TokenDomain:
    """EIP-712 domain of the asset contract."""
    name: str
    version: str
    chain_id: int
    verifying_contract: str


def _now_ts() -> int:
    return int(timezone.now().timestamp())


def build_typed_data(authorization: SignedAuthorization, domain: TokenDomain) -> dict:
    return {
        'types': {
            'EIP712Domain': [
                {'name': 'name', 'type': 'string'},
                {'name': 'version', 'type': 'string'},
                {'name': 'chainId', 'type': 'uint256'},
                {'name': 'verifyingContract', 'type': 'address'},
            ],
            'TransferWithAuthorization': [
                {'name': 'from', 'type': 'address'},
                {'name': 'to', 'type': 'address'},
                {'name': 'value', 'type': 'uint256'},
                {'name': 'validAfter', 'type': 'uint256'},
                {'name': 'validBefore', 'type': 'uint256'},
                {'name': 'nonce', 'type': 'bytes32'},
            ],
        },
        'primaryType': 'TransferWithAuthorization',
        'domain': {
            'name': domain.name,
            'version': domain.version,
            'chainId': domain.chain_id,
            'verifyingContract': Web3.to_checksum_address(domain.verifying_contract),
        },
        'message': {
            'from': Web3.to_checksum_address(authorization.from_),
            'to': Web3.to_checksum_address(authorization.to),
            'value': int(authorization.value),
            'validAfter': authorization.valid_after,
            'validBefore': authorization.valid_before,
            'nonce': HexBytes(authorization.nonce),
        },
    }


def recover_signer(authorization: SignedAuthorization, domain: TokenDomain) -> str:
    """Recover the canonical address that produced the authorization's signature."""
    signable = encode_typed_data(full_message=build_typed_data(authorization, domain))
    recovered = Account.recover_message(
        signable,
        vrs=(authorization.v, HexBytes(authorization.r), HexBytes(authorization.s)),
    )
    return canonical_address(recovered)


class SignatureVerifier:
    """
    Accepts a signed authorization once: right recipient, exact amount,
    inside its validity window and signed by its ``from`` address.

    Accepted authorizations only consume their nonce; they are not written to
    the payment ledger.
    """

    def __init__(
        self,
        replay_guard: ReplayGuard,
        pay_to: str,
        domain: TokenDomain,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.replay_guard = replay_guard
        self.pay_to = canonical_address(pay_to)
        self.domain = domain
        self._clock = clock or _now_ts

    async def verify(self, authorization: SignedAuthorization, expected_amount: str) -> VerificationResult:
        try:
            return await self._verify(authorization, str(expected_amount))
        except Exception as exc:
            logger.error('signature verification error: {}', exc)
            return VerificationResult.invalid(
                InvalidReason.VERIFICATION_ERROR, f'Verification error: {exc}')

    async def _verify(self, authorization: SignedAuthorization, expected_amount: str) -> VerificationResult:
        if await self.replay_guard.has_consumed(authorization.nonce):
            return VerificationResult.invalid(InvalidReason.NONCE_REUSED)

        if authorization.to != self.pay_to:
            return VerificationResult.invalid(InvalidReason.INVALID_RECIPIENT)

        if authorization.value != expected_amount:
            return VerificationResult.invalid(
                InvalidReason.AMOUNT_MISMATCH,
                f'Amount mismatch: expected {expected_amount}, got {authorization.value}',
                expected=expected_amount,
                actual=authorization.value,
            )

        now = self._clock()
        if now < authorization.valid_after or now > authorization.valid_before:
            return VerificationResult.invalid(InvalidReason.EXPIRED)

        try:
            signer = recover_signer(authorization, self.domain)
        except Exception as exc:
            logger.info('unable to recover signer for nonce {}: {}', authorization.nonce, exc)
            return VerificationResult.invalid(InvalidReason.INVALID_SIGNATURE)
        if signer != authorization.from_:
            return VerificationResult.invalid(InvalidReason.INVALID_SIGNATURE)

        try:
            await self.replay_guard.consume(authorization.nonce, now)
        except AlreadyConsumed:
            return VerificationResult.invalid(InvalidReason.ALREADY_CONSUMED)

        logger.info('authorization verified: signer={} value={} nonce={}',
                    signer, authorization.value, authorization.nonce)
        return VerificationResult.authorized(signer)
