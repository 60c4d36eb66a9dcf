"""
Verification outcomes shared by both payment paths.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from x402gate.models import Payment


class InvalidReason(str, Enum):
    NOT_FOUND = 'not_found'
    TX_FAILED = 'tx_failed'
    NO_TRANSFER_FOUND = 'no_transfer_found'
    AMOUNT_MISMATCH = 'amount_mismatch'
    NONCE_REUSED = 'nonce_reused'
    INVALID_RECIPIENT = 'invalid_recipient'
    EXPIRED = 'expired'
    INVALID_SIGNATURE = 'invalid_signature'
    ALREADY_CONSUMED = 'already_consumed'
    VERIFICATION_ERROR = 'verification_error'
    MALFORMED = 'malformed'


DEFAULT_MESSAGES = {
    InvalidReason.NOT_FOUND: 'Transaction not found or not confirmed',
    InvalidReason.TX_FAILED: 'Transaction failed',
    InvalidReason.NO_TRANSFER_FOUND: 'No transfer to payment address found',
    InvalidReason.AMOUNT_MISMATCH: 'Amount mismatch',
    InvalidReason.NONCE_REUSED: 'Nonce already used',
    InvalidReason.INVALID_RECIPIENT: 'Invalid recipient address',
    InvalidReason.EXPIRED: 'Signature expired or not yet valid',
    InvalidReason.INVALID_SIGNATURE: 'Invalid signature',
    InvalidReason.ALREADY_CONSUMED: 'Authorization nonce already processed',
    InvalidReason.VERIFICATION_ERROR: 'Verification error',
    InvalidReason.MALFORMED: 'Malformed payment proof',
}


@dataclass(frozen=True)
class VerificationResult:
    """
    Result of a payment verification.

    Exactly one of three shapes: a verified on-chain ``payment`` (with
    ``was_cached`` set when it came from the ledger), a verified off-chain
    authorization ``signer``, or an ``invalid_reason`` with a message.
    """
    is_valid: bool
    payment: Optional['Payment'] = None
    was_cached: bool = False
    signer: Optional[str] = None
    invalid_reason: Optional[InvalidReason] = None
    message: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if self.is_valid:
            if self.invalid_reason is not None:
                raise ValueError('A valid result cannot carry an invalid reason.')
            if (self.payment is None) == (self.signer is None):
                raise ValueError('A valid result needs either a payment or a signer.')
        elif self.invalid_reason is None:
            raise ValueError('An invalid result needs a reason.')

    @classmethod
    def paid(cls, payment: 'Payment', was_cached: bool = False) -> 'VerificationResult':
        return cls(is_valid=True, payment=payment, was_cached=was_cached)

    @classmethod
    def authorized(cls, signer: str) -> 'VerificationResult':
        return cls(is_valid=True, signer=signer)

    @classmethod
    def invalid(
        cls,
        reason: InvalidReason,
        message: Optional[str] = None,
        **details: Any,
    ) -> 'VerificationResult':
        return cls(
            is_valid=False,
            invalid_reason=reason,
            message=message or DEFAULT_MESSAGES[reason],
            details=details or None,
        )
