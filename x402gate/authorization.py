"""
EIP-3009 ``TransferWithAuthorization`` payloads supplied by payers.
"""
import re

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError, field_validator
from x402.encoding import safe_base64_decode

from x402gate.addresses import canonical_address, canonical_bytes32
from x402gate.exceptions import MalformedPaymentError

_UINT_RE = re.compile(r'[0-9]+')


class SignedAuthorization(BaseModel):
    """
    An off-chain transfer authorization and its ``(v, r, s)`` signature.

    Addresses, ``r``, ``s`` and ``nonce`` are stored in canonical lowercase hex;
    ``value`` stays a decimal string so it is compared exactly.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    v: int
    r: str
    s: str
    from_: str = Field(alias='from')
    to: str
    value: str
    valid_after: int = Field(alias='validAfter')
    valid_before: int = Field(alias='validBefore')
    nonce: str

    @field_validator('from_', 'to')
    @classmethod
    def _address(cls, value: str) -> str:
        return canonical_address(value)

    @field_validator('r', 's', 'nonce')
    @classmethod
    def _bytes32(cls, value: str, info) -> str:
        return canonical_bytes32(value, info.field_name)

    @field_validator('value', mode='before')
    @classmethod
    def _uint(cls, value):
        if isinstance(value, bool):
            raise ValueError('value must be an unsigned integer.')
        if isinstance(value, int):
            value = str(value)
        if not isinstance(value, str) or not _UINT_RE.fullmatch(value):
            raise ValueError('value must be an unsigned integer.')
        return value

    @field_validator('v')
    @classmethod
    def _recovery_id(cls, value: int) -> int:
        if value in (0, 1):
            value += 27
        if value not in (27, 28):
            raise ValueError('v must be 0, 1, 27 or 28.')
        return value


def parse_authorization(data) -> SignedAuthorization:
    try:
        return SignedAuthorization.model_validate(data)
    except PydanticValidationError as exc:
        raise MalformedPaymentError(
            f'Invalid authorization payload: {exc.error_count()} invalid field(s)') from exc


def decode_authorization_header(header_value: str) -> SignedAuthorization:
    """Decode a base64 JSON ``Payment-Signature`` header."""
    try:
        raw = safe_base64_decode(header_value)
    except (ValueError, TypeError) as exc:
        raise MalformedPaymentError('Payment-Signature is not valid base64.') from exc
    try:
        return SignedAuthorization.model_validate_json(raw)
    except PydanticValidationError as exc:
        raise MalformedPaymentError(
            f'Invalid authorization payload: {exc.error_count()} invalid field(s)') from exc
