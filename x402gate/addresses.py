"""
Canonical forms for the identifiers the gate compares and stores.

Addresses, transaction hashes and nonces are lowercased hex with a ``0x``
prefix everywhere they are persisted or compared.
"""
import re

from hexbytes import HexBytes
from web3 import Web3

_TX_HASH_RE = re.compile(r'0x[0-9a-f]{64}')


def canonical_address(address) -> str:
    """Return the lowercase ``0x`` form of an EVM address or raise ValueError."""
    if isinstance(address, (bytes, bytearray)):
        address = '0x' + bytes(address).hex()
    if not isinstance(address, str):
        raise ValueError(f'Invalid ethereum address: {address!r}')
    try:
        return Web3.to_checksum_address(address.strip().lower()).lower()
    except (ValueError, TypeError) as exc:
        raise ValueError(f'Invalid ethereum address: {address}') from exc


def canonical_tx_hash(tx_hash) -> str:
    if not isinstance(tx_hash, str):
        raise ValueError('Transaction hash must be a hex string.')
    value = tx_hash.strip().lower()
    if not value.startswith('0x'):
        value = '0x' + value
    if not _TX_HASH_RE.fullmatch(value):
        raise ValueError(f'Malformed transaction hash: {tx_hash}')
    return value


def canonical_bytes32(value, field: str = 'value') -> str:
    """Normalise a 32-byte hex value (nonce, signature scalar)."""
    if isinstance(value, bool) or not isinstance(value, (str, bytes, bytearray)):
        raise ValueError(f'{field} must be hex encoded.')
    try:
        raw = HexBytes(value)
    except (ValueError, TypeError) as exc:
        raise ValueError(f'{field} must be hex encoded.') from exc
    if len(raw) != 32:
        raise ValueError(f'{field} must be 32 bytes.')
    return '0x' + bytes(raw).hex()
