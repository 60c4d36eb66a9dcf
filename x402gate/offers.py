"""
Payment offers returned with ``402 Payment Required`` responses.
"""
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List

from web3 import Web3
from x402.encoding import safe_base64_encode
from x402.types import PaymentRequirements

from x402gate.ledger import format_amount

SCHEME_SIGNED_AUTHORIZATION = 'eip3009'
SCHEME_TRANSACTION = 'transaction'


@dataclass(frozen=True)
class PaymentOffer:
    """Everything a payer needs to settle one priced resource."""
    resource: str
    description: str
    amount: str
    price_usd: Any
    pay_to: str
    asset: str
    network: str
    chain_id: int
    token_name: str
    token_version: str
    max_timeout_seconds: int
    accepts: List[PaymentRequirements] = field(default_factory=list)

    @property
    def caip2_network(self) -> str:
        return f'eip155:{self.chain_id}'

    def to_dict(self) -> Dict[str, Any]:
        return {
            'resource': self.resource,
            'accepts': [
                requirements.model_dump(by_alias=True, exclude_none=True)
                for requirements in self.accepts
            ],
        }

    def to_header(self) -> str:
        return safe_base64_encode(json.dumps(self.to_dict()))

    def to_response_body(self) -> Dict[str, Any]:
        return {
            'error': 'payment_required',
            'message': f'This service costs ${self.price_usd} USDC',
            'service': self.description,
            'payment': {
                'address': self.pay_to,
                'amount': self.amount,
                'amount_usd': self.price_usd,
                'asset': self.asset,
                'network': self.caip2_network,
                'chain_id': self.chain_id,
                'token': 'USDC',
            },
            'accepts': self.to_dict()['accepts'],
            'instructions': {
                'method1': 'Include transaction hash in Payment-Tx header after sending USDC',
                'method2': ('Use EIP-3009 transferWithAuthorization and include the base64 '
                            'JSON authorization in Payment-Signature header'),
            },
        }


def build_payment_offer(
    *,
    resource: str,
    description: str,
    amount: str,
    price_usd: Any = None,
    token_decimals: int = 6,
    pay_to: str,
    asset: str,
    network: str,
    chain_id: int,
    token_name: str,
    token_version: str,
    max_timeout_seconds: int,
) -> PaymentOffer:
    if price_usd is None:
        price_usd = format_amount(amount, token_decimals)
    pay_to = Web3.to_checksum_address(pay_to)
    asset = Web3.to_checksum_address(asset)
    common = {
        'network': network,
        'max_amount_required': str(amount),
        'resource': resource,
        'description': description,
        'mime_type': 'application/json',
        'output_schema': None,
        'pay_to': pay_to,
        'max_timeout_seconds': max_timeout_seconds,
        'asset': asset,
    }
    accepts = [
        PaymentRequirements(
            scheme=SCHEME_SIGNED_AUTHORIZATION,
            extra={'name': token_name, 'version': token_version, 'chainId': chain_id},
            **common,
        ),
        PaymentRequirements(
            scheme=SCHEME_TRANSACTION,
            extra={'chainId': chain_id, 'message': f'Payment for {description}'},
            **common,
        ),
    ]
    return PaymentOffer(
        resource=resource,
        description=description,
        amount=str(amount),
        price_usd=price_usd,
        pay_to=pay_to,
        asset=asset,
        network=network,
        chain_id=chain_id,
        token_name=token_name,
        token_version=token_version,
        max_timeout_seconds=max_timeout_seconds,
        accepts=accepts,
    )
