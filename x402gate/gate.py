"""
Facade over the two payment verification paths and the payment ledger.
"""
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable, List, Mapping, Optional, Union

from django.conf import settings
from loguru import logger
from x402.chains import get_chain_id

from x402gate.addresses import canonical_address
from x402gate.authorization import SignedAuthorization, decode_authorization_header, parse_authorization
from x402gate.chain import ChainClient, Web3ChainClient
from x402gate.exceptions import GateConfigurationError, MalformedPaymentError
from x402gate.ledger import DEFAULT_HISTORY_LIMIT, LedgerStats, PaymentLedger, ReplayGuard
from x402gate.models import Payment
from x402gate.offers import PaymentOffer, build_payment_offer
from x402gate.results import InvalidReason, VerificationResult
from x402gate.signature_verifier import SignatureVerifier, TokenDomain
from x402gate.transaction_verifier import TransactionVerifier


@dataclass(frozen=True)
class GateConfig:
    pay_to: str
    asset: str
    network: str
    chain_id: int
    rpc_url: str
    token_name: str = 'USD Coin'
    token_version: str = '2'
    token_decimals: int = 6
    rpc_timeout_seconds: float = 10.0
    max_timeout_seconds: int = 300

    @classmethod
    def from_settings(cls) -> 'GateConfig':
        pay_to = getattr(settings, 'X402_PAY_TO', '')
        asset = getattr(settings, 'X402_USDC_CONTRACT', '')
        network = getattr(settings, 'X402_NETWORK', 'base')
        if not pay_to or not asset:
            raise GateConfigurationError(
                'X402_PAY_TO and X402_USDC_CONTRACT must be configured.')

        chain_id = getattr(settings, 'X402_CHAIN_ID', None)
        if chain_id is None:
            try:
                chain_id = int(get_chain_id(network))
            except ValueError as exc:
                raise GateConfigurationError(str(exc)) from exc

        try:
            canonical_address(pay_to)
            canonical_address(asset)
        except ValueError as exc:
            raise GateConfigurationError(str(exc)) from exc

        return cls(
            pay_to=pay_to,
            asset=asset,
            network=network,
            chain_id=int(chain_id),
            rpc_url=getattr(settings, 'X402_RPC_URL', ''),
            token_name=getattr(settings, 'X402_TOKEN_NAME', 'USD Coin'),
            token_version=getattr(settings, 'X402_TOKEN_VERSION', '2'),
            token_decimals=getattr(settings, 'X402_TOKEN_DECIMALS', 6),
            rpc_timeout_seconds=getattr(settings, 'X402_RPC_TIMEOUT_SECONDS', 10.0),
            max_timeout_seconds=getattr(settings, 'X402_MAX_TIMEOUT_SECONDS', 300),
        )

    @property
    def domain(self) -> TokenDomain:
        return TokenDomain(
            name=self.token_name,
            version=self.token_version,
            chain_id=self.chain_id,
            verifying_contract=self.asset,
        )


class VerificationGate:
    """
    Entry point used by the HTTP layer.

    ``verify_transaction`` settles against the chain and records a Payment;
    ``verify_authorization`` accepts a signed authorization once and records
    only its nonce.
    """

    def __init__(
        self,
        config: GateConfig,
        chain: Optional[ChainClient] = None,
        ledger: Optional[PaymentLedger] = None,
        replay_guard: Optional[ReplayGuard] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.config = config
        self.ledger = ledger or PaymentLedger()
        self.replay_guard = replay_guard or ReplayGuard()
        self.chain = chain or Web3ChainClient(config.rpc_url)
        self.transactions = TransactionVerifier(
            chain=self.chain,
            ledger=self.ledger,
            pay_to=config.pay_to,
            asset=config.asset,
            rpc_timeout=config.rpc_timeout_seconds,
            clock=clock,
        )
        self.signatures = SignatureVerifier(
            replay_guard=self.replay_guard,
            pay_to=config.pay_to,
            domain=config.domain,
            clock=clock,
        )

    async def verify_transaction(self, tx_hash: str, expected_amount: str, service: str) -> VerificationResult:
        return await self.transactions.verify(tx_hash, expected_amount, service)

    async def verify_authorization(
        self,
        authorization: Union[SignedAuthorization, Mapping[str, Any]],
        expected_amount: str,
    ) -> VerificationResult:
        if not isinstance(authorization, SignedAuthorization):
            try:
                authorization = parse_authorization(authorization)
            except MalformedPaymentError as exc:
                return VerificationResult.invalid(InvalidReason.MALFORMED, exc.message)
        return await self.signatures.verify(authorization, expected_amount)

    async def verify_authorization_header(self, header_value: str, expected_amount: str) -> VerificationResult:
        try:
            authorization = decode_authorization_header(header_value)
        except MalformedPaymentError as exc:
            logger.info('rejected malformed Payment-Signature header: {}', exc.message)
            return VerificationResult.invalid(InvalidReason.MALFORMED, exc.message)
        logger.info('verifying signed authorization from {}', authorization.from_)
        return await self.signatures.verify(authorization, expected_amount)

    async def history(self, address: str, limit: int = DEFAULT_HISTORY_LIMIT) -> List[Payment]:
        return await self.ledger.history(address, limit)

    async def stats(self) -> LedgerStats:
        return await self.ledger.stats()

    def payment_offer(self, resource: str, price: str, description: str, price_usd: Any = None) -> PaymentOffer:
        return build_payment_offer(
            resource=resource,
            description=description,
            amount=price,
            price_usd=price_usd,
            pay_to=self.config.pay_to,
            asset=self.config.asset,
            network=self.config.network,
            chain_id=self.config.chain_id,
            token_name=self.config.token_name,
            token_version=self.config.token_version,
            max_timeout_seconds=self.config.max_timeout_seconds,
            token_decimals=self.config.token_decimals,
        )


@lru_cache()
def get_gate() -> VerificationGate:
    return VerificationGate(GateConfig.from_settings())
