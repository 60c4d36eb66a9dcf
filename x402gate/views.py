from asgiref.sync import async_to_sync
from django.conf import settings
from django.http import HttpResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods
from loguru import logger
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from x402gate.catalog import service_payload
from x402gate.gate import get_gate
from x402gate.ledger import DEFAULT_HISTORY_LIMIT, format_amount
from x402gate.results import InvalidReason
from x402gate.serializers import PaymentSerializer

PAYMENT_TX_HEADER = 'Payment-Tx'
PAYMENT_SIGNATURE_HEADER = 'Payment-Signature'
PAYMENT_REQUIRED_HEADER = 'PAYMENT-REQUIRED'


def _json(data: dict, status_code: int = 200, headers: dict = None) -> JsonResponse:
    return JsonResponse(
        data,
        status=status_code,
        headers=headers,
        json_dumps_params={'indent': 2, 'ensure_ascii': False},
    )


def _priced_paths() -> list:
    return [path for path, service in settings.X402_SERVICES.items()
            if str(service['price']) != '0']


def _display_price(service: dict, decimals: int):
    price_usd = service.get('price_usd')
    if price_usd is None:
        return format_amount(service['price'], decimals)
    return price_usd


@csrf_exempt
@require_http_methods(['GET', 'POST', 'OPTIONS'])
async def priced_resource(request, service: str):
    # CORS preflights are answered by the middleware; bare OPTIONS still gets 200.
    if request.method == 'OPTIONS':
        return HttpResponse(status=status.HTTP_200_OK)

    path = f'/api/{service}'
    config = settings.X402_SERVICES.get(path)
    if config is None:
        return _json({
            'error': 'not_found',
            'message': 'Service not found',
            'available': _priced_paths(),
        }, status.HTTP_404_NOT_FOUND)

    price = str(config['price'])
    if price == '0':
        return _json(service_payload(path, config.get('description')))

    gate = get_gate()
    tx_hash = request.headers.get(PAYMENT_TX_HEADER)
    signature = request.headers.get(PAYMENT_SIGNATURE_HEADER)

    if not tx_hash and not signature:
        offer = gate.payment_offer(
            path, price, config.get('description', path), config.get('price_usd'))
        logger.info('402 payment required: {} (${})', path, offer.price_usd)
        return _json(
            offer.to_response_body(),
            status.HTTP_402_PAYMENT_REQUIRED,
            headers={PAYMENT_REQUIRED_HEADER: offer.to_header()},
        )

    if tx_hash:
        logger.info('verifying transaction {} for {}', tx_hash, path)
        result = await gate.verify_transaction(tx_hash, price, path)
    else:
        result = await gate.verify_authorization_header(signature, price)

    if not result.is_valid:
        if result.invalid_reason is InvalidReason.MALFORMED:
            return _json({
                'error': 'invalid_payment_format',
                'details': result.message,
            }, status.HTTP_400_BAD_REQUEST)
        logger.info('payment verification failed for {}: {}', path, result.message)
        return _json({
            'error': 'payment_verification_failed',
            'reason': result.invalid_reason.value,
            'details': result.message,
            'message': 'Payment could not be verified',
        }, status.HTTP_402_PAYMENT_REQUIRED)

    if result.payment is not None:
        payment_info = 'cached' if result.was_cached else 'verified'
    else:
        payment_info = 'authorized'
    logger.info('payment accepted ({}), providing service {}', payment_info, path)

    body = service_payload(path, config.get('description'))
    body.update({'payment_verified': True, 'payment_info': payment_info})
    return _json(body)


class StatsView(APIView):
    authentication_classes: list = []
    permission_classes: list = []

    def get(self, request, *args, **kwargs):
        gate = get_gate()
        stats = async_to_sync(gate.stats)()
        return Response(
            {
                'service': 'Service Statistics',
                'stats': {
                    'total_payments': stats.count,
                    'total_received': stats.total_amount,
                    'total_revenue_usd': format_amount(
                        stats.total_amount, gate.config.token_decimals),
                    'unique_customers': stats.unique_payers,
                    'services': {
                        path: {
                            'price_usd': _display_price(service, gate.config.token_decimals),
                            'description': service.get('description'),
                        }
                        for path, service in settings.X402_SERVICES.items()
                    },
                },
                'payment_address': gate.config.pay_to,
                'network': gate.config.network,
                'chain_id': gate.config.chain_id,
                'token': f'USDC ({gate.config.asset})',
            },
            status=status.HTTP_200_OK,
        )


class PaymentHistoryView(APIView):
    authentication_classes: list = []
    permission_classes: list = []

    def get(self, request, address: str, *args, **kwargs):
        try:
            limit = int(request.query_params.get('limit', DEFAULT_HISTORY_LIMIT))
        except ValueError:
            limit = DEFAULT_HISTORY_LIMIT
        limit = max(1, min(limit, DEFAULT_HISTORY_LIMIT))

        try:
            payments = async_to_sync(get_gate().history)(address, limit)
        except ValueError as exc:
            return Response(
                {'error': 'invalid_address', 'details': str(exc)},
                status=status.HTTP_400_BAD_REQUEST,
            )

        return Response(
            {
                'address': address.lower(),
                'count': len(payments),
                'payments': PaymentSerializer(payments, many=True).data,
            },
            status=status.HTTP_200_OK,
        )
