import base64
import json
from io import StringIO
from unittest.mock import Mock, patch

from django.core.management import call_command
from django.test import TestCase, override_settings
from django.urls import reverse
from eth_account import Account

from x402gate.exceptions import GateConfigurationError
from x402gate.gate import GateConfig, VerificationGate
from x402gate.models import Payment
from x402gate.test_signature_verifier import NOW, sign_authorization
from x402gate.testing import FakeChainClient, transfer_log

USDC = '0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913'
PAY_TO = '0xAA31F97BE2c7f90Ff2cf3b7eD44855E750CEF81f'
PAYER = '0xC0ffee254729296a45a3885639AC7E10F9d54979'
NEWS_PRICE = 50000000


class GatedResourceViewTests(TestCase):
    def setUp(self) -> None:
        self.chain = FakeChainClient()
        config = GateConfig(
            pay_to=PAY_TO,
            asset=USDC,
            network='base',
            chain_id=8453,
            rpc_url='http://localhost:8545',
        )
        self.gate = VerificationGate(config, chain=self.chain, clock=lambda: NOW)
        patcher = patch('x402gate.views.get_gate', return_value=self.gate)
        patcher.start()
        self.addCleanup(patcher.stop)

        self.news_url = reverse('x402gate:resource', kwargs={'service': 'japanese-news'})

    def test_unknown_service_is_not_found(self):
        response = self.client.get(reverse('x402gate:resource', kwargs={'service': 'weather'}))

        self.assertEqual(response.status_code, 404)
        self.assertIn('/api/japanese-news', response.json()['available'])

    def test_request_without_proof_gets_payment_offer(self):
        response = self.client.get(self.news_url)

        self.assertEqual(response.status_code, 402)
        body = response.json()
        self.assertEqual(body['error'], 'payment_required')
        self.assertEqual(body['payment']['amount'], str(NEWS_PRICE))
        self.assertEqual(body['payment']['network'], 'eip155:8453')

        offer = json.loads(base64.b64decode(response.headers['PAYMENT-REQUIRED']))
        self.assertEqual(offer['resource'], '/api/japanese-news')
        self.assertEqual([entry['scheme'] for entry in offer['accepts']], ['eip3009', 'transaction'])
        for entry in offer['accepts']:
            self.assertEqual(entry['maxAmountRequired'], str(NEWS_PRICE))
            self.assertEqual(entry['payTo'], PAY_TO)
            self.assertEqual(entry['asset'], USDC)
            self.assertEqual(entry['extra']['chainId'], 8453)
        self.assertEqual(offer['accepts'][0]['extra']['name'], 'USD Coin')

    @override_settings(X402_SERVICES={'/api/news': {'price': '50000000', 'description': 'News'}})
    def test_offer_price_is_derived_from_amount(self):
        response = self.client.get(reverse('x402gate:resource', kwargs={'service': 'news'}))

        self.assertEqual(response.status_code, 402)
        body = response.json()
        self.assertEqual(body['message'], 'This service costs $50.00 USDC')
        self.assertEqual(body['payment']['amount_usd'], '50.00')

    @override_settings(X402_SERVICES={'/api/news': {'price': '1500000', 'description': 'News'}})
    def test_stats_derive_display_price(self):
        response = self.client.get(reverse('x402gate:stats'))

        self.assertEqual(response.json()['stats']['services']['/api/news']['price_usd'], '1.50')

    def test_preflight_allows_payment_headers(self):
        response = self.client.options(
            self.news_url,
            HTTP_ORIGIN='https://app.example',
            HTTP_ACCESS_CONTROL_REQUEST_METHOD='GET',
            HTTP_ACCESS_CONTROL_REQUEST_HEADERS='payment-tx, payment-signature',
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers['Access-Control-Allow-Origin'], '*')
        allowed = response.headers['Access-Control-Allow-Headers'].lower()
        self.assertIn('payment-tx', allowed)
        self.assertIn('payment-signature', allowed)

    def test_bare_options_request_is_accepted(self):
        response = self.client.options(self.news_url)

        self.assertEqual(response.status_code, 200)

    def test_cross_origin_offer_exposes_payment_header(self):
        response = self.client.get(self.news_url, HTTP_ORIGIN='https://app.example')

        self.assertEqual(response.status_code, 402)
        self.assertEqual(response.headers['Access-Control-Allow-Origin'], '*')
        self.assertIn('PAYMENT-REQUIRED', response.headers['Access-Control-Expose-Headers'])

    def test_transaction_proof_is_verified_then_cached(self):
        tx_hash = '0x' + '12' * 32
        self.chain.add_transaction(tx_hash, transfer_log(USDC, PAYER, PAY_TO, NEWS_PRICE))

        first = self.client.get(self.news_url, HTTP_PAYMENT_TX=tx_hash)
        second = self.client.get(self.news_url, HTTP_PAYMENT_TX=tx_hash)

        self.assertEqual(first.status_code, 200)
        self.assertTrue(first.json()['payment_verified'])
        self.assertEqual(first.json()['payment_info'], 'verified')
        self.assertEqual(first.json()['service'], 'Japanese News Learning Platform')
        self.assertEqual(second.status_code, 200)
        self.assertEqual(second.json()['payment_info'], 'cached')
        self.assertEqual(Payment.objects.get().service, '/api/japanese-news')

    def test_underpayment_is_refused_with_reason(self):
        tx_hash = '0x' + '34' * 32
        self.chain.add_transaction(tx_hash, transfer_log(USDC, PAYER, PAY_TO, NEWS_PRICE - 1))

        response = self.client.get(self.news_url, HTTP_PAYMENT_TX=tx_hash)

        self.assertEqual(response.status_code, 402)
        self.assertEqual(response.json()['error'], 'payment_verification_failed')
        self.assertEqual(response.json()['reason'], 'amount_mismatch')
        self.assertFalse(Payment.objects.exists())

    def test_malformed_transaction_hash_is_bad_request(self):
        response = self.client.get(self.news_url, HTTP_PAYMENT_TX='0x1234')

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'invalid_payment_format')

    def test_signed_authorization_is_accepted_once(self):
        payload = sign_authorization(Account.create('x402-gate-view-payer'))
        header = base64.b64encode(json.dumps(payload).encode()).decode()

        first = self.client.get(self.news_url, HTTP_PAYMENT_SIGNATURE=header)
        second = self.client.get(self.news_url, HTTP_PAYMENT_SIGNATURE=header)

        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.json()['payment_info'], 'authorized')
        self.assertEqual(second.status_code, 402)
        self.assertEqual(second.json()['reason'], 'nonce_reused')
        self.assertFalse(Payment.objects.exists())

    def test_malformed_signature_header_is_bad_request(self):
        response = self.client.get(self.news_url, HTTP_PAYMENT_SIGNATURE='bm90IGpzb24=')

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'invalid_payment_format')

    def test_transaction_proof_takes_precedence(self):
        tx_hash = '0x' + '56' * 32
        self.chain.add_transaction(tx_hash, transfer_log(USDC, PAYER, PAY_TO, NEWS_PRICE))

        response = self.client.get(
            self.news_url, HTTP_PAYMENT_TX=tx_hash, HTTP_PAYMENT_SIGNATURE='garbage')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['payment_info'], 'verified')

    @override_settings(X402_SERVICES={'/api/free-sample': {'price': '0', 'description': 'Sample'}})
    def test_zero_priced_service_is_served_without_payment(self):
        response = self.client.get(reverse('x402gate:resource', kwargs={'service': 'free-sample'}))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.chain.calls, [])

    def test_stats_report_revenue(self):
        Payment.objects.create(
            tx_hash='0x' + 'aa' * 32, from_address=PAYER.lower(), amount='50000000',
            service='/api/japanese-news', timestamp=NOW, verified_at=NOW)
        Payment.objects.create(
            tx_hash='0x' + 'bb' * 32, from_address=PAY_TO.lower(), amount='30000000',
            service='/api/web-scraper', timestamp=NOW, verified_at=NOW + 1)

        response = self.client.get(reverse('x402gate:stats'))

        self.assertEqual(response.status_code, 200)
        stats = response.json()['stats']
        self.assertEqual(stats['total_payments'], 2)
        self.assertEqual(stats['total_received'], '80000000')
        self.assertEqual(stats['total_revenue_usd'], '80.00')
        self.assertEqual(stats['unique_customers'], 2)
        self.assertIn('/api/japanese-news', stats['services'])
        self.assertEqual(response.json()['chain_id'], 8453)

    def test_history_lists_payments_for_address(self):
        for index in range(3):
            Payment.objects.create(
                tx_hash='0x' + f'{index:02x}' * 32, from_address=PAYER.lower(), amount='20000000',
                service='/api/ai-analysis', timestamp=NOW, verified_at=NOW + index)

        response = self.client.get(
            reverse('x402gate:history', kwargs={'address': PAYER}), {'limit': 2})

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['count'], 2)
        self.assertEqual(body['payments'][0]['tx_hash'], '0x' + '02' * 32)

    def test_history_rejects_invalid_address(self):
        response = self.client.get(reverse('x402gate:history', kwargs={'address': 'nobody'}))

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'invalid_address')

    def test_health(self):
        response = self.client.get(reverse('health'))

        self.assertEqual(response.json(), {'status': 'ok'})


class GateConfigTests(TestCase):
    @override_settings(X402_PAY_TO='', X402_USDC_CONTRACT=USDC)
    def test_missing_payment_address_is_rejected(self):
        with self.assertRaises(GateConfigurationError):
            GateConfig.from_settings()

    @override_settings(X402_PAY_TO='0x1234', X402_USDC_CONTRACT=USDC)
    def test_invalid_payment_address_is_rejected(self):
        with self.assertRaises(GateConfigurationError):
            GateConfig.from_settings()

    @override_settings(X402_PAY_TO=PAY_TO, X402_USDC_CONTRACT=USDC, X402_NETWORK='base', X402_CHAIN_ID=None)
    def test_chain_id_is_derived_from_network(self):
        config = GateConfig.from_settings()

        self.assertEqual(config.chain_id, 8453)
        self.assertEqual(config.domain.verifying_contract, USDC)


class ProbeServiceCommandTests(TestCase):
    def _response(self, status_code, body):
        response = Mock(status_code=status_code)
        response.json.return_value = body
        return response

    @patch('x402gate.management.commands.probe_service.requests.get')
    def test_prints_payment_offer(self, mock_get):
        mock_get.return_value = self._response(402, {
            'error': 'payment_required',
            'service': 'Japanese News Learning Platform',
            'payment': {'address': PAY_TO, 'amount': '50000000', 'amount_usd': 50,
                        'network': 'eip155:8453'},
        })
        out = StringIO()

        call_command('probe_service', 'api/japanese-news', base_url='http://gate.test', stdout=out)

        mock_get.assert_called_once()
        self.assertEqual(mock_get.call_args.args[0], 'http://gate.test/api/japanese-news')
        self.assertIn('Payment required', out.getvalue())
        self.assertIn(PAY_TO, out.getvalue())

    @patch('x402gate.management.commands.probe_service.requests.get')
    def test_sends_transaction_hash(self, mock_get):
        mock_get.return_value = self._response(200, {'service': 'ok', 'payment_verified': True})
        tx_hash = '0x' + '12' * 32
        out = StringIO()

        call_command('probe_service', '/api/japanese-news', tx_hash, stdout=out)

        self.assertEqual(mock_get.call_args.kwargs['headers']['Payment-Tx'], tx_hash)
        self.assertIn('Service provided', out.getvalue())
