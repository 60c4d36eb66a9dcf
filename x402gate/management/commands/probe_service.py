import json
import os

import requests
from django.core.management.base import BaseCommand, CommandError
from requests.exceptions import RequestException

DEFAULT_BASE_URL = 'http://localhost:8402'


class Command(BaseCommand):
    help = 'Call a gated endpoint, optionally paying with a transaction hash.'

    def add_arguments(self, parser):
        parser.add_argument('endpoint', help='Resource path, e.g. /api/japanese-news or /api/stats')
        parser.add_argument('tx_hash', nargs='?', help='Hash of a USDC transfer to the payment address')
        parser.add_argument(
            '--base-url',
            default=os.environ.get('SERVICE_URL', DEFAULT_BASE_URL),
            help='Gate base URL (default: $SERVICE_URL or %(default)s)',
        )
        parser.add_argument('--timeout', type=float, default=30.0)

    def handle(self, *args, **options):
        endpoint = options['endpoint']
        if not endpoint.startswith('/'):
            endpoint = '/' + endpoint
        url = options['base_url'].rstrip('/') + endpoint

        headers = {'Content-Type': 'application/json'}
        tx_hash = options.get('tx_hash')
        if tx_hash:
            headers['Payment-Tx'] = tx_hash
            self.stdout.write(f'Using payment tx: {tx_hash[:10]}...{tx_hash[-8:]}')

        try:
            response = requests.get(url, headers=headers, timeout=options['timeout'])
            data = response.json()
        except RequestException as exc:
            raise CommandError(f'Request failed: {exc}') from exc
        except ValueError as exc:
            raise CommandError(f'Response from {url} is not JSON') from exc

        self.stdout.write(f'Response status: {response.status_code}')
        if endpoint == '/api/stats' and response.status_code == 200:
            self._print_stats(data)
        elif response.status_code == 402 and data.get('error') == 'payment_required':
            self._print_offer(endpoint, data)
        elif response.status_code == 200:
            self.stdout.write(self.style.SUCCESS('Service provided:'))
            self._print_json(data)
        else:
            self.stdout.write(self.style.ERROR('Request denied:'))
            self._print_json(data)

    def _print_offer(self, endpoint, data):
        payment = data.get('payment', {})
        self.stdout.write(self.style.WARNING('Payment required'))
        self.stdout.write(f"  Service: {data.get('service')}")
        self.stdout.write(f"  Price:   ${payment.get('amount_usd')} USDC ({payment.get('amount')} units)")
        self.stdout.write(f"  Address: {payment.get('address')}")
        self.stdout.write(f"  Network: {payment.get('network')}")
        self.stdout.write(
            f'Send the USDC, then run: manage.py probe_service {endpoint} <tx_hash>')

    def _print_stats(self, data):
        stats = data.get('stats', {})
        self.stdout.write(f"  Total payments:   {stats.get('total_payments')}")
        self.stdout.write(f"  Revenue:          ${stats.get('total_revenue_usd')} USDC")
        self.stdout.write(f"  Unique customers: {stats.get('unique_customers')}")
        for path, info in stats.get('services', {}).items():
            self.stdout.write(f"  {path:<30} ${info.get('price_usd')}")

    def _print_json(self, data):
        self.stdout.write(json.dumps(data, indent=2, ensure_ascii=False))
