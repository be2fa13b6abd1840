import logging

import requests
from django.conf import settings

from wallet.utils import to_money
from .base import BasePaymentProvider

logger = logging.getLogger(__name__)


class PayPalProvider(BasePaymentProvider):
    """PayPal REST: orders for charges, captures for refunds, Payouts for sellers."""
    name = 'paypal'
    timeout = 30

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.client_id = settings.PAYPAL_CLIENT_ID
        self.client_secret = settings.PAYPAL_CLIENT_SECRET
        self.base_url = settings.PAYPAL_API_BASE.rstrip('/')
        self.currency = settings.DEFAULT_CURRENCY

    def _access_token(self):
        response = requests.post(
            f"{self.base_url}/v1/oauth2/token",
            auth=(self.client_id, self.client_secret),
            data={'grant_type': 'client_credentials'},
            headers={'Accept': 'application/json'},
            timeout=self.timeout,
        )
        response.raise_for_status()
        return response.json()['access_token']

    def _headers(self, **extra):
        headers = {
            'Authorization': f'Bearer {self._access_token()}',
            'Content-Type': 'application/json',
        }
        headers.update(extra)
        return headers

    def charge(self, user, amount, **kwargs):
        reference = kwargs.get('reference', '')
        try:
            response = requests.post(
                f"{self.base_url}/v2/checkout/orders",
                json={
                    'intent': 'CAPTURE',
                    'purchase_units': [{
                        'reference_id': reference,
                        'amount': {'currency_code': self.currency, 'value': str(to_money(amount))},
                    }],
                    'application_context': {
                        'return_url': settings.CHECKOUT_SUCCESS_URL,
                        'cancel_url': settings.CHECKOUT_CANCEL_URL,
                    },
                },
                headers=self._headers(),
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"PayPal order creation failed: {str(e)}")
            return {
                'status': 'error',
                'message': 'Payment initiation failed',
                'error': str(e),
            }

        approval_url = next(
            (link['href'] for link in data.get('links', []) if link.get('rel') == 'approve'),
            None,
        )
        logger.info(f"PayPal order {data.get('id')} created for user {user.email}, amount: {amount}")
        return {
            'status': 'success',
            'provider': self.name,
            'paypal_order_id': data.get('id'),
            'checkout_url': approval_url,
        }

    def verify(self, provider_transaction_id):
        try:
            response = requests.get(
                f"{self.base_url}/v2/checkout/orders/{provider_transaction_id}",
                headers=self._headers(),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error(f"PayPal verification request failed: {str(e)}")
            return False
        return response.json().get('status') == 'COMPLETED'

    def refund(self, provider_transaction_id, amount=None, reason="Order refund"):
        payload = {'note_to_payer': reason[:255]}
        if amount:
            payload['amount'] = {'currency_code': self.currency, 'value': str(to_money(amount))}
        try:
            response = requests.post(
                f"{self.base_url}/v2/payments/captures/{provider_transaction_id}/refund",
                json=payload,
                headers=self._headers(),
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"PayPal refund for capture {provider_transaction_id} failed: {str(e)}")
            return {
                'status': 'error',
                'message': 'Refund failed',
                'error': str(e),
            }

        logger.info(f"PayPal refund {data.get('id')} created for capture {provider_transaction_id}")
        return {
            'status': 'success',
            'provider': self.name,
            'refund_id': data.get('id'),
            'refund_status': data.get('status'),
        }

    def transfer_to_account(self, recipient, amount, reference, **kwargs):
        """Send a single-item Payouts batch to the seller's PayPal email."""
        email = recipient.get('email')
        if not email:
            return {'status': 'error', 'message': 'Missing PayPal email for payout'}

        payload = {
            'sender_batch_header': {
                'sender_batch_id': reference,
                'email_subject': f"You have a payout from {settings.SITE_NAME}",
            },
            'items': [{
                'recipient_type': 'EMAIL',
                'receiver': email,
                'amount': {'currency': self.currency, 'value': str(to_money(amount))},
                'sender_item_id': reference,
            }],
        }
        try:
            response = requests.post(
                f"{self.base_url}/v1/payments/payouts",
                json=payload,
                headers=self._headers(**{'PayPal-Request-Id': reference}),
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"PayPal payout {reference} failed: {str(e)}")
            return {
                'status': 'error',
                'message': f'PayPal payout failed: {str(e)}',
            }

        batch = data.get('batch_header', {})
        logger.info(f"PayPal payout batch {batch.get('payout_batch_id')} created for {reference}")
        return {
            'status': 'success',
            'provider': self.name,
            'reference': batch.get('payout_batch_id', ''),
            'batch_status': batch.get('batch_status'),
        }
