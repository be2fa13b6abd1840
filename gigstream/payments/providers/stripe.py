import logging

import stripe
from django.conf import settings

from wallet.utils import to_money
from .base import BasePaymentProvider

logger = logging.getLogger(__name__)


def to_cents(amount):
    return int(to_money(amount) * 100)


class StripeProvider(BasePaymentProvider):
    """
    Stripe payment provider implementation for the escrow ledger.
    Handles checkout sessions, refunds, Connect transfers to sellers and
    webhook verification.
    """
    name = 'stripe'

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        stripe.api_key = settings.STRIPE_SECRET_KEY
        self.publishable_key = settings.STRIPE_PUBLISHABLE_KEY
        self.currency = getattr(settings, 'STRIPE_CURRENCY', 'usd')
        self.webhook_secret = getattr(settings, 'STRIPE_WEBHOOK_SECRET', '')

    def charge(self, user, amount, **kwargs):
        """
        Create a Stripe Checkout Session for an order.

        Args:
            user: Buyer paying for the order
            amount: Package price (Decimal)
            **kwargs: ``gig``, ``package_type``, ``service_fee``, ``requirements``

        Returns:
            Dict containing the session id and hosted checkout URL
        """
        gig = kwargs.get('gig')
        package_type = kwargs.get('package_type', '')
        service_fee = kwargs.get('service_fee') or 0

        line_items = [{
            'price_data': {
                'currency': self.currency,
                'product_data': {'name': f"{gig.title} ({package_type})" if gig else 'Order'},
                'unit_amount': to_cents(amount),
            },
            'quantity': 1,
        }]
        if service_fee:
            line_items.append({
                'price_data': {
                    'currency': self.currency,
                    'product_data': {'name': 'Service Fee'},
                    'unit_amount': to_cents(service_fee),
                },
                'quantity': 1,
            })

        try:
            session = stripe.checkout.Session.create(
                mode='payment',
                customer_email=user.email,
                line_items=line_items,
                metadata={
                    'gigId': str(gig.id) if gig else '',
                    'buyerId': str(user.id),
                    'sellerId': str(gig.seller_id) if gig else '',
                    'packageType': package_type,
                    'requirements': (kwargs.get('requirements') or '')[:500],
                },
                success_url=f"{settings.CHECKOUT_SUCCESS_URL}?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=settings.CHECKOUT_CANCEL_URL,
            )

            logger.info(f"Stripe checkout session created: {session.id} for user {user.email}, amount: {amount}")

            return {
                'status': 'success',
                'provider': self.name,
                'session_id': session.id,
                'checkout_url': session.url,
            }

        except stripe.StripeError as e:
            logger.error(f"Stripe API error in charge: {str(e)}")
            return {
                'status': 'error',
                'message': 'Payment initiation failed',
                'error': str(e),
            }

    def verify(self, provider_transaction_id):
        try:
            intent = stripe.PaymentIntent.retrieve(provider_transaction_id)
            is_successful = intent.status == 'succeeded'
            logger.info(f"Stripe payment verification result: {is_successful} for intent {provider_transaction_id}")
            return is_successful
        except stripe.StripeError as e:
            logger.error(f"Stripe verification error: {str(e)}")
            return False

    def refund(self, provider_transaction_id, amount=None, reason="Order refund"):
        """Refund a payment intent, fully unless ``amount`` is given."""
        params = {
            'payment_intent': provider_transaction_id,
            'metadata': {
                'reason': reason[:500],
                'escrow_refund': 'true',
            },
        }
        if amount:
            params['amount'] = to_cents(amount)

        try:
            refund = stripe.Refund.create(**params)
        except stripe.StripeError as e:
            logger.error(f"Stripe refund error for {provider_transaction_id}: {str(e)}")
            return {
                'status': 'error',
                'message': 'Refund failed',
                'error': str(e),
            }

        logger.info(f"Stripe refund created: {refund.id} for intent {provider_transaction_id}")
        return {
            'status': 'success',
            'refund_id': refund.id,
            'refund_status': refund.status,
            'amount': str(amount) if amount else 'full',
            'provider': self.name,
        }

    def transfer_to_account(self, recipient, amount, reference, **kwargs):
        """Send a Connect transfer to the seller's connected account."""
        account_id = recipient.get('stripe_account_id')
        if not account_id:
            return {'status': 'error', 'message': 'Missing stripe_account_id for payout'}

        try:
            transfer = stripe.Transfer.create(
                amount=to_cents(amount),
                currency=self.currency,
                destination=account_id,
                transfer_group=reference,
                metadata={'reference': reference},
                idempotency_key=reference,
            )
        except stripe.StripeError as e:
            logger.error(f"Stripe transfer {reference} failed: {str(e)}")
            return {
                'status': 'error',
                'message': f'Stripe transfer failed: {str(e)}',
            }

        logger.info(f"Stripe transfer {transfer.id} sent to {account_id} for {reference}")
        return {
            'status': 'success',
            'provider': self.name,
            'transfer_id': transfer.id,
            'reference': transfer.id,
        }

    def construct_event(self, payload, signature):
        """
        Parse and verify a webhook payload. Raises ``stripe.SignatureVerificationError``
        or ``ValueError`` when the payload cannot be trusted.
        """
        return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)

    def validate_webhook(self, payload, signature):
        try:
            self.construct_event(payload, signature)
        except (ValueError, stripe.SignatureVerificationError):
            return False
        return True
