import logging
from datetime import timedelta
from decimal import Decimal

import stripe
from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.utils import timezone

from escrow.models import EscrowTransaction
from escrow.services import EscrowService
from gigstream.exceptions import InvalidWebhookSignature
from notifications.services import notify
from orders.models import Gig, Order
from wallet.utils import to_money
from .models import WebhookEvent
from .providers import get_payment_provider

logger = logging.getLogger(__name__)

User = get_user_model()


class StripeWebhookService:
    """
    Applies Stripe events at most once. The event id is stored in the same
    transaction as the event's effects, so a replay is acknowledged and
    skipped, and a failed handler leaves nothing behind for the retry.
    """
    provider_name = 'stripe'

    def __init__(self, escrow_service=None):
        self.escrow_service = escrow_service or EscrowService()
        self.handlers = {
            'checkout.session.completed': self.handle_checkout_completed,
            'charge.refunded': self.handle_charge_refunded,
        }

    def handle(self, payload, signature):
        provider = get_payment_provider(self.provider_name)
        try:
            event = provider.construct_event(payload, signature)
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning(f"Rejected Stripe webhook: {str(e)}")
            raise InvalidWebhookSignature()

        return self.process_event(event)

    def process_event(self, event):
        event_id = event['id']
        event_type = event['type']

        with transaction.atomic():
            try:
                with transaction.atomic():
                    WebhookEvent.objects.create(
                        provider=self.provider_name,
                        event_id=event_id,
                        event_type=event_type,
                    )
            except IntegrityError:
                logger.info(f"Duplicate Stripe event {event_id} ({event_type}) ignored")
                return {'received': True, 'duplicate': True}

            handler = self.handlers.get(event_type)
            if handler is None:
                logger.info(f"Unhandled Stripe event type {event_type}")
                return {'received': True, 'handled': False}

            handler(event['data']['object'])

        return {'received': True, 'handled': True}

    def handle_checkout_completed(self, session):
        if session.get('payment_status') not in (None, 'paid'):
            logger.info(f"Checkout session {session['id']} not paid yet ({session.get('payment_status')})")
            return None

        if Order.objects.filter(checkout_session_id=session['id']).exists():
            logger.info(f"Order for checkout session {session['id']} already exists")
            return None

        metadata = session.get('metadata') or {}
        gig_id, buyer_id = str(metadata.get('gigId') or ''), str(metadata.get('buyerId') or '')
        if not (gig_id.isdigit() and buyer_id.isdigit()):
            logger.error(f"Checkout session {session['id']} has unusable metadata: {metadata}")
            return None

        gig = Gig.objects.filter(id=int(gig_id)).first()
        buyer = User.objects.filter(id=int(buyer_id)).first()
        if gig is None or buyer is None or str(gig.seller_id) != str(metadata.get('sellerId')):
            logger.error(f"Checkout session {session['id']} has unusable metadata: {metadata}")
            return None

        package_type = metadata.get('packageType', '')
        package = gig.get_package(package_type) or {}
        total = to_money(Decimal(session['amount_total']) / 100)
        price = min(to_money(package.get('price', total)), total)
        delivery_days = int(package.get('delivery_days') or 3)
        requirements = metadata.get('requirements')

        order = Order.objects.create(
            gig=gig,
            buyer=buyer,
            seller_id=gig.seller_id,
            package_type=package_type,
            price=price,
            service_fee=total - price,
            total_amount=total,
            status=Order.IN_PROGRESS,
            checkout_session_id=session['id'],
            payment_intent_id=session.get('payment_intent') or '',
            delivery_date=timezone.now() + timedelta(days=delivery_days),
            requirements={'details': requirements} if requirements else {},
            max_revisions=int(package.get('revisions') or 0),
        )

        self.escrow_service.hold(
            order=order,
            amount=price,
            payment_intent_id=session.get('payment_intent') or '',
            provider=self.provider_name,
        )

        notify(
            buyer,
            'order_placed',
            'Order Placed Successfully',
            f"You have successfully placed an order for {gig.title}.",
            link=f'/dashboard/orders/{order.id}',
        )
        notify(
            gig.seller,
            'order_placed',
            'New Order Received',
            f"You have a new order for {gig.title}.",
            link=f'/dashboard/orders/{order.id}',
        )

        logger.info(f"Order {order.id} created from checkout session {session['id']}")
        return order

    def handle_charge_refunded(self, charge):
        payment_intent = charge.get('payment_intent')
        if not payment_intent:
            return 0

        refunds = (charge.get('refunds') or {}).get('data') or []
        refund_id = refunds[0]['id'] if refunds else ''

        updated = 0
        for escrow in EscrowTransaction.objects.select_for_update().filter(
            payment_intent_id=payment_intent,
            status=EscrowTransaction.REFUNDED,
        ):
            escrow.gateway_refund_status = 'succeeded'
            if refund_id and not escrow.gateway_refund_id:
                escrow.gateway_refund_id = refund_id
            escrow.save(update_fields=['gateway_refund_status', 'gateway_refund_id', 'updated_at'])
            updated += 1

        logger.info(f"Marked {updated} escrow refund(s) succeeded for intent {payment_intent}")
        return updated
