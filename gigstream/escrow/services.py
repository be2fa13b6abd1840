import logging
from datetime import timedelta

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone
from rest_framework.exceptions import APIException, NotFound, ValidationError

from gigstream.exceptions import AlreadyProcessed, EscrowLocked, Unauthorized
from notifications.services import notify
from orders.models import Gig, Order
from payments.models import PlatformSettings
from wallet.models import LedgerEntry
from wallet.services import lock_wallet, post_entry
from wallet.utils import percentage_of, to_money
from .models import EscrowTransaction

logger = logging.getLogger(__name__)


class EscrowService:
    """
    Moves an order's payment from "buyer paid" to exactly one of: the seller's
    available balance (release) or back to the buyer (refund).

    Lock order is always order -> escrow -> wallet.
    """

    def hold(self, *, order, amount, buyer=None, seller=None, payment_intent_id='', provider='stripe'):
        amount = to_money(amount)
        if amount <= 0:
            raise ValidationError({'amount': ["Escrow amount must be greater than zero."]})
        if buyer is not None and buyer.id != order.buyer_id:
            raise Unauthorized("Buyer does not match the order.")
        if seller is not None and seller.id != order.seller_id:
            raise Unauthorized("Seller does not match the order.")

        with transaction.atomic():
            order = Order.objects.select_for_update().get(pk=order.pk)
            if EscrowTransaction.objects.filter(order=order).exists():
                raise AlreadyProcessed("Funds for this order are already held in escrow.")

            try:
                with transaction.atomic():
                    escrow = EscrowTransaction.objects.create(
                        order=order,
                        buyer_id=order.buyer_id,
                        seller_id=order.seller_id,
                        amount=amount,
                        currency=settings.DEFAULT_CURRENCY,
                        provider=provider,
                        payment_intent_id=payment_intent_id or '',
                    )
            except IntegrityError:
                raise AlreadyProcessed("Funds for this order are already held in escrow.")

            order.set_payment_status(Order.PAYMENT_PROCESSING)
            if payment_intent_id:
                order.payment_intent_id = payment_intent_id
            order.save(update_fields=['payment_status', 'payment_intent_id', 'updated_at'])

            wallet = lock_wallet(order.seller)
            post_entry(
                wallet,
                entry_type=LedgerEntry.ESCROW_HOLD,
                bucket=LedgerEntry.PENDING,
                amount=amount,
                order=order,
                external_id=payment_intent_id or '',
                description=f"Escrow hold for order {order.id}",
            )

        logger.info(f"Escrow {escrow.id} holding {amount} for order {order.id}")
        return escrow

    def release(self, *, escrow_id, released_by=None, auto=False, by_moderator=False):
        """
        Release held funds to the seller, minus the platform fee.
        Only the buyer may release, unless ``auto`` (grace period elapsed) or a
        moderator resolving a dispute.
        """
        order_id = self._order_id_for(escrow_id)

        with transaction.atomic():
            order = Order.objects.select_for_update().get(pk=order_id)
            escrow = EscrowTransaction.objects.select_for_update().get(pk=escrow_id)

            if escrow.status != EscrowTransaction.HELD:
                raise AlreadyProcessed("Escrow already processed.")
            if by_moderator:
                if released_by is None or not released_by.is_staff:
                    raise Unauthorized("Only moderators can resolve a disputed escrow.")
            else:
                if escrow.is_locked:
                    raise EscrowLocked()
                if not auto and (released_by is None or released_by.id != escrow.buyer_id):
                    raise Unauthorized("Only the buyer can release escrow.")

            fee_percent = PlatformSettings.current_fee_percent()
            platform_fee = percentage_of(escrow.amount, fee_percent)
            seller_amount = escrow.amount - platform_fee

            wallet = lock_wallet(escrow.seller)
            post_entry(
                wallet,
                entry_type=LedgerEntry.ESCROW_RELEASE,
                bucket=LedgerEntry.PENDING,
                amount=-escrow.amount,
                order=order,
                description=f"Escrow release for order {order.id}",
            )
            post_entry(
                wallet,
                entry_type=LedgerEntry.EARNING,
                bucket=LedgerEntry.AVAILABLE,
                amount=escrow.amount,
                order=order,
                description=f"Earnings for order {order.id}",
            )
            if platform_fee > 0:
                post_entry(
                    wallet,
                    entry_type=LedgerEntry.SERVICE_FEE,
                    bucket=LedgerEntry.AVAILABLE,
                    amount=-platform_fee,
                    order=order,
                    description=f"Platform fee ({fee_percent}%) for order {order.id}",
                )
            wallet.total_earnings += seller_amount
            wallet.save(update_fields=['total_earnings', 'updated_at'])

            Gig.objects.filter(pk=order.gig_id).update(total_revenue=F('total_revenue') + seller_amount)

            now = timezone.now()
            order.set_payment_status(Order.PAYMENT_COMPLETED)
            order.status = Order.COMPLETED
            order.completed_at = order.completed_at or now
            order.save(update_fields=['payment_status', 'status', 'completed_at', 'updated_at'])

            escrow.status = EscrowTransaction.RELEASED
            escrow.is_locked = False
            escrow.platform_fee_percent = fee_percent
            escrow.platform_fee = platform_fee
            escrow.seller_amount = seller_amount
            escrow.released_by = released_by
            escrow.released_at = now
            escrow.save()

            notify(
                escrow.seller,
                'escrow_released',
                'Payment Released',
                f"{seller_amount} {escrow.currency} from order {order.id} is now available in your wallet.",
                link=f'/dashboard/orders/{order.id}',
            )
            notify(
                escrow.buyer,
                'order_completed',
                'Order Completed',
                f"Order {order.id} is complete and the payment was released to the seller.",
                link=f'/dashboard/orders/{order.id}',
            )

        logger.info(
            f"Escrow {escrow.id} released: amount={escrow.amount} fee={platform_fee} "
            f"seller_amount={seller_amount} auto={auto}"
        )
        return escrow

    def refund(self, *, escrow_id, reason, refunded_by=None, by_moderator=False):
        """
        Return held funds to the buyer. The ledger is settled immediately; the
        gateway refund runs in a background task once the transaction commits.
        """
        order_id = self._order_id_for(escrow_id)

        with transaction.atomic():
            order = Order.objects.select_for_update().get(pk=order_id)
            escrow = EscrowTransaction.objects.select_for_update().get(pk=escrow_id)

            if escrow.status != EscrowTransaction.HELD:
                raise AlreadyProcessed("Escrow already processed.")
            if by_moderator:
                if refunded_by is None or not refunded_by.is_staff:
                    raise Unauthorized("Only moderators can resolve a disputed escrow.")
            else:
                if escrow.is_locked:
                    raise EscrowLocked()
                allowed = refunded_by is not None and (
                    refunded_by.is_staff or refunded_by.id in (escrow.buyer_id, escrow.seller_id)
                )
                if not allowed:
                    raise Unauthorized("Not authorized to refund this order.")

            wallet = lock_wallet(escrow.seller)
            post_entry(
                wallet,
                entry_type=LedgerEntry.REFUND,
                bucket=LedgerEntry.PENDING,
                amount=-escrow.amount,
                order=order,
                description=f"Refund for order {order.id}",
            )

            order.set_payment_status(Order.PAYMENT_REFUNDED)
            order.status = Order.CANCELLED
            order.save(update_fields=['payment_status', 'status', 'updated_at'])

            escrow.status = EscrowTransaction.REFUNDED
            escrow.is_locked = False
            escrow.refunded_by = refunded_by
            escrow.refunded_at = timezone.now()
            escrow.refund_reason = reason or ''
            escrow.gateway_refund_status = 'pending'
            escrow.save()

            from .tasks import task_refund_escrow_payment
            escrow_pk = escrow.pk
            transaction.on_commit(lambda: task_refund_escrow_payment.delay(escrow_pk))

            notify(
                escrow.buyer,
                'escrow_refunded',
                'Refund Processed',
                f"Your refund of {escrow.amount} {escrow.currency} for order {order.id} has been processed.",
                link=f'/dashboard/orders/{order.id}',
            )
            notify(
                escrow.seller,
                'order_cancelled',
                'Order Refunded',
                f"Order {order.id} has been cancelled and refunded to the buyer.",
                link=f'/dashboard/orders/{order.id}',
            )

        logger.info(f"Escrow {escrow.id} refunded ({escrow.amount}): {reason}")
        return escrow

    def set_lock(self, *, escrow_id, is_locked):
        with transaction.atomic():
            escrow = EscrowTransaction.objects.select_for_update().filter(pk=escrow_id).first()
            if escrow is None:
                raise NotFound("Escrow transaction not found.")
            if escrow.is_locked != is_locked:
                escrow.is_locked = is_locked
                escrow.save(update_fields=['is_locked', 'updated_at'])
        return escrow

    def pending_escrow_orders(self, seller):
        """Delivered orders still waiting for the buyer's approval."""
        return (
            Order.objects.filter(
                seller=seller,
                status=Order.DELIVERED,
                payment_status=Order.PAYMENT_PROCESSING,
            )
            .select_related('gig', 'buyer')
            .order_by('delivery_date')
        )

    def auto_release_due(self, now=None):
        """
        Release every unlocked escrow whose order was delivered at least
        ``ESCROW_AUTO_RELEASE_DAYS`` ago. Each release commits on its own.
        """
        now = now or timezone.now()
        cutoff = now - timedelta(days=settings.ESCROW_AUTO_RELEASE_DAYS)
        due_ids = list(
            EscrowTransaction.objects.filter(
                status=EscrowTransaction.HELD,
                is_locked=False,
                order__status=Order.DELIVERED,
                order__delivered_at__lte=cutoff,
            ).values_list('id', flat=True)
        )

        released = []
        for escrow_id in due_ids:
            try:
                self.release(escrow_id=escrow_id, auto=True)
            except APIException as e:
                logger.error(f"Failed to auto-release escrow {escrow_id}: {e}")
                continue
            except Exception:
                logger.exception(f"Unexpected error auto-releasing escrow {escrow_id}")
                continue
            released.append(escrow_id)
            logger.info(f"Auto-released funds for escrow {escrow_id}")
        return released

    def _order_id_for(self, escrow_id):
        order_id = EscrowTransaction.objects.filter(pk=escrow_id).values_list('order_id', flat=True).first()
        if order_id is None:
            raise NotFound("Escrow transaction not found.")
        return order_id
