import logging

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound

from escrow.services import EscrowService
from gigstream.exceptions import InvalidTransition, Unauthorized
from notifications.services import notify
from .models import Order

logger = logging.getLogger(__name__)


class OrderService:
    """
    Order status changes driven by buyers and sellers. Completing an order
    releases its escrow and cancelling one refunds it, in the same transaction.
    """

    TRANSITIONS = {
        Order.PENDING: {Order.CANCELLED},
        Order.IN_PROGRESS: {Order.DELIVERED, Order.CANCELLED},
        Order.DELIVERED: {Order.COMPLETED},
    }

    def __init__(self, escrow_service=None):
        self.escrow_service = escrow_service or EscrowService()

    def transition(self, *, order_id, new_status, actor, reason=''):
        with transaction.atomic():
            order = Order.objects.select_for_update().filter(pk=order_id).first()
            if order is None:
                raise NotFound("Order not found.")
            if not (order.is_participant(actor) or actor.is_staff):
                raise NotFound("Order not found.")

            if new_status not in self.TRANSITIONS.get(order.status, set()):
                raise InvalidTransition(f"Order cannot move from {order.status} to {new_status}.")

            if new_status == Order.DELIVERED:
                self._deliver(order, actor)
            elif new_status == Order.COMPLETED:
                self._complete(order, actor)
            else:
                self._cancel(order, actor, reason)

        order.refresh_from_db()
        logger.info(f"Order {order.id} moved to {order.status} by user {actor.id}")
        return order

    def _deliver(self, order, actor):
        if actor.id != order.seller_id:
            raise Unauthorized("Only the seller can deliver this order.")
        order.status = Order.DELIVERED
        order.delivered_at = timezone.now()
        order.save(update_fields=['status', 'delivered_at', 'updated_at'])
        notify(
            order.buyer,
            'order_delivered',
            'Order Delivered',
            f"Your order {order.id} has been delivered. Review it and mark it complete to release the payment.",
            link=f'/dashboard/orders/{order.id}',
        )

    def _complete(self, order, actor):
        if actor.id != order.buyer_id:
            raise Unauthorized("Only the buyer can complete this order.")
        escrow = getattr(order, 'escrow', None)
        if escrow is None:
            raise InvalidTransition("This order has no payment held in escrow.")
        self.escrow_service.release(escrow_id=escrow.id, released_by=actor)

    def _cancel(self, order, actor, reason):
        escrow = getattr(order, 'escrow', None)
        if escrow is not None and escrow.status == escrow.HELD:
            self.escrow_service.refund(
                escrow_id=escrow.id,
                reason=reason or f"Order cancelled by user {actor.id}",
                refunded_by=actor,
            )
            return

        order.status = Order.CANCELLED
        order.save(update_fields=['status', 'updated_at'])
        for party in (order.buyer, order.seller):
            if party.id != actor.id:
                notify(
                    party,
                    'order_cancelled',
                    'Order Cancelled',
                    f"Order {order.id} has been cancelled.",
                    link=f'/dashboard/orders/{order.id}',
                )
