import logging

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound

from escrow.models import EscrowTransaction
from escrow.services import EscrowService
from gigstream.exceptions import AlreadyProcessed, InvalidTransition, Unauthorized
from notifications.services import notify
from orders.models import Order
from .models import Dispute

logger = logging.getLogger(__name__)

DISPUTABLE_STATUSES = (Order.IN_PROGRESS, Order.DELIVERED)


class DisputeService:
    """
    Raising a dispute freezes the order's escrow; a moderator decides where the
    money goes.
    """

    def __init__(self, escrow_service=None):
        self.escrow_service = escrow_service or EscrowService()

    def open(self, *, order_id, user, dispute_type, reason):
        with transaction.atomic():
            order = Order.objects.select_for_update().filter(pk=order_id).first()
            if order is None or not order.is_participant(user):
                raise NotFound("Order not found.")
            if Dispute.objects.filter(order=order).exists():
                raise AlreadyProcessed("A dispute has already been raised for this order.")
            if order.status not in DISPUTABLE_STATUSES:
                raise InvalidTransition(f"A dispute cannot be raised for an order with status '{order.status}'.")

            dispute = Dispute.objects.create(
                order=order,
                raised_by=user,
                dispute_type=dispute_type,
                reason=reason,
                previous_order_status=order.status,
            )

            order.status = Order.DISPUTED
            order.save(update_fields=['status', 'updated_at'])
            self._set_escrow_lock(order, True)

            other_party = order.seller if user.id == order.buyer_id else order.buyer
            notify(
                other_party,
                'dispute_opened',
                'Dispute Opened',
                f"A dispute was raised on order {order.id}. The payment is on hold until a moderator resolves it.",
                link=f'/dashboard/orders/{order.id}',
            )

        logger.info(f"Dispute {dispute.id} opened on order {order.id} by user {user.id}")
        return dispute

    def withdraw(self, *, dispute_id, user):
        """The owner drops an open dispute; the order resumes where it was."""
        with transaction.atomic():
            dispute = self._lock_open_dispute(dispute_id)
            if dispute.raised_by_id != user.id:
                raise Unauthorized("Only the user who raised the dispute can withdraw it.")

            order = Order.objects.select_for_update().get(pk=dispute.order_id)
            order.status = dispute.previous_order_status or Order.IN_PROGRESS
            order.save(update_fields=['status', 'updated_at'])
            self._set_escrow_lock(order, False)
            dispute.delete()

        logger.info(f"Dispute {dispute_id} withdrawn by user {user.id}")

    def resolve(self, *, dispute_id, moderator, status, outcome='', resolution='', moderator_note=None):
        if not moderator.is_staff:
            raise Unauthorized("Only moderators can resolve disputes.")

        with transaction.atomic():
            dispute = self._lock_open_dispute(dispute_id)
            order = Order.objects.select_for_update().get(pk=dispute.order_id)
            escrow = EscrowTransaction.objects.filter(order=order).first()
            held = escrow is not None and escrow.status == EscrowTransaction.HELD

            outcome = outcome if status == 'resolved' else 'none'
            if outcome == 'release' and held:
                self.escrow_service.release(escrow_id=escrow.id, released_by=moderator, by_moderator=True)
            elif outcome == 'refund' and held:
                self.escrow_service.refund(
                    escrow_id=escrow.id,
                    reason=resolution or dispute.reason,
                    refunded_by=moderator,
                    by_moderator=True,
                )
            elif outcome in ('release', 'refund'):
                raise AlreadyProcessed("There are no held funds for this order.")
            else:
                order.status = dispute.previous_order_status or Order.IN_PROGRESS
                order.save(update_fields=['status', 'updated_at'])
                self._set_escrow_lock(order, False)

            now = timezone.now()
            dispute.status = status
            dispute.outcome = outcome
            dispute.resolution = resolution or dispute.resolution
            if moderator_note is not None:
                dispute.moderator_note = moderator_note
            if status == 'resolved':
                dispute.resolved_by = moderator
                dispute.resolved_at = now
            else:
                dispute.closed_at = now
            dispute.save()

            for party in (order.buyer, order.seller):
                notify(
                    party,
                    'dispute_resolved',
                    'Dispute Resolved' if status == 'resolved' else 'Dispute Closed',
                    f"The dispute on order {order.id} was {status}. {dispute.resolution}".strip(),
                    link=f'/dashboard/orders/{order.id}',
                )

        logger.info(f"Dispute {dispute.id} {status} by {moderator} with outcome {outcome}")
        return dispute

    def _lock_open_dispute(self, dispute_id):
        dispute = Dispute.objects.select_for_update().filter(pk=dispute_id).first()
        if dispute is None:
            raise NotFound("Dispute not found.")
        if dispute.status != 'open':
            raise AlreadyProcessed(f"Cannot update a dispute with status '{dispute.status}'.")
        return dispute

    def _set_escrow_lock(self, order, is_locked):
        escrow = EscrowTransaction.objects.select_for_update().filter(order=order).first()
        if escrow is not None and escrow.status == EscrowTransaction.HELD and escrow.is_locked != is_locked:
            escrow.is_locked = is_locked
            escrow.save(update_fields=['is_locked', 'updated_at'])
