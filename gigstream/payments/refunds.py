import logging

from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from escrow.models import EscrowTransaction
from escrow.services import EscrowService
from gigstream.exceptions import AlreadyProcessed, Unauthorized
from notifications.services import notify
from orders.models import Order
from wallet.utils import to_money
from .models import RefundRequest

logger = logging.getLogger(__name__)


class RefundRequestService:
    """Buyer-initiated refunds that an admin approves or rejects. Refunds are always for the full escrow."""

    def __init__(self, escrow_service=None):
        self.escrow_service = escrow_service or EscrowService()

    def create(self, *, user, order_id, reason, amount=None):
        order = Order.objects.select_related('seller').filter(id=order_id).first()
        if order is None:
            raise NotFound("Order not found.")
        if order.buyer_id != user.id:
            raise Unauthorized("Only the buyer can request a refund.")

        escrow = EscrowTransaction.objects.filter(order=order).first()
        if escrow is None or escrow.status != EscrowTransaction.HELD:
            raise AlreadyProcessed("There are no held funds to refund for this order.")
        if amount is not None and to_money(amount) != escrow.amount:
            raise ValidationError({'amount': ["Only full refunds are supported."]})
        if RefundRequest.objects.filter(order=order, status=RefundRequest.PENDING).exists():
            raise AlreadyProcessed("A refund request for this order is already pending.")

        with transaction.atomic():
            refund_request = RefundRequest.objects.create(
                order=order,
                requested_by=user,
                amount=escrow.amount,
                reason=reason,
            )
            notify(
                order.seller,
                'refund_requested',
                'Refund Requested',
                f"The buyer requested a refund for order {order.id}.",
                link=f'/dashboard/orders/{order.id}',
            )

        logger.info(f"Refund request {refund_request.id} opened for order {order.id}")
        return refund_request

    def process(self, *, request_id, approve, notes='', processed_by=None):
        with transaction.atomic():
            refund_request = RefundRequest.objects.select_for_update().filter(id=request_id).first()
            if refund_request is None:
                raise NotFound("Refund request not found.")
            if refund_request.status != RefundRequest.PENDING:
                raise AlreadyProcessed("Refund request already processed.")

            refund_request.processed_by = processed_by
            refund_request.processed_at = timezone.now()
            refund_request.notes = notes or ''

            if not approve:
                refund_request.status = RefundRequest.REJECTED
                refund_request.save()
                notify(
                    refund_request.requested_by,
                    'refund_rejected',
                    'Refund Request Rejected',
                    f"Your refund request for order {refund_request.order_id} was rejected. {notes}".strip(),
                    link=f'/dashboard/orders/{refund_request.order_id}',
                )
                logger.info(f"Refund request {refund_request.id} rejected by {processed_by}")
                return refund_request

            escrow = EscrowTransaction.objects.filter(order_id=refund_request.order_id).first()
            if escrow is None:
                raise AlreadyProcessed("There are no held funds to refund for this order.")

            self.escrow_service.refund(
                escrow_id=escrow.id,
                reason=refund_request.reason,
                refunded_by=processed_by,
            )
            refund_request.status = RefundRequest.COMPLETED
            refund_request.save()

        logger.info(f"Refund request {refund_request.id} approved by {processed_by}")
        return refund_request
