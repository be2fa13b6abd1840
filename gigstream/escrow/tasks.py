import logging

from celery import shared_task
from django.db import transaction

from payments.services import PaymentService
from .models import EscrowTransaction
from .services import EscrowService

logger = logging.getLogger(__name__)


@shared_task
def task_refund_escrow_payment(escrow_id):
    """Send the buyer's money back through the gateway for an already refunded escrow."""
    escrow = EscrowTransaction.objects.filter(id=escrow_id).first()
    if escrow is None or escrow.status != EscrowTransaction.REFUNDED:
        logger.warning(f"Skipping gateway refund for escrow {escrow_id}: not refunded")
        return None
    if escrow.gateway_refund_status not in ('pending', 'failed'):
        logger.info(f"Gateway refund for escrow {escrow_id} already {escrow.gateway_refund_status}")
        return escrow.gateway_refund_status

    if not escrow.payment_intent_id:
        result = {'status': 'error', 'message': 'No payment reference recorded for this escrow'}
    else:
        result = PaymentService().refund(
            provider_name=escrow.provider,
            provider_transaction_id=escrow.payment_intent_id,
            reason=escrow.refund_reason or 'Order refund',
        )

    with transaction.atomic():
        escrow = EscrowTransaction.objects.select_for_update().get(id=escrow_id)
        if result.get('status') == 'success':
            escrow.gateway_refund_status = 'requested'
            escrow.gateway_refund_id = result.get('refund_id') or ''
        else:
            escrow.gateway_refund_status = 'failed'
            logger.error(f"Gateway refund for escrow {escrow_id} failed: {result.get('message')}")
        escrow.save(update_fields=['gateway_refund_status', 'gateway_refund_id', 'updated_at'])

    return escrow.gateway_refund_status


@shared_task
def task_auto_release_escrow():
    released = EscrowService().auto_release_due()
    if released:
        logger.info(f"Auto-released {len(released)} escrow(s): {released}")
    return released
