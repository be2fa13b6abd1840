import logging
import uuid

from wallet.utils import to_money
from .base import BasePaymentProvider

logger = logging.getLogger(__name__)


class BankTransferProvider(BasePaymentProvider):
    """
    Manual rail. Payouts are settled by finance outside the platform, so a
    transfer only produces a reference and the instructions for the operator.
    """
    name = 'bank_transfer'

    def charge(self, user, amount, **kwargs):
        return {'status': 'error', 'message': 'Bank transfer cannot be used to pay for orders'}

    def verify(self, provider_transaction_id):
        return False

    def refund(self, provider_transaction_id, amount=None, reason="Order refund"):
        return {'status': 'error', 'message': 'Bank transfer payments are refunded manually'}

    def transfer_to_account(self, recipient, amount, reference, **kwargs):
        missing = [f for f in ('account_name', 'account_number', 'bank_name') if not recipient.get(f)]
        if missing:
            return {'status': 'error', 'message': f"Missing bank details: {', '.join(missing)}"}

        transfer_ref = f"BT-{uuid.uuid4().hex[:12].upper()}"
        instructions = (
            f"Send {to_money(amount)} to {recipient['account_name']}, "
            f"account {recipient['account_number']} at {recipient['bank_name']}. "
            f"Quote reference {transfer_ref}."
        )
        logger.info(f"Bank transfer {transfer_ref} scheduled for {reference}")
        return {
            'status': 'success',
            'provider': self.name,
            'reference': transfer_ref,
            'instructions': instructions,
        }
