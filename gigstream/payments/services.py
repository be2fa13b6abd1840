import logging

from rest_framework.exceptions import ValidationError

from gigstream.exceptions import PaymentProviderError, Unauthorized
from orders.models import Gig
from wallet.utils import percentage_of, to_money
from .models import PlatformSettings
from .providers import get_payment_provider, get_payout_provider

logger = logging.getLogger(__name__)


class PaymentService:
    """
    Provider adapter. This class should NOT create or update Escrow or Wallet
    records. It only calls the configured payment provider(s).
    """
    def __init__(self, provider_name='stripe'):
        self.default_provider_name = provider_name

    def _get_provider(self, provider_name):
        name = provider_name or self.default_provider_name
        if not name:
            raise ValueError("provider_name is required (no default configured).")
        return get_payment_provider(name), name

    def init_charge(self, *, user, amount, provider_name=None, **kwargs):
        provider, _ = self._get_provider(provider_name)
        return provider.charge(user=user, amount=amount, **kwargs)

    def verify_payment(self, *, provider_name, provider_transaction_id):
        provider, _ = self._get_provider(provider_name)
        return provider.verify(provider_transaction_id)

    def refund(self, *, provider_name, provider_transaction_id, amount=None, reason="Order refund"):
        provider, _ = self._get_provider(provider_name)
        return provider.refund(provider_transaction_id, amount, reason)

    def create_checkout_session(self, *, buyer, gig_id, package_type, requirements=''):
        """
        Price the chosen package, add the buyer service fee and open a hosted
        checkout. The order itself is created by the payment webhook.
        """
        gig = Gig.objects.filter(id=gig_id, is_active=True).select_related('seller').first()
        if gig is None:
            raise ValidationError({'gig_id': ["Gig not found."]})
        if gig.seller_id == buyer.id:
            raise Unauthorized("You cannot order your own gig.")

        package = gig.get_package(package_type)
        if package is None:
            raise ValidationError({'package_type': ["Invalid package."]})

        price = to_money(package['price'])
        service_fee = percentage_of(price, PlatformSettings.current_fee_percent())

        result = self.init_charge(
            user=buyer,
            amount=price,
            gig=gig,
            package_type=package_type,
            service_fee=service_fee,
            requirements=requirements,
        )
        if result.get('status') != 'success':
            raise PaymentProviderError(result.get('message') or 'Could not start checkout')

        return {
            'session_id': result.get('session_id'),
            'url': result.get('checkout_url'),
            'price': price,
            'service_fee': service_fee,
            'total_amount': price + service_fee,
        }

    def transfer_to_seller(self, *, seller, amount, method, account_details, reference):
        """
        Pay a seller out over the rail matching their withdrawal method.
        Never raises; failures come back as ``{'status': 'error', 'message': ...}``.
        """
        try:
            provider = get_payout_provider(method)
            return provider.transfer_to_account(
                recipient=account_details or {},
                amount=amount,
                reference=reference,
            )
        except Exception as e:
            logger.error(f"Transfer to seller {seller.id} failed: {str(e)}")
            return {
                'status': 'error',
                'message': f'Transfer failed: {str(e)}',
            }
