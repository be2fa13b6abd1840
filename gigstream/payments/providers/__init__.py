from .bank_transfer import BankTransferProvider
from .base import BasePaymentProvider
from .paypal import PayPalProvider
from .stripe import StripeProvider

PROVIDERS = {
    'stripe': StripeProvider,
    'paypal': PayPalProvider,
    'bank_transfer': BankTransferProvider,
}

# Withdrawal method -> payout rail
PAYOUT_PROVIDERS = {
    'STRIPE': 'stripe',
    'PAYPAL': 'paypal',
    'BANK_TRANSFER': 'bank_transfer',
}


def get_payment_provider(provider_name: str, **kwargs) -> BasePaymentProvider:
    """
    Factory function to get payment provider instances.

    Args:
        provider_name: Name of the payment provider
        **kwargs: Additional configuration

    Returns:
        BasePaymentProvider: Payment provider instance
    """
    if provider_name not in PROVIDERS:
        raise ValueError(f"Unknown payment provider: {provider_name}")

    return PROVIDERS[provider_name](**kwargs)


def get_payout_provider(method: str, **kwargs) -> BasePaymentProvider:
    if method not in PAYOUT_PROVIDERS:
        raise ValueError(f"Unknown withdrawal method: {method}")
    return get_payment_provider(PAYOUT_PROVIDERS[method], **kwargs)
