from abc import ABC, abstractmethod


class BasePaymentProvider(ABC):
    """
    Abstract base class for all payment providers.
    Defines the common interface that all payment providers must implement.

    Every call returns a dict with a ``status`` key (``success`` or ``error``);
    providers log and report failures instead of raising them.
    """

    name = None

    def __init__(self, **kwargs):
        """Initialize the payment provider with configuration."""
        self.config = kwargs

    @abstractmethod
    def charge(self, user, amount, **kwargs):
        """
        Initiate a payment charge.

        Args:
            user: User object making the payment
            amount: Amount to charge (as Decimal)
            **kwargs: Additional parameters specific to the provider

        Returns:
            Dict containing payment initiation response
        """
        pass

    @abstractmethod
    def verify(self, provider_transaction_id):
        """
        Verify a payment transaction.

        Returns:
            bool: True if payment is successful, False otherwise
        """
        pass

    @abstractmethod
    def refund(self, provider_transaction_id, amount=None, reason="Order refund"):
        """
        Process a refund.

        Args:
            provider_transaction_id: Original transaction ID
            amount: Amount to refund (if None, full refund)
            reason: Free text stored with the refund

        Returns:
            Dict containing refund response
        """
        pass

    @abstractmethod
    def transfer_to_account(self, recipient, amount, reference, **kwargs):
        """
        Pay out to a seller's external account.

        Args:
            recipient: Dict of account details for this rail
            amount: Amount to send (Decimal)
            reference: Our idempotent reference for the payout

        Returns:
            Dict with ``status`` and, on success, ``reference``
        """
        pass

    def validate_webhook(self, payload, signature):
        """
        Validate webhook signature (optional implementation).

        Returns:
            bool: True if webhook is valid
        """
        return False
