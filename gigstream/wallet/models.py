from decimal import Decimal

from django.conf import settings
from django.db import models
from auditlog.registry import auditlog


class Wallet(models.Model):
    """
    Seller earnings. ``pending_clearance`` holds escrowed funds for orders that
    are not finished yet, ``balance`` is what the seller may withdraw.
    Only ``wallet.services.post_entry`` writes these fields.
    """
    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='wallet')
    balance = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    pending_clearance = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    total_earnings = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    total_withdrawals = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    currency = models.CharField(max_length=3, default='USD')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Wallet of {self.user} ({self.balance} available, {self.pending_clearance} pending)"


class LedgerEntry(models.Model):
    """Append-only audit row. One row per wallet mutation."""

    ESCROW_HOLD = 'escrow_hold'
    ESCROW_RELEASE = 'escrow_release'
    EARNING = 'earning'
    SERVICE_FEE = 'service_fee'
    REFUND = 'refund'
    WITHDRAWAL = 'withdrawal'
    WITHDRAWAL_REVERSAL = 'withdrawal_reversal'

    TYPE_CHOICES = (
        (ESCROW_HOLD, 'Escrow Hold'),
        (ESCROW_RELEASE, 'Escrow Release'),
        (EARNING, 'Earning'),
        (SERVICE_FEE, 'Service Fee'),
        (REFUND, 'Refund'),
        (WITHDRAWAL, 'Withdrawal'),
        (WITHDRAWAL_REVERSAL, 'Withdrawal Reversal'),
    )

    AVAILABLE = 'available'
    PENDING = 'pending'
    BUCKET_CHOICES = (
        (AVAILABLE, 'Available balance'),
        (PENDING, 'Pending clearance'),
    )

    STATUS_CHOICES = (
        ('pending', 'Pending'),
        ('processing', 'Processing'),
        ('completed', 'Completed'),
        ('failed', 'Failed'),
    )

    wallet = models.ForeignKey(Wallet, on_delete=models.PROTECT, related_name='entries')
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='ledger_entries')
    order = models.ForeignKey('orders.Order', on_delete=models.PROTECT, null=True, blank=True, related_name='ledger_entries')
    withdrawal = models.ForeignKey('WithdrawalRequest', on_delete=models.PROTECT, null=True, blank=True, related_name='ledger_entries')
    entry_type = models.CharField(max_length=32, choices=TYPE_CHOICES)
    bucket = models.CharField(max_length=16, choices=BUCKET_CHOICES)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    balance_after = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default='USD')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='completed')
    description = models.CharField(max_length=255, blank=True)
    external_id = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at', '-id']
        constraints = [
            models.UniqueConstraint(
                fields=['order', 'entry_type'],
                condition=models.Q(order__isnull=False),
                name='unique_ledger_entry_per_order_operation',
            ),
            models.UniqueConstraint(
                fields=['withdrawal', 'entry_type'],
                condition=models.Q(withdrawal__isnull=False),
                name='unique_ledger_entry_per_withdrawal_operation',
            ),
        ]

    def __str__(self):
        return f"{self.entry_type} {self.amount} ({self.bucket}) for {self.user}"


class WithdrawalRequest(models.Model):
    METHOD_CHOICES = (
        ('STRIPE', 'Stripe Connect'),
        ('PAYPAL', 'PayPal'),
        ('BANK_TRANSFER', 'Bank Transfer'),
    )

    PENDING = 'PENDING'
    PROCESSING = 'PROCESSING'
    COMPLETED = 'COMPLETED'
    REJECTED = 'REJECTED'
    FAILED = 'FAILED'
    CANCELLED = 'CANCELLED'
    STATUS_CHOICES = (
        (PENDING, 'Pending'),
        (PROCESSING, 'Processing'),
        (COMPLETED, 'Completed'),
        (REJECTED, 'Rejected'),
        (FAILED, 'Failed'),
        (CANCELLED, 'Cancelled'),
    )

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='withdrawal_requests')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    fee = models.DecimalField(max_digits=12, decimal_places=2)
    net_amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default='USD')
    method = models.CharField(max_length=20, choices=METHOD_CHOICES)
    account_details = models.JSONField(default=dict)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=PENDING)
    idempotency_key = models.CharField(max_length=64, null=True, blank=True)
    rejection_reason = models.TextField(blank=True)
    notes = models.TextField(blank=True)
    payout_reference = models.CharField(max_length=255, blank=True)
    processed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='processed_withdrawals',
    )
    requested_at = models.DateTimeField(auto_now_add=True)
    processed_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-requested_at', '-id']
        constraints = [
            models.UniqueConstraint(
                fields=['user', 'idempotency_key'],
                condition=models.Q(idempotency_key__isnull=False),
                name='unique_withdrawal_idempotency_key',
            ),
        ]

    def __str__(self):
        return f"Withdrawal {self.id} of {self.amount} by {self.user} ({self.status})"


auditlog.register(Wallet)
auditlog.register(WithdrawalRequest)
