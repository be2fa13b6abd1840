from django.conf import settings
from django.db import models
from auditlog.registry import auditlog

from orders.models import Order


class EscrowTransaction(models.Model):
    HELD = 'HELD'
    RELEASED = 'RELEASED'
    REFUNDED = 'REFUNDED'
    STATUS_CHOICES = (
        (HELD, 'Held'),
        (RELEASED, 'Released'),
        (REFUNDED, 'Refunded'),
    )

    GATEWAY_REFUND_CHOICES = (
        ('', 'Not requested'),
        ('pending', 'Pending'),
        ('requested', 'Requested'),
        ('succeeded', 'Succeeded'),
        ('failed', 'Failed'),
    )

    order = models.OneToOneField(Order, on_delete=models.PROTECT, related_name='escrow')
    buyer = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='escrow_purchases')
    seller = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='escrow_sales')
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default='USD')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=HELD)
    provider = models.CharField(max_length=50, default='stripe')
    payment_intent_id = models.CharField(max_length=255, blank=True)
    is_locked = models.BooleanField(default=False)  # Lock during disputes

    platform_fee_percent = models.DecimalField(max_digits=5, decimal_places=2, null=True, blank=True)
    platform_fee = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    seller_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    released_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )
    released_at = models.DateTimeField(null=True, blank=True)

    refunded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+'
    )
    refunded_at = models.DateTimeField(null=True, blank=True)
    refund_reason = models.TextField(blank=True)
    gateway_refund_id = models.CharField(max_length=255, blank=True)
    gateway_refund_status = models.CharField(max_length=20, choices=GATEWAY_REFUND_CHOICES, blank=True, default='')

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f"Escrow for order {self.order_id} ({self.amount}, {self.status})"


auditlog.register(EscrowTransaction)
