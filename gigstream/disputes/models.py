from django.db import models
from auditlog.registry import auditlog

from accounts.models import CustomUser
from orders.models import Order


class Dispute(models.Model):
    STATUS_CHOICES = (
        ('open', 'Open'),
        ('resolved', 'Resolved'),
        ('closed', 'Closed'),
    )

    DISPUTE_TYPE_CHOICES = (
        ('payment', 'Payment Issue'),
        ('quality', 'Work Quality'),
        ('delay', 'Late Delivery'),
        ('other', 'Other'),
    )

    # What happens to the escrowed payment when a moderator resolves the dispute.
    OUTCOME_CHOICES = (
        ('release', 'Release to seller'),
        ('refund', 'Refund to buyer'),
        ('none', 'Resume the order'),
    )

    order = models.OneToOneField(Order, on_delete=models.CASCADE, related_name='dispute')
    raised_by = models.ForeignKey(CustomUser, on_delete=models.PROTECT, related_name='disputes')

    dispute_type = models.CharField(max_length=20, choices=DISPUTE_TYPE_CHOICES, default='other')
    reason = models.TextField()
    previous_order_status = models.CharField(max_length=20, default=Order.IN_PROGRESS)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='open')
    outcome = models.CharField(max_length=10, choices=OUTCOME_CHOICES, blank=True)
    resolution = models.TextField(blank=True)
    resolved_by = models.ForeignKey(CustomUser, on_delete=models.SET_NULL, null=True, blank=True, related_name='resolved_disputes')
    resolved_at = models.DateTimeField(null=True, blank=True)
    closed_at = models.DateTimeField(null=True, blank=True)

    moderator_note = models.TextField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Dispute for order {self.order_id} by {self.raised_by}"


auditlog.register(Dispute)
