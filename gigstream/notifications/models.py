from django.conf import settings
from django.db import models


class Notification(models.Model):
    TYPE_CHOICES = (
        ('order_placed', 'Order Placed'),
        ('order_delivered', 'Order Delivered'),
        ('order_completed', 'Order Completed'),
        ('order_cancelled', 'Order Cancelled'),
        ('escrow_released', 'Escrow Released'),
        ('escrow_refunded', 'Escrow Refunded'),
        ('withdrawal_submitted', 'Withdrawal Submitted'),
        ('withdrawal_completed', 'Withdrawal Completed'),
        ('withdrawal_rejected', 'Withdrawal Rejected'),
        ('withdrawal_failed', 'Withdrawal Failed'),
        ('refund_requested', 'Refund Requested'),
        ('refund_rejected', 'Refund Rejected'),
        ('dispute_opened', 'Dispute Opened'),
        ('dispute_resolved', 'Dispute Resolved'),
    )

    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='notifications')
    notification_type = models.CharField(max_length=40, choices=TYPE_CHOICES)
    title = models.CharField(max_length=255)
    message = models.TextField()
    link = models.CharField(max_length=255, blank=True)
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f"{self.notification_type} for {self.user}"
