from decimal import Decimal

from django.db import models
from django.contrib.auth import get_user_model
from auditlog.registry import auditlog

from gigstream.exceptions import InvalidTransition

User = get_user_model()


class Gig(models.Model):
    """
    A seller's service listing. ``packages`` is a list of
    ``{"name", "price", "delivery_days", "revisions"}`` objects.
    """
    seller = models.ForeignKey(User, related_name='gigs', on_delete=models.PROTECT)
    title = models.CharField(max_length=255)
    description = models.TextField()
    packages = models.JSONField(default=list)
    total_revenue = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.title} by {self.seller}"

    def get_package(self, name):
        for package in self.packages or []:
            if package.get('name') == name:
                return package
        return None


class Order(models.Model):
    PENDING = 'PENDING'
    IN_PROGRESS = 'IN_PROGRESS'
    DELIVERED = 'DELIVERED'
    COMPLETED = 'COMPLETED'
    CANCELLED = 'CANCELLED'
    DISPUTED = 'DISPUTED'
    STATUS_CHOICES = (
        (PENDING, 'Pending'),
        (IN_PROGRESS, 'In Progress'),
        (DELIVERED, 'Delivered'),
        (COMPLETED, 'Completed'),
        (CANCELLED, 'Cancelled'),
        (DISPUTED, 'Disputed'),
    )

    PAYMENT_PENDING = 'PENDING'
    PAYMENT_PROCESSING = 'PROCESSING'
    PAYMENT_COMPLETED = 'COMPLETED'
    PAYMENT_REFUNDED = 'REFUNDED'
    PAYMENT_STATUS_CHOICES = (
        (PAYMENT_PENDING, 'Pending'),
        (PAYMENT_PROCESSING, 'Processing'),
        (PAYMENT_COMPLETED, 'Completed'),
        (PAYMENT_REFUNDED, 'Refunded'),
    )

    # Payment status only ever moves forward.
    PAYMENT_TRANSITIONS = {
        PAYMENT_PENDING: {PAYMENT_PROCESSING},
        PAYMENT_PROCESSING: {PAYMENT_COMPLETED, PAYMENT_REFUNDED},
        PAYMENT_COMPLETED: set(),
        PAYMENT_REFUNDED: set(),
    }

    gig = models.ForeignKey(Gig, related_name='orders', on_delete=models.PROTECT)
    buyer = models.ForeignKey(User, related_name='purchases', on_delete=models.PROTECT)
    seller = models.ForeignKey(User, related_name='sales', on_delete=models.PROTECT)
    package_type = models.CharField(max_length=50)
    price = models.DecimalField(max_digits=12, decimal_places=2)
    service_fee = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0'))
    total_amount = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=PENDING)
    payment_status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default=PAYMENT_PENDING)
    payment_intent_id = models.CharField(max_length=255, blank=True)
    checkout_session_id = models.CharField(max_length=255, unique=True, null=True, blank=True)
    requirements = models.JSONField(default=dict, blank=True)
    max_revisions = models.PositiveIntegerField(default=0)
    delivery_date = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at', '-id']

    def __str__(self):
        return f"Order {self.id} for {self.gig.title} ({self.buyer} -> {self.seller})"

    def is_participant(self, user):
        return user.id in (self.buyer_id, self.seller_id)

    def set_payment_status(self, new_status):
        if new_status not in self.PAYMENT_TRANSITIONS.get(self.payment_status, set()):
            raise InvalidTransition(
                f"Payment status cannot move from {self.payment_status} to {new_status}."
            )
        self.payment_status = new_status


auditlog.register(Order)
