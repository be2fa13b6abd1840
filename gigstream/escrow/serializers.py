from rest_framework import serializers

from accounts.serializers import UserSummarySerializer
from .models import EscrowTransaction


class EscrowTransactionSerializer(serializers.ModelSerializer):
    order_id = serializers.IntegerField(source="order.id", read_only=True)
    gig_title = serializers.CharField(source="order.gig.title", read_only=True)
    order_status = serializers.CharField(source="order.status", read_only=True)
    buyer = UserSummarySerializer(read_only=True)
    seller = UserSummarySerializer(read_only=True)

    class Meta:
        model = EscrowTransaction
        fields = (
            "id",
            "order_id",
            "gig_title",
            "order_status",
            "buyer",
            "seller",
            "amount",
            "currency",
            "status",
            "is_locked",
            "platform_fee_percent",
            "platform_fee",
            "seller_amount",
            "released_at",
            "refunded_at",
            "refund_reason",
            "gateway_refund_status",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class EscrowRefundSerializer(serializers.Serializer):
    reason = serializers.CharField(min_length=10, max_length=500)


class EscrowLockSerializer(serializers.Serializer):
    """Lock or unlock an escrow (e.g., during disputes)."""

    is_locked = serializers.BooleanField()

    def to_representation(self, instance):
        return {
            "id": instance.id,
            "is_locked": instance.is_locked,
            "status": instance.status,
        }


class EscrowBalanceSerializer(serializers.Serializer):
    available = serializers.DecimalField(max_digits=12, decimal_places=2)
    pending = serializers.DecimalField(max_digits=12, decimal_places=2)
    total = serializers.DecimalField(max_digits=12, decimal_places=2)
