from decimal import Decimal

from rest_framework import serializers

from accounts.serializers import UserSummarySerializer
from .models import PlatformSettings, RefundRequest


class CheckoutSerializer(serializers.Serializer):
    gig_id = serializers.IntegerField()
    package_type = serializers.CharField(max_length=50)
    requirements = serializers.CharField(required=False, allow_blank=True, max_length=2000)


class CheckoutSessionSerializer(serializers.Serializer):
    session_id = serializers.CharField()
    url = serializers.URLField()
    price = serializers.DecimalField(max_digits=12, decimal_places=2)
    service_fee = serializers.DecimalField(max_digits=12, decimal_places=2)
    total_amount = serializers.DecimalField(max_digits=12, decimal_places=2)


class RefundRequestSerializer(serializers.ModelSerializer):
    requested_by = UserSummarySerializer(read_only=True)
    processed_by = UserSummarySerializer(read_only=True)

    class Meta:
        model = RefundRequest
        fields = [
            'id', 'order', 'requested_by', 'amount', 'reason', 'status',
            'processed_by', 'processed_at', 'notes', 'requested_at',
        ]
        read_only_fields = fields


class RefundRequestCreateSerializer(serializers.Serializer):
    order_id = serializers.IntegerField()
    reason = serializers.CharField(min_length=10, max_length=500)
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'), required=False)


class RefundRequestProcessSerializer(serializers.Serializer):
    approve = serializers.BooleanField()
    notes = serializers.CharField(required=False, allow_blank=True, max_length=1000)


class PlatformSettingsSerializer(serializers.ModelSerializer):
    class Meta:
        model = PlatformSettings
        fields = ['site_name', 'platform_fee_percent', 'maintenance_mode', 'updated_at']
        read_only_fields = ['updated_at']
