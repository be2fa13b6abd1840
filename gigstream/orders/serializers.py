from decimal import Decimal

from rest_framework import serializers

from accounts.serializers import UserSummarySerializer
from .models import Gig, Order


class GigPackageSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=50)
    price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('1.00'))
    delivery_days = serializers.IntegerField(min_value=1)
    revisions = serializers.IntegerField(min_value=0, default=0)


class GigSerializer(serializers.ModelSerializer):
    """
    Fields:
        required: title, description, packages
        read only: seller, total_revenue, timestamps
    Package prices are stored as strings so the JSON column keeps exact cents.
    """
    seller = UserSummarySerializer(read_only=True)
    packages = serializers.JSONField()

    class Meta:
        model = Gig
        fields = ['id', 'seller', 'title', 'description', 'packages', 'total_revenue', 'is_active', 'created_at', 'updated_at']
        read_only_fields = ['id', 'seller', 'total_revenue', 'created_at', 'updated_at']

    def validate_packages(self, packages):
        if not isinstance(packages, list) or not packages:
            raise serializers.ValidationError("At least one package is required.")
        package_serializer = GigPackageSerializer(data=packages, many=True)
        package_serializer.is_valid(raise_exception=True)
        packages = package_serializer.validated_data
        names = [package['name'] for package in packages]
        if len(names) != len(set(names)):
            raise serializers.ValidationError("Package names must be unique.")
        return [
            {
                'name': package['name'],
                'price': str(package['price']),
                'delivery_days': package['delivery_days'],
                'revisions': package.get('revisions', 0),
            }
            for package in packages
        ]


class GigSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = Gig
        fields = ['id', 'title', 'seller_id']
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    gig = GigSummarySerializer(read_only=True)
    buyer = UserSummarySerializer(read_only=True)
    seller = UserSummarySerializer(read_only=True)
    escrow_id = serializers.SerializerMethodField()
    escrow_status = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            'id', 'gig', 'buyer', 'seller', 'package_type', 'price', 'service_fee', 'total_amount',
            'status', 'payment_status', 'requirements', 'max_revisions', 'delivery_date',
            'delivered_at', 'completed_at', 'escrow_id', 'escrow_status', 'created_at', 'updated_at',
        ]
        read_only_fields = fields

    def _escrow(self, obj):
        return getattr(obj, 'escrow', None)

    def get_escrow_id(self, obj):
        escrow = self._escrow(obj)
        return escrow.id if escrow else None

    def get_escrow_status(self, obj):
        escrow = self._escrow(obj)
        return escrow.status if escrow else None


class OrderStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[Order.DELIVERED, Order.COMPLETED, Order.CANCELLED])
    reason = serializers.CharField(required=False, allow_blank=True, max_length=500)
