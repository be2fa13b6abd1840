from decimal import Decimal

from rest_framework import serializers

from accounts.serializers import UserSummarySerializer
from .models import LedgerEntry, Wallet, WithdrawalRequest

# Account fields each payout rail needs.
REQUIRED_ACCOUNT_FIELDS = {
    'STRIPE': ('stripe_account_id',),
    'PAYPAL': ('email',),
    'BANK_TRANSFER': ('account_name', 'account_number', 'bank_name'),
}


class WalletSerializer(serializers.ModelSerializer):
    available_balance = serializers.DecimalField(source='balance', max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = Wallet
        fields = ['id', 'available_balance', 'pending_clearance', 'total_earnings', 'total_withdrawals', 'currency', 'updated_at']
        read_only_fields = fields


class LedgerEntrySerializer(serializers.ModelSerializer):
    class Meta:
        model = LedgerEntry
        fields = [
            'id', 'entry_type', 'bucket', 'amount', 'balance_after', 'currency', 'status',
            'description', 'order', 'withdrawal', 'external_id', 'created_at',
        ]
        read_only_fields = fields


class WithdrawalRequestSerializer(serializers.ModelSerializer):
    user = UserSummarySerializer(read_only=True)

    class Meta:
        model = WithdrawalRequest
        fields = [
            'id', 'user', 'amount', 'fee', 'net_amount', 'currency', 'method', 'status',
            'rejection_reason', 'notes', 'payout_reference', 'requested_at', 'processed_at', 'completed_at',
        ]
        read_only_fields = fields


class WithdrawalCreateSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    method = serializers.ChoiceField(choices=WithdrawalRequest.METHOD_CHOICES)
    account_details = serializers.DictField()
    idempotency_key = serializers.CharField(max_length=64, required=False, allow_blank=False)

    def validate(self, attrs):
        details = attrs['account_details']
        missing = [f for f in REQUIRED_ACCOUNT_FIELDS[attrs['method']] if not details.get(f)]
        if missing:
            raise serializers.ValidationError(
                {'account_details': [f"Missing required field: {field}" for field in missing]}
            )
        if attrs['method'] == 'PAYPAL':
            serializers.EmailField().run_validation(details['email'])
        return attrs


class WithdrawalProcessSerializer(serializers.Serializer):
    approve = serializers.BooleanField()
    notes = serializers.CharField(required=False, allow_blank=True, max_length=1000)


class RevenueQuerySerializer(serializers.Serializer):
    start_date = serializers.DateField(required=False)
    end_date = serializers.DateField(required=False)

    def validate(self, attrs):
        start, end = attrs.get('start_date'), attrs.get('end_date')
        if start and end and start > end:
            raise serializers.ValidationError({'end_date': ["end_date must not be before start_date."]})
        return attrs
