from django.contrib import admin

from .models import EscrowTransaction


@admin.register(EscrowTransaction)
class EscrowTransactionAdmin(admin.ModelAdmin):
    list_display = ('id', 'order', 'amount', 'status', 'is_locked', 'gateway_refund_status', 'created_at')
    list_filter = ('status', 'is_locked', 'gateway_refund_status')
    search_fields = ('payment_intent_id', 'buyer__email', 'seller__email')
    # Funds only move through EscrowService.
    readonly_fields = (
        'order', 'buyer', 'seller', 'amount', 'status', 'platform_fee_percent', 'platform_fee',
        'seller_amount', 'released_by', 'released_at', 'refunded_by', 'refunded_at',
        'gateway_refund_id', 'gateway_refund_status',
    )
