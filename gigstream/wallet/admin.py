from django.contrib import admin

from .models import LedgerEntry, Wallet, WithdrawalRequest


@admin.register(Wallet)
class WalletAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'balance', 'pending_clearance', 'total_earnings', 'total_withdrawals', 'currency')
    search_fields = ('user__email',)
    readonly_fields = ('balance', 'pending_clearance', 'total_earnings', 'total_withdrawals')


@admin.register(LedgerEntry)
class LedgerEntryAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'entry_type', 'bucket', 'amount', 'balance_after', 'status', 'created_at')
    list_filter = ('entry_type', 'bucket', 'status')
    search_fields = ('user__email', 'external_id')

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(WithdrawalRequest)
class WithdrawalRequestAdmin(admin.ModelAdmin):
    list_display = ('id', 'user', 'amount', 'net_amount', 'method', 'status', 'requested_at', 'completed_at')
    list_filter = ('method', 'status')
    search_fields = ('user__email', 'payout_reference')
