from django.contrib import admin
from .models import PlatformSettings, RefundRequest, WebhookEvent


@admin.register(PlatformSettings)
class PlatformSettingsAdmin(admin.ModelAdmin):
    list_display = ('site_name', 'platform_fee_percent', 'maintenance_mode', 'updated_at')


@admin.register(RefundRequest)
class RefundRequestAdmin(admin.ModelAdmin):
    list_display = ('id', 'order', 'requested_by', 'amount', 'status', 'requested_at', 'processed_at')
    list_filter = ('status',)
    search_fields = ('requested_by__email', 'reason')


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    list_display = ('provider', 'event_id', 'event_type', 'received_at')
    list_filter = ('provider', 'event_type')
    search_fields = ('event_id',)
