from django.contrib import admin

from .models import Gig, Order


@admin.register(Gig)
class GigAdmin(admin.ModelAdmin):
    list_display = ('id', 'title', 'seller', 'total_revenue', 'is_active', 'created_at')
    list_filter = ('is_active',)
    search_fields = ('title', 'seller__email')
    readonly_fields = ('total_revenue',)


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ('id', 'gig', 'buyer', 'seller', 'total_amount', 'status', 'payment_status', 'created_at')
    list_filter = ('status', 'payment_status')
    search_fields = ('buyer__email', 'seller__email', 'checkout_session_id', 'payment_intent_id')
    readonly_fields = ('payment_status', 'payment_intent_id', 'checkout_session_id')
