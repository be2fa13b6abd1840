from django.contrib import admin

from .models import Dispute


@admin.register(Dispute)
class DisputeAdmin(admin.ModelAdmin):
    list_display = ('id', 'order', 'raised_by', 'dispute_type', 'status', 'outcome', 'created_at')
    list_filter = ('status', 'dispute_type', 'outcome')
    search_fields = ('raised_by__email', 'reason')
