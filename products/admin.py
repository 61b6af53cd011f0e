from django.contrib import admin

from .models import Item


@admin.register(Item)
class ItemAdmin(admin.ModelAdmin):
    list_display = ('item_code', 'description', 'drawing_no', 'revision', 'alloy', 'customer', 'is_active')
    list_filter = ('is_active', 'requires_external_processing', 'alloy')
    search_fields = ('item_code', 'description', 'drawing_no', 'customer__name')
    ordering = ('item_code',)
    readonly_fields = ('created_at', 'updated_at')
