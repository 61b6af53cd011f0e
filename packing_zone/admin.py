from django.contrib import admin

from .models import Carton


@admin.register(Carton)
class CartonAdmin(admin.ModelAdmin):
    list_display = ['carton_number', 'batch', 'work_order', 'quantity', 'heat_number', 'packed_by', 'packed_at']
    list_filter = ['packed_at']
    search_fields = ['carton_number', 'batch__batch_code', 'work_order__wo_number', 'heat_number']
    readonly_fields = ['carton_number', 'packed_at']
