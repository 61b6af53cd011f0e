from django.contrib import admin

from .models import DispatchAllocation, DispatchReversal


class DispatchReversalInline(admin.TabularInline):
    model = DispatchReversal
    extra = 0
    readonly_fields = ['quantity', 'reason', 'reversed_by', 'reversed_at']
    can_delete = False


@admin.register(DispatchAllocation)
class DispatchAllocationAdmin(admin.ModelAdmin):
    list_display = [
        'dispatch_number', 'external_reference', 'work_order', 'batch', 'quantity',
        'reversed_qty', 'destination', 'allocated_by', 'allocated_at'
    ]
    list_filter = ['allocated_at']
    search_fields = ['dispatch_number', 'external_reference', 'work_order__wo_number', 'batch__batch_code']
    readonly_fields = ['dispatch_number', 'allocated_at', 'reversed_qty']
    inlines = [DispatchReversalInline]


@admin.register(DispatchReversal)
class DispatchReversalAdmin(admin.ModelAdmin):
    list_display = ['allocation', 'quantity', 'reason', 'reversed_by', 'reversed_at']
    search_fields = ['allocation__dispatch_number', 'reason']
    readonly_fields = ['reversed_at']
