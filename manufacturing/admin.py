from django.contrib import admin

from .models import (
    ActivityLog,
    BatchStageHistory,
    ExternalMovement,
    ExternalReceipt,
    ProductionBatch,
    ShortClose,
    WorkOrder,
    WorkOrderStatusHistory,
)


class WorkOrderStatusHistoryInline(admin.TabularInline):
    model = WorkOrderStatusHistory
    extra = 0
    readonly_fields = ['from_status', 'to_status', 'is_override', 'reason', 'changed_by', 'changed_at']
    can_delete = False


class ProductionBatchInline(admin.TabularInline):
    model = ProductionBatch
    extra = 0
    fields = ['batch_code', 'stage', 'produced_qty', 'rejected_qty', 'qc_approved_qty', 'packed_qty', 'dispatched_qty']
    readonly_fields = fields
    can_delete = False
    show_change_link = True


@admin.register(WorkOrder)
class WorkOrderAdmin(admin.ModelAdmin):
    list_display = [
        'wo_number', 'item', 'customer_name', 'quantity_ordered', 'status', 'current_stage',
        'quantity_produced', 'quantity_packed', 'quantity_dispatched', 'created_at'
    ]
    list_filter = ['status', 'current_stage', 'created_at']
    search_fields = ['wo_number', 'item__item_code', 'sales_order_no', 'customer_name']
    readonly_fields = [
        'wo_number', 'current_stage', 'quantity_produced', 'quantity_rejected', 'quantity_qc_approved',
        'quantity_packed', 'quantity_dispatched', 'qty_external_wip', 'created_at', 'updated_at'
    ]
    inlines = [ProductionBatchInline, WorkOrderStatusHistoryInline]


class BatchStageHistoryInline(admin.TabularInline):
    model = BatchStageHistory
    extra = 0
    readonly_fields = ['from_stage', 'to_stage', 'is_override', 'reason', 'changed_by', 'changed_at']
    can_delete = False


@admin.register(ProductionBatch)
class ProductionBatchAdmin(admin.ModelAdmin):
    list_display = [
        'batch_code', 'work_order', 'trigger_reason', 'stage', 'location', 'produced_qty',
        'rejected_qty', 'qc_approved_qty', 'packed_qty', 'dispatched_qty', 'production_complete'
    ]
    list_filter = ['stage', 'location', 'trigger_reason', 'production_complete', 'dispatch_allowed']
    search_fields = ['batch_code', 'work_order__wo_number']
    readonly_fields = ['batch_code', 'updated_at']
    inlines = [BatchStageHistoryInline]


class ExternalReceiptInline(admin.TabularInline):
    model = ExternalReceipt
    extra = 0
    readonly_fields = ['quantity_returned', 'quantity_rejected', 'received_by', 'received_at', 'remarks']
    can_delete = False


@admin.register(ExternalMovement)
class ExternalMovementAdmin(admin.ModelAdmin):
    list_display = [
        'challan_no', 'batch', 'partner_name', 'quantity_sent', 'quantity_returned',
        'quantity_rejected', 'quantity_forwarded', 'status', 'expected_return_date'
    ]
    list_filter = ['status', 'expected_return_date']
    search_fields = ['challan_no', 'partner_name', 'batch__batch_code']
    readonly_fields = ['challan_no', 'updated_at']
    inlines = [ExternalReceiptInline]


@admin.register(ShortClose)
class ShortCloseAdmin(admin.ModelAdmin):
    list_display = ['work_order', 'quantity_ordered', 'quantity_packed', 'shortfall_qty', 'closed_by', 'closed_at']
    search_fields = ['work_order__wo_number', 'reason']


@admin.register(ActivityLog)
class ActivityLogAdmin(admin.ModelAdmin):
    list_display = ['work_order', 'batch', 'activity_type', 'performed_by', 'performed_at']
    list_filter = ['activity_type', 'performed_at']
    search_fields = ['work_order__wo_number', 'batch__batch_code', 'reason']
    readonly_fields = ['metadata', 'performed_at']
