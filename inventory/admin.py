from django.contrib import admin

from .models import MaterialIssue, MaterialLot


class MaterialIssueInline(admin.TabularInline):
    model = MaterialIssue
    extra = 0
    readonly_fields = ['work_order', 'batch', 'quantity_kg', 'issued_by', 'issued_at', 'remarks']
    can_delete = False


@admin.register(MaterialLot)
class MaterialLotAdmin(admin.ModelAdmin):
    list_display = [
        'lot_number', 'heat_number', 'alloy', 'grade', 'net_weight_kg', 'supplier',
        'status', 'qc_status', 'received_at'
    ]
    list_filter = ['status', 'qc_status', 'alloy', 'received_at']
    search_fields = ['lot_number', 'heat_number', 'alloy', 'quality_certificate_number']
    readonly_fields = ['lot_number', 'qc_status', 'qc_status_at', 'updated_at']
    inlines = [MaterialIssueInline]


@admin.register(MaterialIssue)
class MaterialIssueAdmin(admin.ModelAdmin):
    list_display = ['lot', 'work_order', 'batch', 'quantity_kg', 'issued_by', 'issued_at']
    list_filter = ['issued_at']
    search_fields = ['lot__lot_number', 'lot__heat_number', 'work_order__wo_number']
