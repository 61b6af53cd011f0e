from django.contrib import admin

from .models import QCMeasurement, QCRecord, ToleranceSpec


@admin.register(ToleranceSpec)
class ToleranceSpecAdmin(admin.ModelAdmin):
    list_display = ('item', 'dimension', 'nominal', 'lower_limit', 'upper_limit', 'unit', 'is_mandatory')
    list_filter = ('is_mandatory', 'unit')
    search_fields = ('item__item_code', 'dimension')


class QCMeasurementInline(admin.TabularInline):
    model = QCMeasurement
    extra = 0
    readonly_fields = ('dimension', 'nominal', 'lower_limit', 'upper_limit', 'measured_value',
                       'is_mandatory', 'within_tolerance')
    can_delete = False


@admin.register(QCRecord)
class QCRecordAdmin(admin.ModelAdmin):
    list_display = ('qc_id', 'qc_type', 'result', 'work_order', 'batch', 'material_lot',
                    'approved_qty', 'inspected_by', 'inspected_at')
    list_filter = ('qc_type', 'result', 'is_mandatory', 'inspected_at')
    search_fields = ('qc_id', 'work_order__wo_number', 'batch__batch_code', 'material_lot__lot_number',
                     'inspected_by__email')
    ordering = ('-inspected_at',)
    readonly_fields = ('qc_id',)
    inlines = [QCMeasurementInline]
