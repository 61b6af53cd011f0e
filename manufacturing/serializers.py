from django.contrib.auth import get_user_model
from rest_framework import serializers

from products.models import Item
from third_party.models import Customer
from utils.enums import BatchStageChoices, ExternalMovementStatusChoices, WorkOrderStatusChoices

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

User = get_user_model()


class UserBasicSerializer(serializers.ModelSerializer):
    """Basic user serializer for nested relationships"""
    class Meta:
        model = User
        fields = ['id', 'email', 'first_name', 'last_name']
        read_only_fields = fields


class WorkOrderStatusHistorySerializer(serializers.ModelSerializer):
    changed_by = UserBasicSerializer(read_only=True)

    class Meta:
        model = WorkOrderStatusHistory
        fields = ['id', 'from_status', 'to_status', 'is_override', 'reason', 'changed_by', 'changed_at']
        read_only_fields = fields


class BatchStageHistorySerializer(serializers.ModelSerializer):
    class Meta:
        model = BatchStageHistory
        fields = ['id', 'from_stage', 'to_stage', 'is_override', 'reason', 'changed_by', 'changed_at']
        read_only_fields = fields


class ShortCloseRecordSerializer(serializers.ModelSerializer):
    wo_number = serializers.CharField(source='work_order.wo_number', read_only=True)

    class Meta:
        model = ShortClose
        fields = [
            'id', 'work_order', 'wo_number', 'quantity_ordered', 'quantity_packed',
            'shortfall_qty', 'reason', 'closed_by', 'closed_at'
        ]
        read_only_fields = fields


class ActivityLogSerializer(serializers.ModelSerializer):
    activity_type_display = serializers.CharField(source='get_activity_type_display', read_only=True)
    batch_code = serializers.CharField(source='batch.batch_code', read_only=True, default=None)

    class Meta:
        model = ActivityLog
        fields = [
            'id', 'work_order', 'batch', 'batch_code', 'activity_type', 'activity_type_display',
            'performed_by', 'performed_at', 'reason', 'metadata'
        ]
        read_only_fields = fields


class ProductionBatchSerializer(serializers.ModelSerializer):
    wo_number = serializers.CharField(source='work_order.wo_number', read_only=True)
    stage_display = serializers.CharField(source='get_stage_display', read_only=True)
    heat_number = serializers.CharField(source='material_lot.heat_number', read_only=True, default=None)
    good_qty = serializers.IntegerField(read_only=True)
    available_for_packing = serializers.IntegerField(read_only=True)
    dispatchable_qty = serializers.IntegerField(read_only=True)

    class Meta:
        model = ProductionBatch
        fields = [
            'id', 'batch_code', 'batch_number', 'work_order', 'wo_number', 'previous_batch',
            'trigger_reason', 'material_lot', 'heat_number', 'shift', 'stage', 'stage_display', 'location',
            'planned_qty', 'produced_qty', 'rejected_qty', 'good_qty', 'qc_approved_qty', 'qc_rejected_qty',
            'packed_qty', 'dispatched_qty', 'available_for_packing', 'dispatchable_qty',
            'qc_final_status', 'production_complete', 'production_complete_reason', 'production_completed_at',
            'dispatch_allowed', 'dispatch_block_reason', 'started_at', 'ended_at', 'end_reason',
            'last_activity_at'
        ]
        read_only_fields = fields


class ProductionBatchDetailSerializer(ProductionBatchSerializer):
    stage_history = BatchStageHistorySerializer(many=True, read_only=True)

    class Meta(ProductionBatchSerializer.Meta):
        fields = ProductionBatchSerializer.Meta.fields + ['stage_history']
        read_only_fields = fields


class WorkOrderListSerializer(serializers.ModelSerializer):
    item_code = serializers.CharField(source='item.item_code', read_only=True)
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    current_stage_display = serializers.CharField(source='get_current_stage_display', read_only=True)

    class Meta:
        model = WorkOrder
        fields = [
            'id', 'wo_number', 'item', 'item_code', 'customer', 'customer_name',
            'sales_order_no', 'sales_order_line', 'due_date', 'quantity_ordered',
            'status', 'status_display', 'current_stage', 'current_stage_display',
            'quantity_produced', 'quantity_qc_approved', 'quantity_packed', 'quantity_dispatched',
            'created_at'
        ]
        read_only_fields = fields


class WorkOrderDetailSerializer(WorkOrderListSerializer):
    batches = ProductionBatchSerializer(many=True, read_only=True)
    status_history = WorkOrderStatusHistorySerializer(many=True, read_only=True)
    created_by = UserBasicSerializer(read_only=True)

    class Meta(WorkOrderListSerializer.Meta):
        fields = WorkOrderListSerializer.Meta.fields + [
            'authorized_overage_qty', 'authorized_shortfall_qty',
            'qc_material_status', 'qc_first_piece_status', 'qc_final_status',
            'production_complete', 'production_complete_qty', 'production_completed_at',
            'quantity_rejected', 'qty_external_wip', 'dispatch_allowed',
            'started_at', 'completed_at', 'shipped_at', 'created_by',
            'batches', 'status_history'
        ]
        read_only_fields = fields


class WorkOrderCreateSerializer(serializers.Serializer):
    item = serializers.PrimaryKeyRelatedField(queryset=Item.objects.all())
    quantity = serializers.IntegerField(min_value=1)
    customer = serializers.PrimaryKeyRelatedField(queryset=Customer.objects.all(), required=False, allow_null=True)
    sales_order_no = serializers.CharField(required=False, allow_blank=True, default='')
    sales_order_line = serializers.IntegerField(required=False, allow_null=True)
    authorized_overage_qty = serializers.IntegerField(required=False, min_value=0, default=0)
    due_date = serializers.DateField(required=False, allow_null=True)


class TransitionSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=WorkOrderStatusChoices.choices)
    override = serializers.BooleanField(required=False, default=False)
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class OverageSerializer(serializers.Serializer):
    quantity = serializers.IntegerField()
    reason = serializers.CharField()


class OpenBatchSerializer(serializers.Serializer):
    work_order = serializers.IntegerField()
    material_lot = serializers.IntegerField(required=False, allow_null=True)
    shift = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    gap_threshold_days = serializers.IntegerField(required=False, allow_null=True, min_value=0)


class RecordProductionSerializer(serializers.Serializer):
    qty_ok = serializers.IntegerField()
    qty_scrap = serializers.IntegerField(required=False, default=0)


class ReasonSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class AdvanceStageSerializer(serializers.Serializer):
    stage = serializers.ChoiceField(choices=BatchStageChoices.choices)
    override = serializers.BooleanField(required=False, default=False)
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class ExternalReceiptSerializer(serializers.ModelSerializer):
    class Meta:
        model = ExternalReceipt
        fields = ['id', 'quantity_returned', 'quantity_rejected', 'received_by', 'received_at', 'remarks']
        read_only_fields = fields


class ExternalMovementSerializer(serializers.ModelSerializer):
    batch_code = serializers.CharField(source='batch.batch_code', read_only=True)
    wo_number = serializers.CharField(source='work_order.wo_number', read_only=True)
    outstanding_qty = serializers.IntegerField(read_only=True)
    days_overdue = serializers.SerializerMethodField()
    receipts = ExternalReceiptSerializer(many=True, read_only=True)

    class Meta:
        model = ExternalMovement
        fields = [
            'id', 'challan_no', 'work_order', 'wo_number', 'batch', 'batch_code',
            'partner', 'partner_name', 'process_step', 'quantity_sent', 'quantity_returned',
            'quantity_rejected', 'quantity_forwarded', 'outstanding_qty', 'status',
            'expected_return_date', 'days_overdue', 'forwarded_from', 'sent_at', 'sent_by',
            'last_received_at', 'receipts'
        ]
        read_only_fields = fields

    def get_days_overdue(self, obj):
        return obj.days_overdue() if obj.is_open else 0


class SendOutSerializer(serializers.Serializer):
    batch = serializers.IntegerField()
    partner = serializers.IntegerField()
    quantity = serializers.IntegerField()
    expected_return_date = serializers.DateField(required=False, allow_null=True)
    process_step = serializers.CharField(required=False, allow_blank=True, default='')


class TransitSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[
        ExternalMovementStatusChoices.IN_TRANSIT, ExternalMovementStatusChoices.AT_PARTNER
    ])


class ReceiveReturnSerializer(serializers.Serializer):
    quantity_returned = serializers.IntegerField(required=False, default=0)
    quantity_rejected = serializers.IntegerField(required=False, default=0)
    remarks = serializers.CharField(required=False, allow_blank=True, default='')


class ForwardSerializer(serializers.Serializer):
    partner = serializers.IntegerField()
    expected_return_date = serializers.DateField(required=False, allow_null=True)
    process_step = serializers.CharField(required=False, allow_blank=True, default='')
