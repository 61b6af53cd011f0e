from rest_framework import serializers

from utils.enums import QCTypeChoices

from .models import QCMeasurement, QCRecord, ToleranceSpec


class ToleranceSpecSerializer(serializers.ModelSerializer):
    item_code = serializers.CharField(source='item.item_code', read_only=True)

    class Meta:
        model = ToleranceSpec
        fields = ['id', 'item', 'item_code', 'dimension', 'nominal', 'lower_limit', 'upper_limit', 'unit', 'is_mandatory']

    def validate(self, attrs):
        lower = attrs.get('lower_limit', getattr(self.instance, 'lower_limit', None))
        upper = attrs.get('upper_limit', getattr(self.instance, 'upper_limit', None))
        if lower is not None and upper is not None and lower > upper:
            raise serializers.ValidationError("Lower limit cannot be above upper limit")
        return attrs


class QCMeasurementSerializer(serializers.ModelSerializer):
    class Meta:
        model = QCMeasurement
        fields = ['id', 'dimension', 'nominal', 'lower_limit', 'upper_limit', 'measured_value',
                  'is_mandatory', 'within_tolerance']
        read_only_fields = fields


class QCRecordSerializer(serializers.ModelSerializer):
    qc_type_display = serializers.CharField(source='get_qc_type_display', read_only=True)
    wo_number = serializers.CharField(source='work_order.wo_number', read_only=True, default=None)
    batch_code = serializers.CharField(source='batch.batch_code', read_only=True, default=None)
    lot_number = serializers.CharField(source='material_lot.lot_number', read_only=True, default=None)
    measurements = QCMeasurementSerializer(many=True, read_only=True)

    class Meta:
        model = QCRecord
        fields = [
            'id', 'qc_id', 'qc_type', 'qc_type_display', 'result', 'is_mandatory',
            'work_order', 'wo_number', 'batch', 'batch_code', 'material_lot', 'lot_number',
            'inspected_qty', 'approved_qty', 'rejected_qty', 'waiver_reason', 'waived_by',
            'disposition', 'inspected_by', 'inspected_at', 'remarks', 'measurements'
        ]
        read_only_fields = fields


class MeasurementInputSerializer(serializers.Serializer):
    dimension = serializers.CharField(max_length=100)
    measured_value = serializers.DecimalField(max_digits=12, decimal_places=4)
    nominal = serializers.DecimalField(max_digits=12, decimal_places=4, required=False, allow_null=True)
    lower_limit = serializers.DecimalField(max_digits=12, decimal_places=4, required=False, allow_null=True)
    upper_limit = serializers.DecimalField(max_digits=12, decimal_places=4, required=False, allow_null=True)
    is_mandatory = serializers.BooleanField(required=False, allow_null=True, default=None)


class RecordResultSerializer(serializers.Serializer):
    qc_type = serializers.ChoiceField(choices=QCTypeChoices.choices)
    result = serializers.CharField(required=False, allow_null=True, default=None)
    work_order = serializers.IntegerField(required=False, allow_null=True)
    batch = serializers.IntegerField(required=False, allow_null=True)
    material_lot = serializers.IntegerField(required=False, allow_null=True)
    measurements = MeasurementInputSerializer(many=True, required=False, default=list)
    waiver_reason = serializers.CharField(required=False, allow_blank=True, default='')
    approved_qty = serializers.IntegerField(required=False, default=0)
    rejected_qty = serializers.IntegerField(required=False, default=0)
    inspected_qty = serializers.IntegerField(required=False, default=0)
    is_mandatory = serializers.BooleanField(required=False, default=True)
    disposition = serializers.CharField(required=False, allow_blank=True, default='')
    remarks = serializers.CharField(required=False, allow_blank=True, default='')
