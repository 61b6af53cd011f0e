from rest_framework import serializers

from .models import MaterialIssue, MaterialLot


class MaterialIssueSerializer(serializers.ModelSerializer):
    lot_number = serializers.CharField(source='lot.lot_number', read_only=True)
    heat_number = serializers.CharField(source='lot.heat_number', read_only=True)
    wo_number = serializers.CharField(source='work_order.wo_number', read_only=True)
    batch_code = serializers.CharField(source='batch.batch_code', read_only=True, default=None)

    class Meta:
        model = MaterialIssue
        fields = [
            'id', 'lot', 'lot_number', 'heat_number', 'work_order', 'wo_number',
            'batch', 'batch_code', 'quantity_kg', 'issued_by', 'issued_at', 'remarks'
        ]
        read_only_fields = fields


class MaterialLotSerializer(serializers.ModelSerializer):
    supplier_name = serializers.CharField(source='supplier.name', read_only=True, default=None)
    status_display = serializers.CharField(source='get_status_display', read_only=True)
    issued_kg = serializers.DecimalField(max_digits=12, decimal_places=3, read_only=True)
    available_kg = serializers.DecimalField(max_digits=12, decimal_places=3, read_only=True)

    class Meta:
        model = MaterialLot
        fields = [
            'id', 'lot_number', 'heat_number', 'alloy', 'grade', 'gross_weight_kg', 'net_weight_kg',
            'issued_kg', 'available_kg', 'supplier', 'supplier_name', 'quality_certificate_number',
            'status', 'status_display', 'qc_status', 'qc_status_at', 'received_at', 'received_by', 'remarks'
        ]
        read_only_fields = fields


class ReceiveLotSerializer(serializers.Serializer):
    heat_number = serializers.CharField(max_length=50)
    alloy = serializers.CharField(max_length=60)
    grade = serializers.CharField(max_length=60, required=False, allow_blank=True, default='')
    gross_weight_kg = serializers.DecimalField(max_digits=12, decimal_places=3)
    net_weight_kg = serializers.DecimalField(max_digits=12, decimal_places=3)
    supplier = serializers.IntegerField(required=False, allow_null=True)
    quality_certificate_number = serializers.CharField(required=False, allow_blank=True, default='')
    remarks = serializers.CharField(required=False, allow_blank=True, default='')


class IssueSerializer(serializers.Serializer):
    work_order = serializers.IntegerField()
    quantity_kg = serializers.DecimalField(max_digits=12, decimal_places=3)
    batch = serializers.IntegerField(required=False, allow_null=True)
    remarks = serializers.CharField(required=False, allow_blank=True, default='')
