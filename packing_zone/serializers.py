from rest_framework import serializers

from .models import Carton


class CartonSerializer(serializers.ModelSerializer):
    batch_code = serializers.CharField(source='batch.batch_code', read_only=True)
    wo_number = serializers.CharField(source='work_order.wo_number', read_only=True)
    packed_by_name = serializers.CharField(source='packed_by.display_name', read_only=True, default=None)

    class Meta:
        model = Carton
        fields = [
            'id', 'carton_number', 'batch', 'batch_code', 'work_order', 'wo_number',
            'quantity', 'heat_number', 'remarks', 'packed_by', 'packed_by_name', 'packed_at'
        ]
        read_only_fields = fields


class PackSerializer(serializers.Serializer):
    """Input for packing pieces of a batch into a carton"""
    batch = serializers.IntegerField()
    quantity = serializers.IntegerField()
    remarks = serializers.CharField(required=False, allow_blank=True, default='')
