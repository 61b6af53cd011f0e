from rest_framework import serializers

from .models import DispatchAllocation, DispatchReversal


class DispatchReversalSerializer(serializers.ModelSerializer):
    class Meta:
        model = DispatchReversal
        fields = ['id', 'allocation', 'quantity', 'reason', 'reversed_by', 'reversed_at']
        read_only_fields = fields


class DispatchAllocationSerializer(serializers.ModelSerializer):
    batch_code = serializers.CharField(source='batch.batch_code', read_only=True)
    wo_number = serializers.CharField(source='work_order.wo_number', read_only=True)
    net_qty = serializers.IntegerField(read_only=True)
    reversals = DispatchReversalSerializer(many=True, read_only=True)

    class Meta:
        model = DispatchAllocation
        fields = [
            'id', 'dispatch_number', 'external_reference', 'batch', 'batch_code',
            'work_order', 'wo_number', 'quantity', 'reversed_qty', 'net_qty',
            'destination', 'customer_name', 'allocated_by', 'allocated_at', 'reversals'
        ]
        read_only_fields = fields


class AllocateSerializer(serializers.Serializer):
    batch = serializers.IntegerField()
    quantity = serializers.IntegerField()
    destination = serializers.CharField(max_length=200)
    reference = serializers.CharField(max_length=100)


class ReverseSerializer(serializers.Serializer):
    quantity = serializers.IntegerField()
    reason = serializers.CharField()


class ShortCloseSerializer(serializers.Serializer):
    work_order = serializers.IntegerField()
    reason = serializers.CharField()
