from rest_framework import serializers

from .models import Item


class ItemSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source='customer.name', read_only=True, default=None)

    class Meta:
        model = Item
        fields = [
            'id', 'item_code', 'description', 'drawing_no', 'revision', 'alloy',
            'weight_per_piece_g', 'customer', 'customer_name',
            'requires_external_processing', 'is_active', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']
