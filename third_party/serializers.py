"""
Serializers for third_party app models
"""

from rest_framework import serializers

from .models import Customer, ExternalPartner, Supplier


class SupplierSerializer(serializers.ModelSerializer):
    class Meta:
        model = Supplier
        fields = [
            'id', 'name', 'gst_no', 'address', 'contact_person', 'contact_no',
            'email', 'materials_supplied', 'is_active', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']


class CustomerSerializer(serializers.ModelSerializer):
    class Meta:
        model = Customer
        fields = [
            'id', 'c_id', 'name', 'gst_no', 'address', 'contact_person',
            'contact_no', 'email', 'notes', 'is_active', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'c_id', 'created_at', 'updated_at']

    def validate_gst_no(self, value):
        if value and len(value) != 15:
            raise serializers.ValidationError("GST number must be exactly 15 characters long.")
        return value.upper() if value else value


class ExternalPartnerSerializer(serializers.ModelSerializer):
    process_type_display = serializers.CharField(source='get_process_type_display', read_only=True)

    class Meta:
        model = ExternalPartner
        fields = [
            'id', 'name', 'process_type', 'process_type_display', 'default_turnaround_days',
            'gst_no', 'address', 'contact_person', 'contact_no', 'email',
            'is_active', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']
