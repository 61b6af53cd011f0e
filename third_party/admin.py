from django.contrib import admin

from .models import Customer, ExternalPartner, Supplier


@admin.register(Supplier)
class SupplierAdmin(admin.ModelAdmin):
    list_display = ['name', 'gst_no', 'contact_person', 'contact_no', 'is_active']
    list_filter = ['is_active']
    search_fields = ['name', 'gst_no', 'contact_person', 'materials_supplied']
    readonly_fields = ['created_at', 'updated_at']


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ['c_id', 'name', 'gst_no', 'contact_person', 'is_active']
    list_filter = ['is_active']
    search_fields = ['c_id', 'name', 'gst_no']
    readonly_fields = ['c_id', 'created_at', 'updated_at']


@admin.register(ExternalPartner)
class ExternalPartnerAdmin(admin.ModelAdmin):
    list_display = ['name', 'process_type', 'default_turnaround_days', 'contact_no', 'is_active']
    list_filter = ['process_type', 'is_active']
    search_fields = ['name', 'gst_no', 'contact_person']
    readonly_fields = ['created_at', 'updated_at']
