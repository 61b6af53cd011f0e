from django.contrib import admin

from .models import DocumentSequence


@admin.register(DocumentSequence)
class DocumentSequenceAdmin(admin.ModelAdmin):
    list_display = ('prefix', 'last_value', 'updated_at')
    readonly_fields = ('prefix', 'last_value', 'updated_at')
