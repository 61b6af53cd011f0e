from django.contrib import admin

from .models import WorkflowNotification


@admin.register(WorkflowNotification)
class WorkflowNotificationAdmin(admin.ModelAdmin):
    list_display = ('title', 'notification_type', 'priority', 'recipient', 'entity_ref', 'is_read', 'created_at')
    list_filter = ('notification_type', 'priority', 'is_read', 'created_at')
    search_fields = ('title', 'message', 'entity_ref', 'recipient__email')
    ordering = ('-created_at',)
