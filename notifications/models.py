from django.conf import settings
from django.db import models

from utils.enums import NotificationTypeChoices, PriorityChoices


class WorkflowNotification(models.Model):
    """
    In-app notification for a user, raised by production and quality events
    """
    notification_type = models.CharField(
        max_length=30,
        choices=NotificationTypeChoices.choices,
        default=NotificationTypeChoices.GENERAL
    )
    title = models.CharField(max_length=200)
    message = models.TextField()
    priority = models.CharField(max_length=10, choices=PriorityChoices.choices, default=PriorityChoices.MEDIUM)

    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='workflow_notifications'
    )

    # "WO-000012", "WO-000012-B02", "EXT-000004" ...
    entity_ref = models.CharField(max_length=60, blank=True)
    related_work_order = models.ForeignKey(
        'manufacturing.WorkOrder',
        on_delete=models.SET_NULL,
        null=True, blank=True,
        related_name='notifications'
    )
    related_batch = models.ForeignKey(
        'manufacturing.ProductionBatch',
        on_delete=models.SET_NULL,
        null=True, blank=True,
        related_name='notifications'
    )

    is_read = models.BooleanField(default=False)
    read_at = models.DateTimeField(null=True, blank=True)

    action_required = models.BooleanField(default=False)
    action_taken = models.BooleanField(default=False)
    action_taken_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL, null=True, blank=True,
        related_name='created_workflow_notifications'
    )

    class Meta:
        verbose_name = 'Workflow Notification'
        verbose_name_plural = 'Workflow Notifications'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['recipient', 'is_read']),
            models.Index(fields=['notification_type']),
            models.Index(fields=['created_at']),
        ]

    def __str__(self):
        return f"{self.get_notification_type_display()} - {self.recipient.email}"
