"""
Audit log for corrections, waivers, overrides and other attributed actions
"""
from django.conf import settings
from django.db import models

from utils.enums import ActivityTypeChoices


class ActivityLog(models.Model):
    work_order = models.ForeignKey(
        'manufacturing.WorkOrder',
        on_delete=models.PROTECT,
        related_name='activity_logs'
    )
    batch = models.ForeignKey(
        'manufacturing.ProductionBatch',
        on_delete=models.PROTECT,
        related_name='activity_logs',
        null=True,
        blank=True
    )
    activity_type = models.CharField(max_length=30, choices=ActivityTypeChoices.choices)
    performed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name='erp_activities'
    )
    performed_at = models.DateTimeField(auto_now_add=True)
    reason = models.TextField(blank=True)
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ['-performed_at', '-id']
        indexes = [
            models.Index(fields=['work_order', '-performed_at']),
            models.Index(fields=['batch', '-performed_at']),
            models.Index(fields=['activity_type', '-performed_at']),
        ]

    def __str__(self):
        target = self.batch.batch_code if self.batch else self.work_order.wo_number
        return f"{target} - {self.get_activity_type_display()}"

    @classmethod
    def log(cls, work_order, activity_type, user, batch=None, reason='', **metadata):
        return cls.objects.create(
            work_order=work_order,
            batch=batch,
            activity_type=activity_type,
            performed_by=user,
            reason=reason,
            metadata=metadata,
        )
