"""
Production Batch models
"""
from django.conf import settings
from django.db import models
from django.utils import timezone

from utils.enums import (
    BatchLocationChoices,
    BatchStageChoices,
    BatchTriggerChoices,
    GateStatusChoices,
    ShiftChoices,
)


# production and external share a rank: a batch may go out and come back
# any number of times before QC
STAGE_RANK = {
    BatchStageChoices.CUTTING: 0,
    BatchStageChoices.PRODUCTION: 1,
    BatchStageChoices.EXTERNAL: 1,
    BatchStageChoices.QC: 2,
    BatchStageChoices.PACKING: 3,
    BatchStageChoices.DISPATCHED: 4,
}

PACKABLE_GATE_STATUSES = (GateStatusChoices.PASSED, GateStatusChoices.WAIVED)


class ProductionBatch(models.Model):
    """
    Production Batch - a traceable slice of a work order's quantity.

    A work order gets a new batch whenever production continuity breaks
    (completion, dispatch, long gap, manual end, material or shift change);
    ``previous_batch`` keeps the genealogy.
    """
    work_order = models.ForeignKey(
        'manufacturing.WorkOrder',
        on_delete=models.PROTECT,
        related_name='batches'
    )
    batch_number = models.PositiveIntegerField()
    batch_code = models.CharField(max_length=40, unique=True, editable=False)
    previous_batch = models.ForeignKey(
        'self',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='next_batches'
    )
    trigger_reason = models.CharField(
        max_length=20,
        choices=BatchTriggerChoices.choices,
        default=BatchTriggerChoices.INITIAL
    )
    material_lot = models.ForeignKey(
        'inventory.MaterialLot',
        on_delete=models.PROTECT,
        related_name='batches',
        null=True,
        blank=True
    )
    shift = models.CharField(max_length=10, choices=ShiftChoices.choices, null=True, blank=True)

    stage = models.CharField(
        max_length=20,
        choices=BatchStageChoices.choices,
        default=BatchStageChoices.CUTTING
    )
    location = models.CharField(
        max_length=20,
        choices=BatchLocationChoices.choices,
        default=BatchLocationChoices.FACTORY
    )

    planned_qty = models.PositiveIntegerField(default=0)
    produced_qty = models.PositiveIntegerField(default=0, help_text="All pieces made, scrap included")
    rejected_qty = models.PositiveIntegerField(default=0, help_text="Scrap, including partner rejections")
    qc_approved_qty = models.PositiveIntegerField(default=0)
    qc_rejected_qty = models.PositiveIntegerField(default=0)
    packed_qty = models.PositiveIntegerField(default=0)
    dispatched_qty = models.PositiveIntegerField(default=0)

    qc_final_status = models.CharField(
        max_length=20,
        choices=GateStatusChoices.choices,
        default=GateStatusChoices.PENDING
    )

    production_complete = models.BooleanField(default=False)
    production_complete_reason = models.TextField(blank=True)
    production_completed_at = models.DateTimeField(null=True, blank=True)

    dispatch_allowed = models.BooleanField(default=True)
    dispatch_block_reason = models.TextField(blank=True)

    started_at = models.DateTimeField(default=timezone.now)
    ended_at = models.DateTimeField(null=True, blank=True)
    end_reason = models.TextField(blank=True)
    last_activity_at = models.DateTimeField(default=timezone.now)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_batches'
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Production Batch'
        verbose_name_plural = 'Production Batches'
        ordering = ['work_order', 'batch_number']
        unique_together = ['work_order', 'batch_number']
        indexes = [
            models.Index(fields=['stage']),
        ]

    def __str__(self):
        return self.batch_code

    def save(self, *args, **kwargs):
        if not self.batch_code:
            self.batch_code = f"{self.work_order.wo_number}-B{self.batch_number:02d}"
        super().save(*args, **kwargs)

    @property
    def good_qty(self):
        return self.produced_qty - self.rejected_qty

    @property
    def available_for_packing(self):
        return max(min(self.qc_approved_qty, self.good_qty) - self.packed_qty, 0)

    @property
    def dispatchable_qty(self):
        return max(min(self.qc_approved_qty, self.packed_qty) - self.dispatched_qty, 0)

    @property
    def is_packable(self):
        return self.qc_final_status in PACKABLE_GATE_STATUSES and self.available_for_packing > 0

    @property
    def is_ended(self):
        return self.ended_at is not None

    @property
    def accepts_production(self):
        return not self.production_complete and not self.is_ended

    @property
    def stage_rank(self):
        return STAGE_RANK[self.stage]


class BatchStageHistory(models.Model):
    """Every stage move of a batch, including overrides"""
    batch = models.ForeignKey(ProductionBatch, on_delete=models.PROTECT, related_name='stage_history')
    from_stage = models.CharField(max_length=20, blank=True)
    to_stage = models.CharField(max_length=20)
    is_override = models.BooleanField(default=False)
    reason = models.TextField(blank=True)
    changed_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True)
    changed_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = 'Batch Stage History'
        verbose_name_plural = 'Batch Stage Histories'
        ordering = ['-changed_at', '-id']

    def __str__(self):
        return f"{self.batch.batch_code}: {self.from_stage} → {self.to_stage}"
