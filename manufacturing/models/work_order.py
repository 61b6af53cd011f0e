"""
Work Order models
"""
from django.conf import settings
from django.db import models
from django.db.models import F, Q, Sum
from django.db.models.functions import Coalesce

from utils.enums import (
    BatchStageChoices,
    GateStatusChoices,
    WorkOrderStageChoices,
    WorkOrderStatusChoices,
)
from utils.exceptions import PreconditionFailed
from utils.models import DocumentNumberedModel


DISPATCH_ALLOWED_STATUSES = (
    WorkOrderStatusChoices.PACKING,
    WorkOrderStatusChoices.COMPLETED,
    WorkOrderStatusChoices.SHIPPED,
)

BATCH_TO_WO_STAGE = {
    BatchStageChoices.CUTTING: WorkOrderStageChoices.CUTTING,
    BatchStageChoices.PRODUCTION: WorkOrderStageChoices.PRODUCTION,
    BatchStageChoices.EXTERNAL: WorkOrderStageChoices.EXTERNAL,
    BatchStageChoices.QC: WorkOrderStageChoices.QC,
    BatchStageChoices.PACKING: WorkOrderStageChoices.PACKING,
    BatchStageChoices.DISPATCHED: WorkOrderStageChoices.DISPATCH,
}


class WorkOrder(DocumentNumberedModel):
    """
    Work Order (WO) - production order for one sales order line.

    ``status`` is authoritative; ``current_stage`` is derived from it and from
    the open batches by ``sync_stage()``.
    """
    document_number_field = 'wo_number'

    wo_number = models.CharField(max_length=20, unique=True, editable=False)

    item = models.ForeignKey('products.Item', on_delete=models.PROTECT, related_name='work_orders')
    customer = models.ForeignKey(
        'third_party.Customer',
        on_delete=models.PROTECT,
        related_name='work_orders',
        null=True,
        blank=True
    )
    customer_name = models.CharField(max_length=200, blank=True, help_text="Snapshot at creation")
    sales_order_no = models.CharField(max_length=50, blank=True)
    sales_order_line = models.PositiveIntegerField(null=True, blank=True)
    due_date = models.DateField(null=True, blank=True)

    quantity_ordered = models.PositiveIntegerField()
    authorized_overage_qty = models.PositiveIntegerField(default=0)
    authorized_shortfall_qty = models.PositiveIntegerField(default=0)

    status = models.CharField(
        max_length=20,
        choices=WorkOrderStatusChoices.choices,
        default=WorkOrderStatusChoices.PENDING
    )
    current_stage = models.CharField(
        max_length=20,
        choices=WorkOrderStageChoices.choices,
        default=WorkOrderStageChoices.GOODS_IN
    )

    # Gate caches, written by the quality gate only
    qc_material_status = models.CharField(
        max_length=20, choices=GateStatusChoices.choices, default=GateStatusChoices.PENDING
    )
    qc_material_status_at = models.DateTimeField(null=True, blank=True)
    qc_first_piece_status = models.CharField(
        max_length=20, choices=GateStatusChoices.choices, default=GateStatusChoices.PENDING
    )
    qc_first_piece_status_at = models.DateTimeField(null=True, blank=True)
    qc_final_status = models.CharField(
        max_length=20, choices=GateStatusChoices.choices, default=GateStatusChoices.PENDING
    )
    qc_final_status_at = models.DateTimeField(null=True, blank=True)

    # Production complete
    production_complete = models.BooleanField(default=False)
    production_complete_qty = models.PositiveIntegerField(null=True, blank=True)
    production_complete_reason = models.TextField(blank=True)
    production_completed_at = models.DateTimeField(null=True, blank=True)
    production_completed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='production_completed_work_orders'
    )

    # Aggregates recomputed from batches by refresh_quantities()
    quantity_produced = models.PositiveIntegerField(default=0, help_text="Good pieces")
    quantity_rejected = models.PositiveIntegerField(default=0)
    quantity_qc_approved = models.PositiveIntegerField(default=0)
    quantity_packed = models.PositiveIntegerField(default=0)
    quantity_dispatched = models.PositiveIntegerField(default=0)
    qty_external_wip = models.PositiveIntegerField(default=0)

    started_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    shipped_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name='created_work_orders'
    )

    class Meta:
        verbose_name = 'Work Order'
        verbose_name_plural = 'Work Orders'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status']),
            models.Index(fields=['sales_order_no', 'sales_order_line']),
        ]

    def __str__(self):
        return f"{self.wo_number} - {self.item} (Qty: {self.quantity_ordered})"

    def get_document_prefix(self):
        return 'WO'

    @property
    def dispatch_allowed(self):
        return self.status in DISPATCH_ALLOWED_STATUSES

    @property
    def max_producible_qty(self):
        return self.quantity_ordered + self.authorized_overage_qty

    @property
    def remaining_to_produce(self):
        return max(self.max_producible_qty - self.quantity_produced, 0)

    @property
    def required_packed_qty(self):
        return max(self.quantity_ordered - self.authorized_shortfall_qty, 0)

    def refresh_quantities(self, save=True):
        """Recompute aggregate quantities from batches and external movements"""
        from manufacturing.models.external import ExternalMovement, outstanding_expression

        totals = self.batches.aggregate(
            produced=Coalesce(Sum('produced_qty'), 0),
            rejected=Coalesce(Sum('rejected_qty'), 0),
            approved=Coalesce(Sum('qc_approved_qty'), 0),
            packed=Coalesce(Sum('packed_qty'), 0),
            dispatched=Coalesce(Sum('dispatched_qty'), 0),
        )
        wip = ExternalMovement.objects.filter(work_order=self).aggregate(
            total=Coalesce(Sum(outstanding_expression()), 0)
        )['total']

        self.quantity_produced = totals['produced'] - totals['rejected']
        self.quantity_rejected = totals['rejected']
        self.quantity_qc_approved = totals['approved']
        self.quantity_packed = totals['packed']
        self.quantity_dispatched = totals['dispatched']
        self.qty_external_wip = wip

        if save:
            self.save(update_fields=[
                'quantity_produced', 'quantity_rejected', 'quantity_qc_approved',
                'quantity_packed', 'quantity_dispatched', 'qty_external_wip', 'updated_at'
            ])

    def quantity_violations(self):
        """dispatched <= packed <= qc_approved <= produced <= ordered + overage"""
        chain = [
            ('dispatched', self.quantity_dispatched),
            ('packed', self.quantity_packed),
            ('qc_approved', self.quantity_qc_approved),
            ('produced', self.quantity_produced),
            ('ordered + overage', self.max_producible_qty),
        ]
        violations = []
        for (lower_name, lower), (upper_name, upper) in zip(chain, chain[1:]):
            if lower > upper:
                violations.append(f"{lower_name} ({lower}) exceeds {upper_name} ({upper})")
        return violations

    def assert_quantities(self):
        violations = self.quantity_violations()
        if violations:
            raise PreconditionFailed('quantity_invariant', [f"{self.wo_number}: {v}" for v in violations])

    def derive_stage(self):
        status = self.status
        if status == WorkOrderStatusChoices.PENDING:
            return WorkOrderStageChoices.GOODS_IN
        if status == WorkOrderStatusChoices.QC:
            return WorkOrderStageChoices.QC
        if status in (WorkOrderStatusChoices.PACKING, WorkOrderStatusChoices.COMPLETED):
            return WorkOrderStageChoices.PACKING
        if status == WorkOrderStatusChoices.SHIPPED:
            return WorkOrderStageChoices.DISPATCH

        # in progress: least advanced batch still holding or expecting pieces
        from manufacturing.models.batch import STAGE_RANK

        open_stages = list(
            self.batches.exclude(stage=BatchStageChoices.DISPATCHED)
            .exclude(ended_at__isnull=False, produced_qty=0)
            .values_list('stage', flat=True)
        )
        if not open_stages:
            return WorkOrderStageChoices.PRODUCTION
        stage = min(open_stages, key=lambda s: STAGE_RANK[s])
        return BATCH_TO_WO_STAGE[stage]

    def sync_stage(self):
        stage = self.derive_stage()
        if stage != self.current_stage:
            self.current_stage = stage
            self.save(update_fields=['current_stage', 'updated_at'])
        return stage

    def live_allocations(self):
        return self.dispatch_allocations.filter(reversed_qty__lt=F('quantity'))

    def open_batches(self):
        return self.batches.filter(Q(production_complete=False) & Q(ended_at__isnull=True))


class WorkOrderStatusHistory(models.Model):
    """Every status change of a work order, including overrides"""
    work_order = models.ForeignKey(WorkOrder, on_delete=models.PROTECT, related_name='status_history')
    from_status = models.CharField(max_length=20, blank=True)
    to_status = models.CharField(max_length=20)
    is_override = models.BooleanField(default=False)
    reason = models.TextField(blank=True)
    changed_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True)
    changed_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = 'Work Order Status History'
        verbose_name_plural = 'Work Order Status Histories'
        ordering = ['-changed_at', '-id']

    def __str__(self):
        return f"{self.work_order.wo_number}: {self.from_status} → {self.to_status}"


class ShortClose(models.Model):
    """Authorized closure of a work order below its ordered quantity"""
    work_order = models.ForeignKey(WorkOrder, on_delete=models.PROTECT, related_name='short_closes')
    quantity_ordered = models.PositiveIntegerField()
    quantity_packed = models.PositiveIntegerField()
    shortfall_qty = models.PositiveIntegerField()
    reason = models.TextField()
    closed_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True)
    closed_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = 'Short Close'
        verbose_name_plural = 'Short Closes'
        ordering = ['-closed_at']

    def __str__(self):
        return f"{self.work_order.wo_number} short closed by {self.shortfall_qty}"
