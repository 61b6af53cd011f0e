from django.conf import settings
from django.db import models

from utils.models import DocumentNumberedModel


class DispatchAllocation(DocumentNumberedModel):
    """
    Dispatch Allocation - packed, QC-approved pieces of one batch committed to
    a shipment. ``external_reference`` is the caller's idempotency key.
    Allocations are never deleted; corrections go through DispatchReversal.
    """
    document_number_field = 'dispatch_number'

    dispatch_number = models.CharField(max_length=20, unique=True, editable=False)
    external_reference = models.CharField(max_length=100, unique=True)

    batch = models.ForeignKey(
        'manufacturing.ProductionBatch',
        on_delete=models.PROTECT,
        related_name='dispatch_allocations'
    )
    work_order = models.ForeignKey(
        'manufacturing.WorkOrder',
        on_delete=models.PROTECT,
        related_name='dispatch_allocations'
    )
    quantity = models.PositiveIntegerField()
    reversed_qty = models.PositiveIntegerField(default=0)
    destination = models.CharField(max_length=200)
    customer_name = models.CharField(max_length=200, blank=True, help_text="Snapshot at allocation")

    allocated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name='dispatch_allocations'
    )
    allocated_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = 'Dispatch Allocation'
        verbose_name_plural = 'Dispatch Allocations'
        ordering = ['-allocated_at', '-id']
        indexes = [
            models.Index(fields=['work_order', '-allocated_at']),
        ]

    def __str__(self):
        return f"{self.dispatch_number} - {self.batch.batch_code} ({self.net_qty} pcs)"

    def get_document_prefix(self):
        return 'DN'

    @property
    def net_qty(self):
        return self.quantity - self.reversed_qty

    @property
    def is_live(self):
        return self.net_qty > 0

    def matches(self, batch_id, quantity, destination):
        """True when a replayed request carries the same payload"""
        return (
            self.batch_id == batch_id
            and self.quantity == quantity
            and self.destination == destination
        )


class DispatchReversal(models.Model):
    """Compensating record for (part of) a dispatch allocation"""
    allocation = models.ForeignKey(DispatchAllocation, on_delete=models.PROTECT, related_name='reversals')
    quantity = models.PositiveIntegerField()
    reason = models.TextField()
    reversed_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True)
    reversed_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = 'Dispatch Reversal'
        verbose_name_plural = 'Dispatch Reversals'
        ordering = ['-reversed_at', '-id']

    def __str__(self):
        return f"{self.allocation.dispatch_number}: -{self.quantity}"
