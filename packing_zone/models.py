from django.conf import settings
from django.db import models

from utils.models import DocumentNumberedModel


class Carton(DocumentNumberedModel):
    """
    Carton - a packed quantity of QC-approved pieces from one batch.
    Cartons are only ever created by DispatchReconciliation.pack().
    """
    document_number_field = 'carton_number'

    carton_number = models.CharField(max_length=20, unique=True, editable=False)
    batch = models.ForeignKey(
        'manufacturing.ProductionBatch',
        on_delete=models.PROTECT,
        related_name='cartons'
    )
    work_order = models.ForeignKey(
        'manufacturing.WorkOrder',
        on_delete=models.PROTECT,
        related_name='cartons'
    )
    quantity = models.PositiveIntegerField()
    heat_number = models.CharField(max_length=50, blank=True, help_text="Snapshot of the batch material heat")
    remarks = models.TextField(blank=True)

    packed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name='packed_cartons'
    )
    packed_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = 'Carton'
        verbose_name_plural = 'Cartons'
        ordering = ['-packed_at', '-id']
        indexes = [
            models.Index(fields=['batch', '-packed_at']),
        ]

    def __str__(self):
        return f"{self.carton_number} - {self.batch.batch_code} ({self.quantity} pcs)"

    def get_document_prefix(self):
        return 'CTN'
