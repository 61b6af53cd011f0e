from django.conf import settings
from django.db import models
from django.utils import timezone

from utils.enums import QCResultChoices, QCTypeChoices
from utils.models import DocumentNumberedModel


QC_ID_PREFIXES = {
    QCTypeChoices.INCOMING: 'QC-INC',
    QCTypeChoices.FIRST_PIECE: 'QC-FP',
    QCTypeChoices.IN_PROCESS: 'QC-IP',
    QCTypeChoices.FINAL: 'QC-FIN',
    QCTypeChoices.POST_EXTERNAL: 'QC-EXT',
}


class ToleranceSpec(models.Model):
    """
    Tolerance band for one dimension of an item
    """
    item = models.ForeignKey('products.Item', on_delete=models.CASCADE, related_name='tolerance_specs')
    dimension = models.CharField(max_length=100)
    nominal = models.DecimalField(max_digits=12, decimal_places=4, null=True, blank=True)
    lower_limit = models.DecimalField(max_digits=12, decimal_places=4)
    upper_limit = models.DecimalField(max_digits=12, decimal_places=4)
    unit = models.CharField(max_length=10, default='mm')
    is_mandatory = models.BooleanField(default=True)

    class Meta:
        verbose_name = 'Tolerance Spec'
        verbose_name_plural = 'Tolerance Specs'
        unique_together = ['item', 'dimension']
        ordering = ['item', 'dimension']

    def __str__(self):
        return f"{self.item.item_code} {self.dimension}: {self.lower_limit}-{self.upper_limit} {self.unit}"


class QCRecord(DocumentNumberedModel):
    """
    One inspection. The most recent mandatory record of a kind decides its gate;
    older records are kept for audit.
    """
    document_number_field = 'qc_id'

    qc_id = models.CharField(max_length=20, unique=True, editable=False)
    work_order = models.ForeignKey(
        'manufacturing.WorkOrder',
        on_delete=models.PROTECT,
        related_name='qc_records',
        null=True,
        blank=True
    )
    batch = models.ForeignKey(
        'manufacturing.ProductionBatch',
        on_delete=models.PROTECT,
        related_name='qc_records',
        null=True,
        blank=True
    )
    material_lot = models.ForeignKey(
        'inventory.MaterialLot',
        on_delete=models.PROTECT,
        related_name='qc_records',
        null=True,
        blank=True
    )
    qc_type = models.CharField(max_length=20, choices=QCTypeChoices.choices)
    result = models.CharField(max_length=10, choices=QCResultChoices.choices, default=QCResultChoices.PENDING)
    is_mandatory = models.BooleanField(default=True)

    inspected_qty = models.PositiveIntegerField(default=0)
    approved_qty = models.PositiveIntegerField(default=0)
    rejected_qty = models.PositiveIntegerField(default=0)

    waiver_reason = models.TextField(blank=True)
    waived_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='waived_qc_records'
    )
    disposition = models.CharField(max_length=50, blank=True, help_text="e.g. accept, rework, scrap, use as is")

    inspected_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name='qc_inspections'
    )
    inspected_at = models.DateTimeField(default=timezone.now)
    remarks = models.TextField(blank=True)

    class Meta:
        verbose_name = 'QC Record'
        verbose_name_plural = 'QC Records'
        ordering = ['-inspected_at', '-id']
        indexes = [
            models.Index(fields=['work_order', 'qc_type', '-inspected_at']),
            models.Index(fields=['batch', 'qc_type', '-inspected_at']),
        ]

    def __str__(self):
        return f"{self.qc_id} ({self.get_qc_type_display()}: {self.result})"

    def get_document_prefix(self):
        return QC_ID_PREFIXES[self.qc_type]


class QCMeasurement(models.Model):
    qc_record = models.ForeignKey(QCRecord, on_delete=models.CASCADE, related_name='measurements')
    dimension = models.CharField(max_length=100)
    nominal = models.DecimalField(max_digits=12, decimal_places=4, null=True, blank=True)
    lower_limit = models.DecimalField(max_digits=12, decimal_places=4)
    upper_limit = models.DecimalField(max_digits=12, decimal_places=4)
    measured_value = models.DecimalField(max_digits=12, decimal_places=4)
    is_mandatory = models.BooleanField(default=True)
    within_tolerance = models.BooleanField(editable=False)

    class Meta:
        verbose_name = 'QC Measurement'
        verbose_name_plural = 'QC Measurements'
        ordering = ['id']

    def __str__(self):
        return f"{self.dimension}: {self.measured_value} [{self.lower_limit}, {self.upper_limit}]"

    def save(self, *args, **kwargs):
        self.within_tolerance = self.lower_limit <= self.measured_value <= self.upper_limit
        super().save(*args, **kwargs)
