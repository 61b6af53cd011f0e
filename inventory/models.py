from django.conf import settings
from django.db import models
from django.db.models import Sum
from django.utils import timezone

from utils.enums import GateStatusChoices, MaterialLotStatusChoices
from utils.models import DocumentNumberedModel


class MaterialLot(DocumentNumberedModel):
    """
    A received heat / lot of raw material. Every finished part traces back to
    one or more lots through MaterialIssue.
    """
    document_number_field = 'lot_number'

    lot_number = models.CharField(max_length=30, unique=True, editable=False)
    heat_number = models.CharField(max_length=50, help_text="Heat number from supplier certificate")
    alloy = models.CharField(max_length=60)
    grade = models.CharField(max_length=60, blank=True)
    gross_weight_kg = models.DecimalField(max_digits=12, decimal_places=3)
    net_weight_kg = models.DecimalField(max_digits=12, decimal_places=3)
    supplier = models.ForeignKey(
        'third_party.Supplier',
        on_delete=models.PROTECT,
        related_name='material_lots',
        null=True,
        blank=True
    )
    quality_certificate_number = models.CharField(max_length=100, blank=True)

    status = models.CharField(
        max_length=20,
        choices=MaterialLotStatusChoices.choices,
        default=MaterialLotStatusChoices.RECEIVED
    )
    # Written by the quality gate only
    qc_status = models.CharField(
        max_length=20,
        choices=GateStatusChoices.choices,
        default=GateStatusChoices.PENDING
    )
    qc_status_at = models.DateTimeField(null=True, blank=True)

    received_at = models.DateTimeField(default=timezone.now)
    received_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name='received_lots'
    )
    remarks = models.TextField(blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Material Lot'
        verbose_name_plural = 'Material Lots'
        ordering = ['-received_at']
        indexes = [
            models.Index(fields=['heat_number']),
            models.Index(fields=['status']),
        ]

    def __str__(self):
        return f"{self.lot_number} / heat {self.heat_number} ({self.alloy})"

    def get_document_prefix(self):
        return 'LOT'

    @property
    def issued_kg(self):
        return self.issues.aggregate(total=Sum('quantity_kg'))['total'] or 0

    @property
    def available_kg(self):
        return self.net_weight_kg - self.issued_kg


class MaterialIssue(models.Model):
    """
    Material drawn from a lot against a work order (optionally a batch)
    """
    lot = models.ForeignKey(MaterialLot, on_delete=models.PROTECT, related_name='issues')
    work_order = models.ForeignKey(
        'manufacturing.WorkOrder',
        on_delete=models.PROTECT,
        related_name='material_issues'
    )
    batch = models.ForeignKey(
        'manufacturing.ProductionBatch',
        on_delete=models.PROTECT,
        related_name='material_issues',
        null=True,
        blank=True
    )
    quantity_kg = models.DecimalField(max_digits=12, decimal_places=3)
    issued_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name='material_issues'
    )
    issued_at = models.DateTimeField(auto_now_add=True)
    remarks = models.TextField(blank=True)

    class Meta:
        verbose_name = 'Material Issue'
        verbose_name_plural = 'Material Issues'
        ordering = ['-issued_at']

    def __str__(self):
        return f"{self.lot.lot_number} -> {self.work_order.wo_number}: {self.quantity_kg} kg"
