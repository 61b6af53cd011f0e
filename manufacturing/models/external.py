"""
External processing (sub-contracting) models
"""
from django.conf import settings
from django.db import models
from django.db.models import F
from django.utils import timezone

from utils.enums import ExternalMovementStatusChoices
from utils.models import DocumentNumberedModel


OPEN_MOVEMENT_STATUSES = (
    ExternalMovementStatusChoices.SENT,
    ExternalMovementStatusChoices.IN_TRANSIT,
    ExternalMovementStatusChoices.AT_PARTNER,
    ExternalMovementStatusChoices.PARTIALLY_RETURNED,
)


def outstanding_expression():
    """Pieces still with the partner, as a query expression"""
    return (
        F('quantity_sent') - F('quantity_returned')
        - F('quantity_rejected') - F('quantity_forwarded')
    )


class ExternalMovement(DocumentNumberedModel):
    """
    One send-out of batch pieces to an external partner, tracked by challan.

    Counters only grow and ``returned + rejected + forwarded <= sent``.
    """
    document_number_field = 'challan_no'

    challan_no = models.CharField(max_length=20, unique=True, editable=False)
    work_order = models.ForeignKey(
        'manufacturing.WorkOrder',
        on_delete=models.PROTECT,
        related_name='external_movements'
    )
    batch = models.ForeignKey(
        'manufacturing.ProductionBatch',
        on_delete=models.PROTECT,
        related_name='external_movements'
    )
    partner = models.ForeignKey(
        'third_party.ExternalPartner',
        on_delete=models.PROTECT,
        related_name='movements'
    )
    partner_name = models.CharField(max_length=200, help_text="Snapshot at send-out")
    process_step = models.CharField(max_length=100, blank=True)

    quantity_sent = models.PositiveIntegerField()
    quantity_returned = models.PositiveIntegerField(default=0)
    quantity_rejected = models.PositiveIntegerField(default=0)
    quantity_forwarded = models.PositiveIntegerField(default=0)

    status = models.CharField(
        max_length=20,
        choices=ExternalMovementStatusChoices.choices,
        default=ExternalMovementStatusChoices.SENT
    )
    expected_return_date = models.DateField()
    forwarded_from = models.ForeignKey(
        'self',
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name='forwarded_to'
    )

    sent_at = models.DateTimeField(default=timezone.now)
    sent_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name='external_movements_sent'
    )
    last_received_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'External Movement'
        verbose_name_plural = 'External Movements'
        ordering = ['-sent_at']
        indexes = [
            models.Index(fields=['status', 'expected_return_date']),
        ]

    def __str__(self):
        return f"{self.challan_no} - {self.partner_name} ({self.quantity_sent} pcs)"

    def get_document_prefix(self):
        return 'EXT'

    @property
    def outstanding_qty(self):
        return (
            self.quantity_sent - self.quantity_returned
            - self.quantity_rejected - self.quantity_forwarded
        )

    @property
    def is_open(self):
        return self.status in OPEN_MOVEMENT_STATUSES

    def days_overdue(self, as_of=None):
        as_of = as_of or timezone.localdate()
        return (as_of - self.expected_return_date).days


class ExternalReceipt(models.Model):
    """A return (good and rejected pieces) against an external movement"""
    movement = models.ForeignKey(ExternalMovement, on_delete=models.PROTECT, related_name='receipts')
    quantity_returned = models.PositiveIntegerField(default=0)
    quantity_rejected = models.PositiveIntegerField(default=0)
    received_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True)
    received_at = models.DateTimeField(auto_now_add=True)
    remarks = models.TextField(blank=True)

    class Meta:
        verbose_name = 'External Receipt'
        verbose_name_plural = 'External Receipts'
        ordering = ['-received_at']

    def __str__(self):
        return f"{self.movement.challan_no}: +{self.quantity_returned} / -{self.quantity_rejected}"
