from django.conf import settings
from django.db import models


class Item(models.Model):
    """
    Part master. Work orders are raised against an item; tolerance bands for
    inspections are kept per item in quality.ToleranceSpec.
    """
    item_code = models.CharField(max_length=120, unique=True)
    description = models.CharField(max_length=255, blank=True)
    drawing_no = models.CharField(max_length=60, blank=True)
    revision = models.CharField(max_length=10, blank=True)
    alloy = models.CharField(max_length=60, blank=True, help_text="Specified material grade")
    weight_per_piece_g = models.DecimalField(
        max_digits=10,
        decimal_places=3,
        null=True,
        blank=True,
        help_text="Finished weight in grams per piece"
    )
    customer = models.ForeignKey(
        'third_party.Customer',
        on_delete=models.PROTECT,
        related_name='items',
        null=True,
        blank=True
    )
    requires_external_processing = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_items'
    )

    class Meta:
        verbose_name = 'Item'
        verbose_name_plural = 'Items'
        ordering = ['item_code']

    def __str__(self):
        return self.item_code
