from django.conf import settings
from django.core.validators import RegexValidator
from django.db import models

from utils.enums import PartnerProcessChoices
from utils.models import DocumentNumberedModel


gst_validator = RegexValidator(
    regex=r'^[0-9]{2}[A-Z]{5}[0-9]{4}[A-Z]{1}[1-9A-Z]{1}Z[0-9A-Z]{1}$',
    message='Enter a valid GST number (15 characters in format: 22AAAAA0000A1Z5)'
)

phone_validator = RegexValidator(
    regex=r'^\+?1?\d{9,15}$',
    message='Enter a valid contact number (9-15 digits)'
)


class PartyBase(models.Model):
    """
    Contact fields shared by suppliers, customers and external partners
    """
    name = models.CharField(max_length=200, unique=True)
    gst_no = models.CharField(
        max_length=15,
        validators=[gst_validator],
        unique=True,
        blank=True,
        null=True,
        help_text="15-digit GST number"
    )
    address = models.TextField(blank=True)
    contact_person = models.CharField(max_length=100, blank=True)
    contact_no = models.CharField(max_length=17, validators=[phone_validator], blank=True)
    email = models.EmailField(blank=True, null=True)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )

    class Meta:
        abstract = True
        ordering = ['name']

    def __str__(self):
        return self.name

    def clean(self):
        if self.gst_no:
            self.gst_no = self.gst_no.upper()
        if self.name:
            self.name = self.name.strip()


class Supplier(PartyBase):
    """
    Raw material supplier (mills, stockists)
    """
    materials_supplied = models.TextField(blank=True, help_text="Alloys / grades supplied")

    class Meta(PartyBase.Meta):
        verbose_name = 'Supplier'
        verbose_name_plural = 'Suppliers'


class Customer(DocumentNumberedModel, PartyBase):
    """
    Customer placing sales orders. Work orders and dispatches snapshot the name.
    """
    document_number_field = 'c_id'

    c_id = models.CharField(
        max_length=20,
        unique=True,
        editable=False,
        help_text="Auto-generated customer ID"
    )
    notes = models.TextField(blank=True)

    class Meta(PartyBase.Meta):
        verbose_name = 'Customer'
        verbose_name_plural = 'Customers'

    def __str__(self):
        return f"{self.c_id} - {self.name}"

    def get_document_prefix(self):
        return 'C'


class ExternalPartner(PartyBase):
    """
    Sub-contractor for outside processing (heat treatment, plating ...)
    """
    process_type = models.CharField(
        max_length=20,
        choices=PartnerProcessChoices.choices,
        default=PartnerProcessChoices.OTHER
    )
    default_turnaround_days = models.PositiveIntegerField(
        default=7,
        help_text="Typical days between send-out and return"
    )

    class Meta(PartyBase.Meta):
        verbose_name = 'External Partner'
        verbose_name_plural = 'External Partners'

    def __str__(self):
        return f"{self.name} ({self.get_process_type_display()})"
