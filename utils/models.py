from django.db import models

from utils.exceptions import ValidationError


class DocumentSequence(models.Model):
    """
    Counter behind human-facing document numbers (WO, QC, LOT, DN ...).
    One row per prefix, advanced under a row lock.
    """
    prefix = models.CharField(max_length=20, unique=True)
    last_value = models.PositiveIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Document Sequence'
        verbose_name_plural = 'Document Sequences'
        ordering = ['prefix']

    def __str__(self):
        return f"{self.prefix} ({self.last_value})"


class DocumentNumberedModel(models.Model):
    """
    Abstract base for records carrying an immutable document number.

    Subclasses set ``document_number_field`` and implement
    ``get_document_prefix()``; the number is drawn from the sequence service
    on first save and may never change afterwards.
    """
    document_number_field = None

    class Meta:
        abstract = True

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        if cls.document_number_field in field_names:
            instance._loaded_document_number = values[field_names.index(cls.document_number_field)]
        return instance

    def get_document_prefix(self):
        raise NotImplementedError

    def save(self, *args, **kwargs):
        from utils.sequences import next_document_number

        field = self.document_number_field
        current = getattr(self, field)
        loaded = getattr(self, '_loaded_document_number', None)

        if loaded and current != loaded:
            raise ValidationError(f"{field} is immutable once assigned ({loaded})")
        if not current:
            setattr(self, field, next_document_number(self.get_document_prefix()))

        super().save(*args, **kwargs)
        self._loaded_document_number = getattr(self, field)
