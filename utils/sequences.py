"""
Sequence-number service for human-facing document numbers
"""
from django.db import IntegrityError, transaction

from utils.concurrency import contention_guard
from utils.exceptions import Contention
from utils.models import DocumentSequence


def _locked_sequence(prefix):
    try:
        sequence, _ = DocumentSequence.objects.select_for_update().get_or_create(prefix=prefix)
        return sequence
    except IntegrityError:
        # another transaction created the row first
        sequence = DocumentSequence.objects.select_for_update().filter(prefix=prefix).first()
        if sequence is None:
            raise Contention(f"Sequence {prefix} is being created, please retry")
        return sequence


def next_document_number(prefix, width=6):
    """
    Reserve the next number for ``prefix`` and return it formatted,
    e.g. ``next_document_number('QC-FP')`` -> ``'QC-FP-000042'``.
    Runs inside the caller's transaction; a rolled back operation gives its
    number back.
    """
    with transaction.atomic(), contention_guard(f"sequence {prefix}"):
        sequence = _locked_sequence(prefix)
        sequence.last_value += 1
        sequence.save(update_fields=['last_value', 'updated_at'])
        return f"{prefix}-{sequence.last_value:0{width}d}"
