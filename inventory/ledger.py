"""
Raw material ledger: lot receipts, issues to work orders and lot traceability
"""
import logging
from decimal import Decimal, InvalidOperation

from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from authentication.services import PermissionService
from manufacturing.models import ProductionBatch, WorkOrder
from utils.concurrency import get_or_not_found, lock_for_update
from utils.enums import GateStatusChoices, MaterialLotStatusChoices
from utils.exceptions import (
    InsufficientStock, NegativeQuantity, PreconditionFailed, ValidationError
)

from .models import MaterialIssue, MaterialLot

logger = logging.getLogger(__name__)


def to_kg(value, field='quantity'):
    try:
        return Decimal(str(value)).quantize(Decimal('0.001'))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} must be a number, got {value!r}")


class MaterialLedger:
    """
    Lots are received once and drawn down by issues; the balance of a lot is
    always ``net_weight_kg - sum(issues)``.
    """

    @staticmethod
    @transaction.atomic
    def receive_lot(user, heat_number, alloy, gross_weight_kg, net_weight_kg,
                    supplier=None, grade='', quality_certificate_number='', remarks=''):
        PermissionService.require_permission(user, 'inventory', 'receive')

        gross = to_kg(gross_weight_kg, 'gross_weight_kg')
        net = to_kg(net_weight_kg, 'net_weight_kg')
        if gross <= 0 or net <= 0:
            raise ValidationError("Lot weights must be positive")
        if net > gross:
            raise ValidationError(f"Net weight {net} kg exceeds gross weight {gross} kg")
        if not heat_number:
            raise ValidationError("heat_number is required")

        lot = MaterialLot.objects.create(
            heat_number=heat_number,
            alloy=alloy,
            grade=grade,
            gross_weight_kg=gross,
            net_weight_kg=net,
            supplier=supplier,
            quality_certificate_number=quality_certificate_number,
            received_by=user,
            remarks=remarks,
        )
        logger.info(f"Lot {lot.lot_number} received: heat {heat_number}, {net} kg net by {user.email}")
        return lot

    @staticmethod
    def available_qty(lot_id):
        lot = get_or_not_found(MaterialLot, 'material lot', pk=lot_id)
        issued = MaterialIssue.objects.filter(lot_id=lot.pk).aggregate(total=Sum('quantity_kg'))['total']
        return lot.net_weight_kg - (issued or Decimal('0'))

    @staticmethod
    @transaction.atomic
    def issue(lot_id, work_order_id, qty, user, batch=None, remarks=''):
        """
        Draw ``qty`` kg from a lot against a work order.

        Locks the work order, the batch (if given) and the lot, in that order.
        """
        PermissionService.require_permission(user, 'inventory', 'issue')

        qty = to_kg(qty)
        if qty <= 0:
            raise NegativeQuantity(f"Issue quantity must be positive, got {qty}")

        work_order = lock_for_update(WorkOrder, 'work order', pk=work_order_id)
        if batch is not None:
            batch = lock_for_update(ProductionBatch, 'batch', pk=getattr(batch, 'pk', batch))
            if batch.work_order_id != work_order.pk:
                raise ValidationError(f"Batch {batch.batch_code} does not belong to {work_order.wo_number}")

        lot = lock_for_update(MaterialLot, 'material lot', pk=lot_id)
        if lot.qc_status == GateStatusChoices.FAILED:
            raise PreconditionFailed('material_rejected', [f"lot {lot.lot_number} failed incoming QC"])

        available = MaterialLedger.available_qty(lot.pk)
        if qty > available:
            logger.warning(
                f"Issue rejected for {work_order.wo_number}: lot {lot.lot_number} has {available} kg, requested {qty} kg"
            )
            raise InsufficientStock(blockers=[
                f"lot {lot.lot_number}: requested {qty} kg, available {available} kg"
            ])

        issue = MaterialIssue.objects.create(
            lot=lot,
            work_order=work_order,
            batch=batch,
            quantity_kg=qty,
            issued_by=user,
            remarks=remarks,
        )

        remaining = available - qty
        lot.status = MaterialLotStatusChoices.CONSUMED if remaining == 0 else MaterialLotStatusChoices.ISSUED
        lot.save(update_fields=['status', 'updated_at'])

        logger.info(
            f"Issued {qty} kg from {lot.lot_number} to {work_order.wo_number}; {remaining} kg remaining"
        )
        return issue

    @staticmethod
    def issued_lots(work_order):
        """Lots consumed by a work order"""
        return MaterialLot.objects.filter(issues__work_order=work_order).distinct()

    @staticmethod
    def lot_consumers(lot):
        """Work orders that drew from a lot, for forward traceability"""
        return WorkOrder.objects.filter(material_issues__lot=lot).distinct()

    @staticmethod
    def record_lot_qc(lot, status):
        """Cache the incoming inspection outcome on the lot"""
        lot.qc_status = status
        lot.qc_status_at = timezone.now()
        lot.save(update_fields=['qc_status', 'qc_status_at', 'updated_at'])
