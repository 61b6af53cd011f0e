"""
Quality gates.

A gate of a given kind is open for a work order or batch when the most recent
mandatory QC record of that kind is ``pass`` or ``waived``. The raw material
gate falls back to lot-level approval of every lot issued to the work order
when no work-order level incoming inspection exists.
"""
import logging
from decimal import Decimal, InvalidOperation

from django.db import transaction
from django.db.models import Q, Sum
from django.db.models.functions import Coalesce
from django.utils import timezone

from authentication.services import PermissionService
from inventory.ledger import MaterialLedger
from inventory.models import MaterialLot
from manufacturing.models import ActivityLog, ProductionBatch, WorkOrder
from manufacturing.models.external import outstanding_expression
from notifications.services import NotificationService
from utils.concurrency import lock_for_update
from utils.config import erp_setting
from utils.enums import (
    GATE_KIND_TO_QC_TYPE,
    QC_RESULT_TO_GATE_STATUS,
    ActivityTypeChoices,
    GateKindChoices,
    GateStatusChoices,
    NotificationTypeChoices,
    PriorityChoices,
    QCResultChoices,
    QCTypeChoices,
    normalize_qc_result,
)
from utils.exceptions import NegativeQuantity, PreconditionFailed, ValidationError

from .models import QCMeasurement, QCRecord, ToleranceSpec

logger = logging.getLogger(__name__)

OPEN_GATE_STATUSES = (GateStatusChoices.PASSED, GateStatusChoices.WAIVED)
OPEN_RESULTS = (QCResultChoices.PASS, QCResultChoices.WAIVED)
ATTENTION_RESULTS = (QCResultChoices.PENDING, QCResultChoices.FAIL, QCResultChoices.REWORK)


def combine_statuses(statuses):
    """Worst-of for a set of gate statuses; empty means pending"""
    statuses = list(statuses)
    if not statuses:
        return GateStatusChoices.PENDING
    for status in (GateStatusChoices.FAILED, GateStatusChoices.REWORK, GateStatusChoices.PENDING):
        if status in statuses:
            return status
    if all(status == GateStatusChoices.WAIVED for status in statuses):
        return GateStatusChoices.WAIVED
    return GateStatusChoices.PASSED


def _decimal(value, field):
    if value is None or value == '':
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} must be a number, got {value!r}")


class QualityGate:

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    def _records_for(target, gate_kind):
        qc_type = GATE_KIND_TO_QC_TYPE[gate_kind]
        records = QCRecord.objects.filter(qc_type=qc_type, is_mandatory=True)
        if isinstance(target, ProductionBatch):
            # batch records, plus work-order level records that cover every batch
            return records.filter(
                Q(batch=target) | Q(batch__isnull=True, work_order_id=target.work_order_id)
            )
        return records.filter(work_order=target)

    @staticmethod
    def latest_record(target, gate_kind):
        return QualityGate._records_for(target, gate_kind).order_by('-inspected_at', '-id').first()

    @staticmethod
    def gate_status(target, gate_kind):
        if gate_kind == GateKindChoices.RAW_MATERIAL:
            return QualityGate._raw_material_status(target)
        record = QualityGate.latest_record(target, gate_kind)
        if record is None:
            return GateStatusChoices.PENDING
        return QC_RESULT_TO_GATE_STATUS[record.result]

    @staticmethod
    def _raw_material_status(target):
        work_order = target.work_order if isinstance(target, ProductionBatch) else target
        record = QualityGate.latest_record(work_order, GateKindChoices.RAW_MATERIAL)
        if record is not None:
            return QC_RESULT_TO_GATE_STATUS[record.result]
        return combine_statuses(lot.qc_status for lot in MaterialLedger.issued_lots(work_order))

    @staticmethod
    def can_advance(target, gate_kind):
        return not QualityGate.gate_blockers(target, gate_kind)

    @staticmethod
    def describe(target):
        if isinstance(target, ProductionBatch):
            return f"batch {target.batch_number}"
        return target.wo_number

    @staticmethod
    def gate_blockers(target, gate_kind):
        """Human-readable reasons why the gate is closed; empty when open"""
        if gate_kind == GateKindChoices.RAW_MATERIAL:
            return QualityGate._raw_material_blockers(target)

        record = QualityGate.latest_record(target, gate_kind)
        if record is None:
            return [f"{gate_kind} QC not passed for {QualityGate.describe(target)} (no record)"]
        if record.result not in OPEN_RESULTS:
            return [f"{gate_kind} QC not passed for {QualityGate.describe(target)} (latest: {record.result})"]
        return []

    @staticmethod
    def _raw_material_blockers(target):
        work_order = target.work_order if isinstance(target, ProductionBatch) else target
        kind = GateKindChoices.RAW_MATERIAL

        record = QualityGate.latest_record(work_order, kind)
        if record is not None:
            if record.result in OPEN_RESULTS:
                return []
            return [f"{kind} QC not passed for {work_order.wo_number} (latest: {record.result})"]

        lots = list(MaterialLedger.issued_lots(work_order))
        if not lots:
            return [f"{kind} QC not passed for {work_order.wo_number} (no incoming inspection and no material issued)"]
        return [
            f"{kind} QC not passed for lot {lot.lot_number} (latest: {lot.qc_status})"
            for lot in lots
            if lot.qc_status not in OPEN_GATE_STATUSES
        ]

    @staticmethod
    def required_gates(batch):
        """Gates a batch must pass before entering QC"""
        gates = [GateKindChoices.RAW_MATERIAL, GateKindChoices.FIRST_PIECE]
        if QualityGate._records_for(batch, GateKindChoices.IN_PROCESS).exists():
            gates.append(GateKindChoices.IN_PROCESS)
        if batch.external_movements.exists():
            gates.append(GateKindChoices.POST_EXTERNAL)
        return gates

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    @staticmethod
    def _resolve_measurements(measurements, work_order):
        """Attach a tolerance band to every measurement and evaluate it"""
        resolved = []
        for raw in measurements:
            dimension = raw.get('dimension')
            if not dimension:
                raise ValidationError("Every measurement needs a dimension")

            measured = _decimal(raw.get('measured_value'), f"{dimension} measured_value")
            if measured is None:
                raise ValidationError(f"{dimension}: measured_value is required")

            lower = _decimal(raw.get('lower_limit'), f"{dimension} lower_limit")
            upper = _decimal(raw.get('upper_limit'), f"{dimension} upper_limit")
            nominal = _decimal(raw.get('nominal'), f"{dimension} nominal")
            is_mandatory = raw.get('is_mandatory')

            if lower is None or upper is None:
                spec = None
                if work_order is not None:
                    spec = ToleranceSpec.objects.filter(item_id=work_order.item_id, dimension=dimension).first()
                if spec is None:
                    raise ValidationError(f"No tolerance band for dimension '{dimension}'")
                lower = spec.lower_limit if lower is None else lower
                upper = spec.upper_limit if upper is None else upper
                nominal = spec.nominal if nominal is None else nominal
                if is_mandatory is None:
                    is_mandatory = spec.is_mandatory

            if lower > upper:
                raise ValidationError(f"{dimension}: lower limit {lower} is above upper limit {upper}")

            resolved.append({
                'dimension': dimension,
                'nominal': nominal,
                'lower_limit': lower,
                'upper_limit': upper,
                'measured_value': measured,
                'is_mandatory': True if is_mandatory is None else bool(is_mandatory),
                'within_tolerance': lower <= measured <= upper,
            })
        return resolved

    @staticmethod
    def _decide_result(user, declared, resolved, waiver_reason):
        if waiver_reason:
            PermissionService.require_permission(user, 'quality', 'waive')
            return QCResultChoices.WAIVED
        if declared == QCResultChoices.WAIVED:
            raise ValidationError("A waived result needs a waiver reason")

        if any(m['is_mandatory'] and not m['within_tolerance'] for m in resolved):
            return QCResultChoices.FAIL
        if declared in (QCResultChoices.REWORK, QCResultChoices.PENDING, QCResultChoices.FAIL):
            return declared
        if declared == QCResultChoices.PASS or resolved:
            return QCResultChoices.PASS
        return QCResultChoices.PENDING

    @staticmethod
    @transaction.atomic
    def record_result(user, work_order, qc_type, result=None, batch=None, material_lot=None,
                      measurements=(), waiver_reason='', approved_qty=0, rejected_qty=0,
                      inspected_qty=0, is_mandatory=True, remarks='', disposition=''):
        """
        Record an inspection and refresh the gate caches it affects.

        ``work_order`` may be omitted only for lot-level incoming inspections.
        Measurements are dicts with ``dimension`` and ``measured_value`` and an
        optional band; a missing band is taken from the item's ToleranceSpec.
        """
        PermissionService.require_permission(user, 'quality', 'record')

        if qc_type not in QCTypeChoices.values:
            raise ValidationError(f"Unknown QC type '{qc_type}'")
        try:
            declared = normalize_qc_result(result) if result is not None else None
        except ValueError as exc:
            raise ValidationError(str(exc))

        for name, value in (('approved_qty', approved_qty), ('rejected_qty', rejected_qty),
                            ('inspected_qty', inspected_qty)):
            if value < 0:
                raise NegativeQuantity(f"{name} cannot be negative")

        work_order_id = getattr(work_order, 'pk', work_order)
        if work_order_id is None and not (qc_type == QCTypeChoices.INCOMING and material_lot is not None):
            raise ValidationError("work_order is required except for lot-level incoming inspection")
        if batch is not None and work_order_id is None:
            raise ValidationError("A batch inspection needs its work order")

        # lock order: work order -> batch -> lot
        if work_order_id is not None:
            work_order = lock_for_update(WorkOrder, 'work order', pk=work_order_id)
        if batch is not None:
            batch = lock_for_update(ProductionBatch, 'batch', pk=getattr(batch, 'pk', batch))
            if batch.work_order_id != work_order.pk:
                raise ValidationError(f"Batch {batch.batch_code} does not belong to {work_order.wo_number}")
        if material_lot is not None:
            material_lot = lock_for_update(MaterialLot, 'material lot', pk=getattr(material_lot, 'pk', material_lot))

        resolved = QualityGate._resolve_measurements(measurements, work_order)
        final_result = QualityGate._decide_result(user, declared, resolved, waiver_reason)
        if declared == QCResultChoices.PASS and final_result == QCResultChoices.FAIL:
            logger.warning(f"Declared pass overridden to fail by out-of-tolerance measurements ({qc_type})")

        if approved_qty and final_result not in OPEN_RESULTS:
            raise ValidationError(f"Cannot approve pieces on a '{final_result}' inspection")

        if qc_type == QCTypeChoices.FINAL and batch is None and (approved_qty or rejected_qty):
            raise ValidationError("Final approved/rejected quantities must be recorded against a batch")

        if qc_type == QCTypeChoices.FINAL and batch is not None and approved_qty:
            already = batch.qc_records.filter(qc_type=QCTypeChoices.FINAL).aggregate(
                approved=Sum('approved_qty')
            )['approved'] or 0
            # pieces at partners are not approvable
            outstanding = batch.external_movements.aggregate(
                total=Coalesce(Sum(outstanding_expression()), 0)
            )['total']
            approvable = batch.good_qty - outstanding
            if already + approved_qty > approvable:
                raise PreconditionFailed('approval_exceeds_good', [
                    f"batch {batch.batch_number}: approving {already + approved_qty} of {batch.good_qty} "
                    f"good pieces, {outstanding} still at external partners"
                ])

        record = QCRecord.objects.create(
            work_order=work_order,
            batch=batch,
            material_lot=material_lot,
            qc_type=qc_type,
            result=final_result,
            is_mandatory=is_mandatory,
            inspected_qty=inspected_qty,
            approved_qty=approved_qty,
            rejected_qty=rejected_qty,
            waiver_reason=waiver_reason or '',
            waived_by=user if final_result == QCResultChoices.WAIVED else None,
            disposition=disposition,
            inspected_by=user,
            remarks=remarks,
        )
        for measurement in resolved:
            measurement.pop('within_tolerance')
            QCMeasurement.objects.create(qc_record=record, **measurement)

        QualityGate._refresh_caches(record, work_order, batch, material_lot)

        if work_order is not None and final_result == QCResultChoices.WAIVED:
            ActivityLog.log(
                work_order, ActivityTypeChoices.QC_WAIVED, user, batch=batch,
                reason=waiver_reason, qc_id=record.qc_id, qc_type=qc_type
            )

        if final_result in ATTENTION_RESULTS:
            QualityGate._notify(record, work_order, batch, user)

        logger.info(f"{record.qc_id} recorded: {qc_type} {final_result} by {user.email}")
        return record

    @staticmethod
    def _refresh_caches(record, work_order, batch, material_lot):
        now = timezone.now()

        if material_lot is not None and record.is_mandatory:
            MaterialLedger.record_lot_qc(material_lot, QC_RESULT_TO_GATE_STATUS[record.result])

        if batch is not None and record.qc_type == QCTypeChoices.FINAL:
            totals = batch.qc_records.filter(qc_type=QCTypeChoices.FINAL).aggregate(
                approved=Sum('approved_qty'), rejected=Sum('rejected_qty')
            )
            batch.qc_approved_qty = totals['approved'] or 0
            batch.qc_rejected_qty = totals['rejected'] or 0
            batch.qc_final_status = QualityGate.gate_status(batch, GateKindChoices.FINAL)
            batch.last_activity_at = now
            batch.save(update_fields=[
                'qc_approved_qty', 'qc_rejected_qty', 'qc_final_status', 'last_activity_at', 'updated_at'
            ])

        if work_order is None:
            if material_lot is not None:
                for consumer in MaterialLedger.lot_consumers(material_lot):
                    consumer.qc_material_status = QualityGate.gate_status(consumer, GateKindChoices.RAW_MATERIAL)
                    consumer.qc_material_status_at = now
                    consumer.save(update_fields=['qc_material_status', 'qc_material_status_at', 'updated_at'])
            return

        fields = ['updated_at']
        if record.qc_type == QCTypeChoices.INCOMING:
            work_order.qc_material_status = QualityGate.gate_status(work_order, GateKindChoices.RAW_MATERIAL)
            work_order.qc_material_status_at = now
            fields += ['qc_material_status', 'qc_material_status_at']
        elif record.qc_type == QCTypeChoices.FIRST_PIECE:
            work_order.qc_first_piece_status = QualityGate.gate_status(work_order, GateKindChoices.FIRST_PIECE)
            work_order.qc_first_piece_status_at = now
            fields += ['qc_first_piece_status', 'qc_first_piece_status_at']
        elif record.qc_type == QCTypeChoices.FINAL:
            batches = [b for b in work_order.batches.all() if b.good_qty > 0]
            if batches:
                status = combine_statuses(QualityGate.gate_status(b, GateKindChoices.FINAL) for b in batches)
            else:
                status = QualityGate.gate_status(work_order, GateKindChoices.FINAL)
            work_order.qc_final_status = status
            work_order.qc_final_status_at = now
            fields += ['qc_final_status', 'qc_final_status_at']
        work_order.save(update_fields=fields)

        work_order.refresh_quantities()
        work_order.assert_quantities()

    @staticmethod
    def _notify(record, work_order, batch, user):
        if record.result == QCResultChoices.PENDING:
            notification_type = NotificationTypeChoices.QC_PENDING
            priority = PriorityChoices.MEDIUM
        else:
            notification_type = NotificationTypeChoices.QC_FAILED
            priority = PriorityChoices.HIGH

        if batch is not None:
            entity_ref = batch.batch_code
        elif work_order is not None:
            entity_ref = work_order.wo_number
        else:
            entity_ref = record.material_lot.lot_number

        NotificationService.notify_role(
            erp_setting('QC_NOTIFY_ROLE'),
            f"{record.get_qc_type_display()} QC {record.result}: {entity_ref}",
            f"{record.qc_id} recorded as {record.result} by {user.display_name}. {record.remarks}".strip(),
            entity_ref,
            notification_type=notification_type,
            priority=priority,
            work_order=work_order,
            batch=batch,
            created_by=user,
            action_required=True,
        )
