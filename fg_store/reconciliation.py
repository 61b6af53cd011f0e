"""
Dispatch reconciliation: packing, dispatch allocation, short close and
reversal, keeping dispatched <= packed <= qc_approved <= produced.
"""
import logging

from django.db import IntegrityError, transaction

from authentication.services import PermissionService
from manufacturing.batch_engine import lock_batch, move_stage
from manufacturing.lifecycle import WorkOrderLifecycle
from manufacturing.models import ActivityLog, ProductionBatch, ShortClose, WorkOrder
from notifications.services import NotificationService
from packing_zone.models import Carton
from quality.gate import QualityGate
from utils.concurrency import get_or_not_found, lock_for_update
from utils.config import erp_setting
from utils.enums import (
    ActivityTypeChoices,
    BatchStageChoices,
    GateKindChoices,
    NotificationTypeChoices,
    PriorityChoices,
    RoleChoices,
    WorkOrderStatusChoices,
)
from utils.exceptions import (
    Conflict,
    DispatchNotAllowed,
    ExceedsApproved,
    ExceedsAvailable,
    GateNotSatisfied,
    NegativeQuantity,
    PreconditionFailed,
    ValidationError,
)

from .models import DispatchAllocation, DispatchReversal

logger = logging.getLogger(__name__)

SHORT_CLOSABLE_STATUSES = (
    WorkOrderStatusChoices.IN_PROGRESS,
    WorkOrderStatusChoices.QC,
    WorkOrderStatusChoices.PACKING,
)

# re-checked on every allocation; a later failed re-inspection stops shipment
DISPATCH_GATES = (
    GateKindChoices.RAW_MATERIAL,
    GateKindChoices.FIRST_PIECE,
    GateKindChoices.FINAL,
)


class DispatchReconciliation:

    @staticmethod
    @transaction.atomic
    def pack(batch_id, qty, user, remarks=''):
        """Pack QC-approved pieces of a batch into a carton"""
        PermissionService.require_permission(user, 'packing', 'pack')
        if qty is None or qty <= 0:
            raise NegativeQuantity(f"Pack quantity must be positive, got {qty}")

        work_order, batch = lock_batch(batch_id)

        blockers = QualityGate.gate_blockers(batch, GateKindChoices.FINAL)
        if blockers:
            logger.warning(f"Packing rejected for {batch.batch_code}: {'; '.join(blockers)}")
            raise GateNotSatisfied(blockers=blockers)
        if batch.stage not in (BatchStageChoices.QC, BatchStageChoices.PACKING):
            raise PreconditionFailed('batch_stage', [
                f"batch {batch.batch_number} is at {batch.stage}; packing starts after QC"
            ])

        available = batch.available_for_packing
        if qty > available:
            logger.warning(f"Over-packing rejected for {batch.batch_code}: {qty} > {available}")
            raise ExceedsApproved(blockers=[
                f"batch {batch.batch_number}: packing {qty}, approved and unpacked {available}"
            ])

        if batch.stage == BatchStageChoices.QC:
            move_stage(batch, BatchStageChoices.PACKING, user, reason='Packing started')

        carton = Carton.objects.create(
            batch=batch,
            work_order=work_order,
            quantity=qty,
            heat_number=batch.material_lot.heat_number if batch.material_lot_id else '',
            remarks=remarks,
            packed_by=user,
        )

        batch.packed_qty += qty
        batch.save(update_fields=['packed_qty', 'updated_at'])

        work_order.refresh_quantities()
        work_order.assert_quantities()
        work_order.sync_stage()

        logger.info(f"{carton.carton_number}: {qty} pcs of {batch.batch_code} packed by {user.email}")
        return carton

    @staticmethod
    def _replay(existing, batch_id, qty, destination, reference):
        if existing.matches(batch_id, qty, destination):
            logger.info(f"Dispatch reference {reference} replayed; returning {existing.dispatch_number}")
            return existing
        logger.warning(f"Dispatch reference {reference} reused with a different payload")
        raise Conflict(
            f"Reference {reference} already used for {existing.dispatch_number} "
            f"(batch {existing.batch_id}, {existing.quantity} pcs to {existing.destination})"
        )

    @staticmethod
    @transaction.atomic
    def allocate(batch_id, qty, destination, reference, user):
        """
        Commit packed pieces to a shipment. Idempotent by ``reference``: an
        identical replay returns the original allocation.
        """
        PermissionService.require_permission(user, 'dispatch', 'allocate')
        if qty is None or qty <= 0:
            raise NegativeQuantity(f"Dispatch quantity must be positive, got {qty}")
        if not reference:
            raise ValidationError("A dispatch reference is required")
        if not destination:
            raise ValidationError("A destination is required")

        existing = DispatchAllocation.objects.filter(external_reference=reference).first()
        if existing is not None:
            return DispatchReconciliation._replay(existing, batch_id, qty, destination, reference)

        work_order, batch = lock_batch(batch_id)

        blockers = []
        if not work_order.dispatch_allowed:
            blockers.append(f"{work_order.wo_number} is {work_order.status}; dispatch needs packing or later")
        if not batch.dispatch_allowed:
            blockers.append(f"batch {batch.batch_number} is blocked: {batch.dispatch_block_reason}")
        for gate_kind in DISPATCH_GATES:
            blockers += QualityGate.gate_blockers(batch, gate_kind)
        if blockers:
            logger.warning(f"Dispatch rejected for {batch.batch_code}: {'; '.join(blockers)}")
            raise DispatchNotAllowed(blockers=blockers)

        dispatchable = batch.dispatchable_qty
        if qty > dispatchable:
            logger.warning(f"Over-dispatch rejected for {batch.batch_code}: {qty} > {dispatchable}")
            raise ExceedsApproved(blockers=[
                f"batch {batch.batch_number}: dispatching {qty}, approved {batch.qc_approved_qty}, "
                f"packed {batch.packed_qty}, already dispatched {batch.dispatched_qty}"
            ])

        try:
            with transaction.atomic():
                allocation = DispatchAllocation.objects.create(
                    external_reference=reference,
                    batch=batch,
                    work_order=work_order,
                    quantity=qty,
                    destination=destination,
                    customer_name=work_order.customer_name,
                    allocated_by=user,
                )
        except IntegrityError:
            existing = DispatchAllocation.objects.get(external_reference=reference)
            return DispatchReconciliation._replay(existing, batch_id, qty, destination, reference)

        batch.dispatched_qty += qty
        batch.save(update_fields=['dispatched_qty', 'updated_at'])
        if (batch.stage == BatchStageChoices.PACKING and not batch.accepts_production
                and batch.available_for_packing == 0 and batch.dispatchable_qty == 0):
            move_stage(batch, BatchStageChoices.DISPATCHED, user, reason=f"Fully dispatched on {allocation.dispatch_number}")

        work_order.refresh_quantities()
        work_order.assert_quantities()
        work_order.sync_stage()

        logger.info(
            f"{allocation.dispatch_number}: {qty} pcs of {batch.batch_code} to {destination} ({reference})"
        )
        return allocation

    @staticmethod
    @transaction.atomic
    def short_close(work_order_id, reason, user):
        """
        Accept the packed quantity as final. The shortfall is authorized and a
        work order already in packing is completed.
        """
        PermissionService.require_permission(user, 'dispatch', 'short_close')
        if not reason:
            raise ValidationError("Short close needs a reason")

        work_order = lock_for_update(WorkOrder, 'work order', pk=work_order_id)
        if work_order.status not in SHORT_CLOSABLE_STATUSES:
            raise PreconditionFailed('short_close_not_allowed', [
                f"{work_order.wo_number} is {work_order.status}"
            ])

        work_order.refresh_quantities()
        shortfall = work_order.quantity_ordered - work_order.quantity_packed
        if shortfall <= 0:
            raise PreconditionFailed('nothing_short', [
                f"{work_order.wo_number} has packed {work_order.quantity_packed} of {work_order.quantity_ordered}"
            ])

        work_order.authorized_shortfall_qty = shortfall
        work_order.save(update_fields=['authorized_shortfall_qty', 'updated_at'])

        short_close = ShortClose.objects.create(
            work_order=work_order,
            quantity_ordered=work_order.quantity_ordered,
            quantity_packed=work_order.quantity_packed,
            shortfall_qty=shortfall,
            reason=reason,
            closed_by=user,
        )
        ActivityLog.log(work_order, ActivityTypeChoices.SHORT_CLOSED, user, reason=reason,
                        shortfall=shortfall, packed=work_order.quantity_packed)

        if work_order.status == WorkOrderStatusChoices.PACKING:
            WorkOrderLifecycle.apply_transition(
                work_order, WorkOrderStatusChoices.COMPLETED, user, reason=f"Short closed: {reason}"
            )

        for role in (RoleChoices.MANAGER, erp_setting('PRODUCTION_NOTIFY_ROLE')):
            NotificationService.notify_role(
                role,
                f"{work_order.wo_number} short closed",
                f"{work_order.wo_number} closed {shortfall} pcs short "
                f"({work_order.quantity_packed} of {work_order.quantity_ordered} packed): {reason}",
                work_order.wo_number,
                notification_type=NotificationTypeChoices.SHORT_CLOSE,
                priority=PriorityChoices.HIGH,
                work_order=work_order,
                created_by=user,
            )

        logger.info(f"{work_order.wo_number} short closed by {shortfall} pcs by {user.email}")
        return short_close

    @staticmethod
    @transaction.atomic
    def reverse(allocation_id, qty, reason, user):
        """Return dispatched pieces to packed stock with a compensating record"""
        PermissionService.require_permission(user, 'dispatch', 'reverse')
        if qty is None or qty <= 0:
            raise NegativeQuantity(f"Reversal quantity must be positive, got {qty}")
        if not reason:
            raise ValidationError("A reversal needs a reason")

        allocation = get_or_not_found(DispatchAllocation, 'dispatch allocation', pk=allocation_id)
        work_order = lock_for_update(WorkOrder, 'work order', pk=allocation.work_order_id)
        batch = lock_for_update(ProductionBatch, 'batch', pk=allocation.batch_id)
        allocation = lock_for_update(DispatchAllocation, 'dispatch allocation', pk=allocation_id)

        if qty > allocation.net_qty:
            raise ExceedsAvailable(blockers=[
                f"{allocation.dispatch_number}: reversing {qty}, allocated {allocation.net_qty}"
            ])

        reversal = DispatchReversal.objects.create(
            allocation=allocation,
            quantity=qty,
            reason=reason,
            reversed_by=user,
        )
        allocation.reversed_qty += qty
        allocation.save(update_fields=['reversed_qty'])

        batch.dispatched_qty -= qty
        batch.save(update_fields=['dispatched_qty', 'updated_at'])
        if batch.stage == BatchStageChoices.DISPATCHED:
            move_stage(batch, BatchStageChoices.PACKING, user, is_override=True,
                       reason=f"Dispatch reversed on {allocation.dispatch_number}")

        work_order.refresh_quantities()
        work_order.assert_quantities()
        work_order.sync_stage()

        ActivityLog.log(work_order, ActivityTypeChoices.DISPATCH_REVERSED, user, batch=batch, reason=reason,
                        dispatch_number=allocation.dispatch_number, quantity=qty)
        logger.info(f"{allocation.dispatch_number}: {qty} pcs reversed by {user.email}")
        return reversal
