"""
Work order lifecycle: creation, status transitions with their preconditions,
overrides and the read-only completion checklist.
"""
import logging

from django.db import transaction
from django.utils import timezone

from authentication.services import PermissionService
from notifications.services import NotificationService
from quality.gate import QualityGate
from utils.concurrency import get_or_not_found, lock_for_update
from utils.config import erp_setting
from utils.enums import (
    ActivityTypeChoices,
    GateKindChoices,
    NotificationTypeChoices,
    PriorityChoices,
    RoleChoices,
    WorkOrderStatusChoices,
)
from utils.exceptions import NegativeQuantity, PreconditionFailed, ValidationError

from .models import ActivityLog, WorkOrder, WorkOrderStatusHistory

logger = logging.getLogger(__name__)

Status = WorkOrderStatusChoices

NATURAL_TRANSITIONS = {
    Status.PENDING: Status.IN_PROGRESS,
    Status.IN_PROGRESS: Status.QC,
    Status.QC: Status.PACKING,
    Status.PACKING: Status.COMPLETED,
    Status.COMPLETED: Status.SHIPPED,
}


def attention_role(status):
    """Role that picks up a work order once it reaches ``status``"""
    if status == Status.QC:
        return erp_setting('QC_NOTIFY_ROLE')
    if status == Status.PACKING:
        return RoleChoices.PACKING
    if status == Status.COMPLETED:
        return erp_setting('LOGISTICS_NOTIFY_ROLE')
    return None


class WorkOrderLifecycle:

    @staticmethod
    @transaction.atomic
    def create_work_order(user, item, quantity, customer=None, sales_order_no='', sales_order_line=None,
                          authorized_overage_qty=0, due_date=None):
        """Open a work order for an approved sales order line"""
        PermissionService.require_permission(user, 'work_orders', 'create')
        if quantity is None or quantity <= 0:
            raise NegativeQuantity(f"Ordered quantity must be positive, got {quantity}")
        if authorized_overage_qty < 0:
            raise NegativeQuantity("Authorized overage cannot be negative")
        if not item.is_active:
            raise ValidationError(f"Item {item.item_code} is inactive")

        customer = customer or item.customer
        work_order = WorkOrder.objects.create(
            item=item,
            customer=customer,
            customer_name=customer.name if customer else '',
            sales_order_no=sales_order_no,
            sales_order_line=sales_order_line,
            due_date=due_date,
            quantity_ordered=quantity,
            authorized_overage_qty=authorized_overage_qty,
            created_by=user,
        )
        WorkOrderStatusHistory.objects.create(
            work_order=work_order,
            from_status='',
            to_status=work_order.status,
            reason='Created',
            changed_by=user,
        )
        ActivityLog.log(work_order, ActivityTypeChoices.WORK_ORDER_CREATED, user,
                        quantity=quantity, sales_order_no=sales_order_no, sales_order_line=sales_order_line)

        logger.info(f"{work_order.wo_number} created for {quantity} x {item.item_code} by {user.email}")
        return work_order

    # ------------------------------------------------------------------
    # Preconditions
    # ------------------------------------------------------------------

    @staticmethod
    def all_batches_production_complete(work_order):
        batches = list(work_order.batches.all())
        return bool(batches) and all(b.production_complete or b.is_ended for b in batches)

    @staticmethod
    def transition_blockers(work_order, target_status):
        """Every unmet condition for the natural move into ``target_status``"""
        blockers = []
        if target_status == Status.IN_PROGRESS:
            blockers.extend(QualityGate.gate_blockers(work_order, GateKindChoices.RAW_MATERIAL))
            if not work_order.batches.exists():
                blockers.append(f"{work_order.wo_number} has no production batch")

        elif target_status == Status.QC:
            batches = list(work_order.batches.all())
            if not batches:
                blockers.append(f"{work_order.wo_number} has no production batch")
            for batch in batches:
                if not (batch.production_complete or batch.is_ended):
                    blockers.append(f"batch {batch.batch_number} is not production complete")

        elif target_status == Status.PACKING:
            batches = [b for b in work_order.batches.all() if b.good_qty > 0]
            if not batches:
                blockers.append(f"{work_order.wo_number} has no good pieces to pack")
            for batch in batches:
                blockers.extend(QualityGate.gate_blockers(batch, GateKindChoices.FINAL))

        elif target_status == Status.COMPLETED:
            required = work_order.required_packed_qty
            if work_order.quantity_packed < required:
                blockers.append(
                    f"{work_order.wo_number} packed {work_order.quantity_packed} of {required} required "
                    f"(ordered {work_order.quantity_ordered}, authorized shortfall "
                    f"{work_order.authorized_shortfall_qty})"
                )

        elif target_status == Status.SHIPPED:
            if not work_order.live_allocations().exists():
                blockers.append(f"{work_order.wo_number} has no dispatch allocation")

        return blockers

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    @staticmethod
    @transaction.atomic
    def transition(work_order_id, target_status, user, override=False, reason=''):
        """
        Move a work order to ``target_status``.

        Only the natural next status is allowed without an override, and only
        when its preconditions hold. Overrides need a reason and the
        work_orders.override permission; quantity invariants still apply.
        """
        PermissionService.require_permission(user, 'work_orders', 'transition')
        if target_status not in Status.values:
            raise ValidationError(f"Unknown work order status '{target_status}'")
        if override:
            PermissionService.require_permission(user, 'work_orders', 'override')
            if not reason:
                raise ValidationError("An override needs a reason")

        work_order = lock_for_update(WorkOrder, 'work order', pk=work_order_id)
        from_status = work_order.status
        if from_status == target_status:
            return work_order

        if not override:
            if NATURAL_TRANSITIONS.get(from_status) != target_status:
                raise PreconditionFailed('transition_blocked', [
                    f"{work_order.wo_number}: {from_status} -> {target_status} is not a natural transition"
                ])
            blockers = WorkOrderLifecycle.transition_blockers(work_order, target_status)
            if blockers:
                logger.warning(
                    f"{work_order.wo_number} {from_status} -> {target_status} blocked: {'; '.join(blockers)}"
                )
                raise PreconditionFailed('transition_blocked', blockers)

        return WorkOrderLifecycle.apply_transition(work_order, target_status, user, override, reason)

    @staticmethod
    def apply_transition(work_order, target_status, user, override=False, reason=''):
        """Write a checked status change on a locked work order"""
        from_status = work_order.status
        now = timezone.now()
        work_order.status = target_status
        fields = ['status', 'updated_at']

        if target_status == Status.IN_PROGRESS and work_order.started_at is None:
            work_order.started_at = now
            fields.append('started_at')
        if from_status == Status.IN_PROGRESS and target_status == Status.QC:
            work_order.production_complete = True
            work_order.production_complete_qty = work_order.quantity_produced
            work_order.production_complete_reason = reason or 'All batches production complete'
            work_order.production_completed_at = now
            work_order.production_completed_by = user
            fields += [
                'production_complete', 'production_complete_qty', 'production_complete_reason',
                'production_completed_at', 'production_completed_by'
            ]
        if target_status == Status.COMPLETED:
            work_order.completed_at = now
            fields.append('completed_at')
        if target_status == Status.SHIPPED:
            work_order.shipped_at = now
            fields.append('shipped_at')

        work_order.save(update_fields=fields)
        work_order.refresh_quantities()
        work_order.assert_quantities()
        work_order.sync_stage()

        WorkOrderStatusHistory.objects.create(
            work_order=work_order,
            from_status=from_status,
            to_status=target_status,
            is_override=override,
            reason=reason,
            changed_by=user,
        )

        if override:
            ActivityLog.log(work_order, ActivityTypeChoices.STATUS_OVERRIDDEN, user, reason=reason,
                            from_status=from_status, to_status=target_status)
            NotificationService.notify_role(
                RoleChoices.MANAGER,
                f"Status override on {work_order.wo_number}",
                f"{user.display_name} moved {work_order.wo_number} from {from_status} to {target_status}: {reason}",
                work_order.wo_number,
                notification_type=NotificationTypeChoices.STATUS_CHANGE,
                priority=PriorityChoices.HIGH,
                work_order=work_order,
                created_by=user,
            )
        else:
            ActivityLog.log(work_order, ActivityTypeChoices.STATUS_CHANGED, user, reason=reason,
                            from_status=from_status, to_status=target_status)

        role = attention_role(target_status)
        if role:
            NotificationService.notify_role(
                role,
                f"{work_order.wo_number} is now {work_order.get_status_display()}",
                f"{work_order.wo_number} ({work_order.item.item_code}, {work_order.quantity_ordered} pcs) "
                f"moved from {from_status} to {target_status}.",
                work_order.wo_number,
                notification_type=NotificationTypeChoices.STATUS_CHANGE,
                work_order=work_order,
                created_by=user,
                action_required=True,
            )

        logger.info(
            f"{work_order.wo_number}: {from_status} -> {target_status}"
            f"{' (override)' if override else ''} by {user.email}"
        )
        return work_order

    @staticmethod
    @transaction.atomic
    def authorize_overage(work_order_id, qty, reason, user):
        """Allow ``qty`` more good pieces than ordered"""
        PermissionService.require_permission(user, 'work_orders', 'overage')
        if qty is None or qty <= 0:
            raise NegativeQuantity(f"Overage must be positive, got {qty}")
        if not reason:
            raise ValidationError("Authorizing an overage needs a reason")

        work_order = lock_for_update(WorkOrder, 'work order', pk=work_order_id)
        if work_order.status in (Status.COMPLETED, Status.SHIPPED):
            raise PreconditionFailed('work_order_closed', [
                f"{work_order.wo_number} is {work_order.status}"
            ])

        previous = work_order.authorized_overage_qty
        work_order.authorized_overage_qty = previous + qty
        work_order.save(update_fields=['authorized_overage_qty', 'updated_at'])

        ActivityLog.log(work_order, ActivityTypeChoices.OVERAGE_AUTHORIZED, user, reason=reason,
                        previous=previous, added=qty, total=work_order.authorized_overage_qty)
        logger.info(f"{work_order.wo_number}: overage {previous} -> {work_order.authorized_overage_qty}")
        return work_order

    @staticmethod
    def sync_stage(work_order):
        return work_order.sync_stage()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    def completion_status(work_order_id):
        """Checklist of totals, gate flags, the active batch and next-step blockers"""
        work_order = get_or_not_found(WorkOrder, 'work order', pk=work_order_id)

        active = work_order.open_batches().order_by('-batch_number').first()
        next_status = NATURAL_TRANSITIONS.get(work_order.status)
        blockers = WorkOrderLifecycle.transition_blockers(work_order, next_status) if next_status else []

        return {
            'work_order': work_order.wo_number,
            'status': work_order.status,
            'current_stage': work_order.derive_stage(),
            'quantities': {
                'ordered': work_order.quantity_ordered,
                'authorized_overage': work_order.authorized_overage_qty,
                'authorized_shortfall': work_order.authorized_shortfall_qty,
                'produced': work_order.quantity_produced,
                'rejected': work_order.quantity_rejected,
                'qc_approved': work_order.quantity_qc_approved,
                'packed': work_order.quantity_packed,
                'dispatched': work_order.quantity_dispatched,
                'external_wip': work_order.qty_external_wip,
                'remaining_to_produce': work_order.remaining_to_produce,
            },
            'gates': {
                'raw_material': QualityGate.gate_status(work_order, GateKindChoices.RAW_MATERIAL),
                'first_piece': work_order.qc_first_piece_status,
                'final': work_order.qc_final_status,
            },
            'production_complete': WorkOrderLifecycle.all_batches_production_complete(work_order),
            'dispatch_allowed': work_order.dispatch_allowed,
            'batch_count': work_order.batches.count(),
            'active_batch': active.batch_code if active else None,
            'next_status': next_status,
            'blockers': blockers,
            'quantity_violations': work_order.quantity_violations(),
        }
