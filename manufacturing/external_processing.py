"""
External processing tracker: partial send-out / return / forward cycles of
batch pieces to sub-contractors, with overdue alerts.
"""
import logging
from datetime import timedelta

from django.db import transaction
from django.db.models import Sum
from django.db.models.functions import Coalesce
from django.utils import timezone

from authentication.services import PermissionService
from notifications.services import NotificationService
from third_party.models import ExternalPartner
from utils.concurrency import get_or_not_found, lock_for_update
from utils.config import erp_setting
from utils.enums import (
    BatchLocationChoices,
    BatchStageChoices,
    ExternalMovementStatusChoices,
    NotificationTypeChoices,
    PriorityChoices,
)
from utils.exceptions import (
    ExceedsAvailable, NegativeQuantity, OverReturn, PreconditionFailed, ValidationError
)

from .batch_engine import move_stage
from .models import ExternalMovement, ExternalReceipt, ProductionBatch, WorkOrder
from .models.external import OPEN_MOVEMENT_STATUSES, outstanding_expression

logger = logging.getLogger(__name__)

SENDABLE_STAGES = (
    BatchStageChoices.CUTTING,
    BatchStageChoices.PRODUCTION,
    BatchStageChoices.EXTERNAL,
)

TRANSIT_FLOW = {
    ExternalMovementStatusChoices.SENT: (
        ExternalMovementStatusChoices.IN_TRANSIT,
        ExternalMovementStatusChoices.AT_PARTNER,
    ),
    ExternalMovementStatusChoices.IN_TRANSIT: (ExternalMovementStatusChoices.AT_PARTNER,),
}


def lock_movement(movement_id):
    """Lock work order, batch and movement in the standard order"""
    movement = get_or_not_found(ExternalMovement, 'external movement', pk=movement_id)
    work_order = lock_for_update(WorkOrder, 'work order', pk=movement.work_order_id)
    batch = lock_for_update(ProductionBatch, 'batch', pk=movement.batch_id)
    movement = lock_for_update(ExternalMovement, 'external movement', pk=movement_id)
    return work_order, batch, movement


class ExternalProcessingTracker:

    @staticmethod
    def batch_outstanding_qty(batch):
        return ExternalMovement.objects.filter(batch=batch).aggregate(
            total=Coalesce(Sum(outstanding_expression()), 0)
        )['total']

    @staticmethod
    def outstanding_qty(work_order):
        """Pieces of a work order currently with external partners"""
        return ExternalMovement.objects.filter(work_order=work_order).aggregate(
            total=Coalesce(Sum(outstanding_expression()), 0)
        )['total']

    @staticmethod
    def on_hand_qty(batch):
        """
        Good pieces physically available in the factory for send-out.
        Partner rejections are already netted out of ``good_qty`` as scrap.
        """
        return batch.good_qty - ExternalProcessingTracker.batch_outstanding_qty(batch) - batch.dispatched_qty

    @staticmethod
    @transaction.atomic
    def send_out(batch_id, partner_id, qty, expected_return_date, user, process_step=''):
        PermissionService.require_permission(user, 'external', 'send')
        if qty <= 0:
            raise NegativeQuantity(f"Send-out quantity must be positive, got {qty}")

        partner = get_or_not_found(ExternalPartner, 'external partner', pk=partner_id)
        if not partner.is_active:
            raise ValidationError(f"Partner {partner.name} is inactive")

        work_order_id = get_or_not_found(ProductionBatch, 'batch', pk=batch_id).work_order_id
        work_order = lock_for_update(WorkOrder, 'work order', pk=work_order_id)
        batch = lock_for_update(ProductionBatch, 'batch', pk=batch_id)

        if batch.stage not in SENDABLE_STAGES:
            raise PreconditionFailed('batch_stage', [
                f"batch {batch.batch_number} is at {batch.stage}; send-out happens before QC"
            ])

        on_hand = ExternalProcessingTracker.on_hand_qty(batch)
        if qty > on_hand:
            logger.warning(f"Send-out rejected for {batch.batch_code}: {qty} requested, {on_hand} on hand")
            raise ExceedsAvailable(blockers=[
                f"batch {batch.batch_number}: sending {qty}, on hand {on_hand}"
            ])

        if expected_return_date is None:
            expected_return_date = timezone.localdate() + timedelta(days=partner.default_turnaround_days)

        movement = ExternalMovement.objects.create(
            work_order=work_order,
            batch=batch,
            partner=partner,
            partner_name=partner.name,
            process_step=process_step or partner.get_process_type_display(),
            quantity_sent=qty,
            expected_return_date=expected_return_date,
            sent_by=user,
        )

        if batch.stage != BatchStageChoices.EXTERNAL:
            move_stage(batch, BatchStageChoices.EXTERNAL, user, reason=f"Sent out on {movement.challan_no}")
        batch.location = BatchLocationChoices.EXTERNAL_PARTNER
        batch.last_activity_at = timezone.now()
        batch.save(update_fields=['location', 'last_activity_at', 'updated_at'])

        work_order.refresh_quantities()
        work_order.assert_quantities()
        work_order.sync_stage()

        logger.info(f"{movement.challan_no}: {qty} pcs of {batch.batch_code} sent to {partner.name}")
        return movement

    @staticmethod
    @transaction.atomic
    def update_transit(movement_id, status, user):
        """sent -> in_transit -> at_partner"""
        PermissionService.require_permission(user, 'external', 'transit')

        work_order, batch, movement = lock_movement(movement_id)
        allowed = TRANSIT_FLOW.get(movement.status, ())
        if status not in allowed:
            raise PreconditionFailed('invalid_transit_status', [
                f"{movement.challan_no}: {movement.status} -> {status} is not allowed"
            ])

        movement.status = status
        movement.save(update_fields=['status', 'updated_at'])

        batch.location = (
            BatchLocationChoices.TRANSIT
            if status == ExternalMovementStatusChoices.IN_TRANSIT
            else BatchLocationChoices.EXTERNAL_PARTNER
        )
        batch.save(update_fields=['location', 'updated_at'])

        logger.info(f"{movement.challan_no} is now {status}")
        return movement

    @staticmethod
    @transaction.atomic
    def receive_return(movement_id, qty_returned, qty_rejected, user, remarks=''):
        """
        Book pieces back from a partner. Rejections count as batch scrap.
        """
        PermissionService.require_permission(user, 'external', 'receive')
        if qty_returned < 0 or qty_rejected < 0:
            raise NegativeQuantity("Returned and rejected quantities cannot be negative")
        if qty_returned == 0 and qty_rejected == 0:
            raise ValidationError("Nothing to receive")

        work_order, batch, movement = lock_movement(movement_id)

        outstanding = movement.outstanding_qty
        if qty_returned + qty_rejected > outstanding:
            logger.warning(
                f"Over-return on {movement.challan_no}: {qty_returned} + {qty_rejected} > {outstanding}"
            )
            raise OverReturn(blockers=[
                f"{movement.challan_no}: receiving {qty_returned + qty_rejected}, outstanding {outstanding}"
            ])

        now = timezone.now()
        ExternalReceipt.objects.create(
            movement=movement,
            quantity_returned=qty_returned,
            quantity_rejected=qty_rejected,
            received_by=user,
            remarks=remarks,
        )

        movement.quantity_returned += qty_returned
        movement.quantity_rejected += qty_rejected
        movement.status = (
            ExternalMovementStatusChoices.RETURNED
            if movement.outstanding_qty == 0
            else ExternalMovementStatusChoices.PARTIALLY_RETURNED
        )
        movement.last_received_at = now
        movement.save(update_fields=[
            'quantity_returned', 'quantity_rejected', 'status', 'last_received_at', 'updated_at'
        ])

        batch.rejected_qty += qty_rejected
        if ExternalProcessingTracker.batch_outstanding_qty(batch) == 0:
            batch.location = BatchLocationChoices.FACTORY
        batch.last_activity_at = now
        batch.save(update_fields=['rejected_qty', 'location', 'last_activity_at', 'updated_at'])

        work_order.refresh_quantities()
        work_order.assert_quantities()

        if qty_returned:
            NotificationService.notify_role(
                erp_setting('QC_NOTIFY_ROLE'),
                f"Post-external inspection pending: {batch.batch_code}",
                f"{qty_returned} pcs returned from {movement.partner_name} on {movement.challan_no}.",
                movement.challan_no,
                notification_type=NotificationTypeChoices.QC_PENDING,
                work_order=work_order,
                batch=batch,
                created_by=user,
                action_required=True,
            )

        logger.info(
            f"{movement.challan_no}: returned {qty_returned}, rejected {qty_rejected}, "
            f"outstanding {movement.outstanding_qty}"
        )
        return movement

    @staticmethod
    @transaction.atomic
    def forward(movement_id, next_partner_id, user, expected_return_date=None, process_step=''):
        """
        Move everything still outstanding at one partner straight on to the next
        """
        PermissionService.require_permission(user, 'external', 'forward')

        next_partner = get_or_not_found(ExternalPartner, 'external partner', pk=next_partner_id)
        work_order, batch, movement = lock_movement(movement_id)

        outstanding = movement.outstanding_qty
        if outstanding <= 0 or not movement.is_open:
            raise PreconditionFailed('nothing_outstanding', [
                f"{movement.challan_no} has nothing outstanding to forward"
            ])
        if next_partner.pk == movement.partner_id:
            raise ValidationError("Cannot forward a movement to the same partner")

        if expected_return_date is None:
            expected_return_date = timezone.localdate() + timedelta(days=next_partner.default_turnaround_days)

        movement.quantity_forwarded += outstanding
        movement.status = ExternalMovementStatusChoices.FORWARDED
        movement.save(update_fields=['quantity_forwarded', 'status', 'updated_at'])

        onward = ExternalMovement.objects.create(
            work_order=work_order,
            batch=batch,
            partner=next_partner,
            partner_name=next_partner.name,
            process_step=process_step or next_partner.get_process_type_display(),
            quantity_sent=outstanding,
            expected_return_date=expected_return_date,
            forwarded_from=movement,
            sent_by=user,
        )

        batch.last_activity_at = timezone.now()
        batch.save(update_fields=['last_activity_at', 'updated_at'])
        work_order.refresh_quantities()
        work_order.assert_quantities()

        logger.info(
            f"{movement.challan_no}: {outstanding} pcs forwarded from {movement.partner_name} "
            f"to {next_partner.name} on {onward.challan_no}"
        )
        return onward

    @staticmethod
    def open_movements():
        return ExternalMovement.objects.filter(status__in=OPEN_MOVEMENT_STATUSES).select_related(
            'work_order', 'batch', 'partner'
        )

    @staticmethod
    def overdue_movements(as_of=None):
        as_of = as_of or timezone.localdate()
        return ExternalProcessingTracker.open_movements().filter(
            expected_return_date__lt=as_of
        ).order_by('expected_return_date')

    @staticmethod
    def due_soon_movements(days=None, as_of=None):
        as_of = as_of or timezone.localdate()
        days = erp_setting('EXTERNAL_DUE_SOON_DAYS') if days is None else days
        return ExternalProcessingTracker.open_movements().filter(
            expected_return_date__gte=as_of,
            expected_return_date__lte=as_of + timedelta(days=days),
        ).order_by('expected_return_date')

    @staticmethod
    def notify_overdue(as_of=None):
        """
        Alert the logistics role about overdue and soon-due returns.
        Alerts only; nothing is blocked. Returns the counts sent.
        """
        as_of = as_of or timezone.localdate()
        role = erp_setting('LOGISTICS_NOTIFY_ROLE')

        overdue = list(ExternalProcessingTracker.overdue_movements(as_of))
        for movement in overdue:
            days = movement.days_overdue(as_of)
            logger.warning(
                f"{movement.challan_no} overdue by {days} day(s) at {movement.partner_name} "
                f"({movement.outstanding_qty} pcs)"
            )
            NotificationService.notify_role(
                role,
                f"External return overdue: {movement.challan_no}",
                f"{movement.outstanding_qty} pcs of {movement.batch.batch_code} at {movement.partner_name} "
                f"were due on {movement.expected_return_date} ({days} day(s) overdue).",
                movement.challan_no,
                notification_type=NotificationTypeChoices.EXTERNAL_OVERDUE,
                priority=PriorityChoices.HIGH,
                work_order=movement.work_order,
                batch=movement.batch,
                action_required=True,
            )

        due_soon = list(ExternalProcessingTracker.due_soon_movements(as_of=as_of))
        for movement in due_soon:
            NotificationService.notify_role(
                role,
                f"External return due soon: {movement.challan_no}",
                f"{movement.outstanding_qty} pcs of {movement.batch.batch_code} at {movement.partner_name} "
                f"are due on {movement.expected_return_date}.",
                movement.challan_no,
                notification_type=NotificationTypeChoices.EXTERNAL_DUE_SOON,
                work_order=movement.work_order,
                batch=movement.batch,
            )

        return {'overdue': len(overdue), 'due_soon': len(due_soon)}
