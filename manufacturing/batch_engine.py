"""
Production batch engine: batch continuity, production recording and stage
moves guarded by the quality gates.

Lock order everywhere: work order -> batch.
"""
import logging
from datetime import timedelta

from django.db import transaction
from django.utils import timezone

from authentication.services import PermissionService
from quality.gate import QualityGate
from utils.concurrency import get_or_not_found, lock_for_update
from utils.config import erp_setting
from utils.enums import (
    ActivityTypeChoices,
    BatchLocationChoices,
    BatchStageChoices,
    BatchTriggerChoices,
    GateKindChoices,
    WorkOrderStatusChoices,
)
from utils.exceptions import (
    BatchClosed, GateNotSatisfied, NegativeQuantity, PreconditionFailed, ValidationError
)

from .models import ActivityLog, BatchStageHistory, ProductionBatch, WorkOrder
from .models.batch import STAGE_RANK

logger = logging.getLogger(__name__)

# Work orders that can still take production
PRODUCING_STATUSES = (
    WorkOrderStatusChoices.IN_PROGRESS,
    WorkOrderStatusChoices.QC,
    WorkOrderStatusChoices.PACKING,
)
BATCHABLE_STATUSES = (WorkOrderStatusChoices.PENDING,) + PRODUCING_STATUSES


def lock_batch(batch_id):
    """Lock a batch and its work order in the standard order"""
    work_order_id = get_or_not_found(ProductionBatch, 'batch', pk=batch_id).work_order_id
    work_order = lock_for_update(WorkOrder, 'work order', pk=work_order_id)
    batch = lock_for_update(ProductionBatch, 'batch', pk=batch_id)
    return work_order, batch


def move_stage(batch, new_stage, user, is_override=False, reason=''):
    """Persist a stage change with its history row; no checks"""
    old_stage = batch.stage
    batch.stage = new_stage
    if new_stage == BatchStageChoices.PACKING:
        batch.location = BatchLocationChoices.PACKED
    elif new_stage == BatchStageChoices.DISPATCHED:
        batch.location = BatchLocationChoices.DISPATCHED
    elif batch.location in (BatchLocationChoices.PACKED, BatchLocationChoices.DISPATCHED):
        batch.location = BatchLocationChoices.FACTORY
    batch.last_activity_at = timezone.now()
    batch.save(update_fields=['stage', 'location', 'last_activity_at', 'updated_at'])

    BatchStageHistory.objects.create(
        batch=batch,
        from_stage=old_stage,
        to_stage=new_stage,
        is_override=is_override,
        reason=reason,
        changed_by=user,
    )
    return old_stage


class BatchEngine:

    @staticmethod
    def _continuity_break(work_order, latest, threshold_days, material_lot, shift):
        """Return the trigger for a new batch, or None when ``latest`` continues"""
        if latest is None:
            return BatchTriggerChoices.INITIAL
        if latest.is_ended:
            return BatchTriggerChoices.RESUMED
        if latest.production_complete:
            return BatchTriggerChoices.POST_COMPLETE
        if work_order.dispatch_allocations.filter(allocated_at__gt=latest.started_at).exists():
            return BatchTriggerChoices.POST_DISPATCH
        if timezone.now() - latest.last_activity_at > timedelta(days=threshold_days):
            return BatchTriggerChoices.GAP_RESTART
        material_lot_id = getattr(material_lot, 'pk', material_lot)
        if material_lot_id and latest.material_lot_id and material_lot_id != latest.material_lot_id:
            return BatchTriggerChoices.MATERIAL_CHANGE
        if shift and latest.shift and shift != latest.shift:
            return BatchTriggerChoices.SHIFT_CHANGE
        return None

    @staticmethod
    @transaction.atomic
    def get_or_create_batch(work_order_id, user, gap_threshold_days=None, material_lot=None, shift=None):
        """
        Return the active batch of a work order, opening a new one when
        production continuity is broken. A still-open predecessor is ended.
        """
        PermissionService.require_permission(user, 'production', 'batch')
        if gap_threshold_days is None:
            gap_threshold_days = erp_setting('BATCH_GAP_THRESHOLD_DAYS')

        work_order = lock_for_update(WorkOrder, 'work order', pk=work_order_id)
        if work_order.status not in BATCHABLE_STATUSES:
            raise PreconditionFailed('work_order_closed', [
                f"{work_order.wo_number} is {work_order.status}; no new production batches"
            ])

        latest = work_order.batches.order_by('-batch_number').first()
        if latest is not None:
            latest = lock_for_update(ProductionBatch, 'batch', pk=latest.pk)

        trigger = BatchEngine._continuity_break(work_order, latest, gap_threshold_days, material_lot, shift)
        if trigger is None:
            return latest

        remaining = work_order.remaining_to_produce
        if remaining <= 0:
            raise PreconditionFailed('work_order_fulfilled', [
                f"{work_order.wo_number} has produced {work_order.quantity_produced} of {work_order.max_producible_qty}"
            ])

        now = timezone.now()
        if latest is not None and latest.accepts_production:
            latest.ended_at = now
            latest.end_reason = f"Superseded ({trigger})"
            latest.save(update_fields=['ended_at', 'end_reason', 'updated_at'])
            ActivityLog.log(work_order, ActivityTypeChoices.BATCH_ENDED, user, batch=latest,
                            reason=latest.end_reason)

        batch = ProductionBatch.objects.create(
            work_order=work_order,
            batch_number=(latest.batch_number + 1) if latest else 1,
            previous_batch=latest,
            trigger_reason=trigger,
            material_lot_id=getattr(material_lot, 'pk', material_lot),
            shift=shift or (latest.shift if latest else None),
            planned_qty=remaining,
            started_at=now,
            last_activity_at=now,
            created_by=user,
        )
        ActivityLog.log(work_order, ActivityTypeChoices.BATCH_CREATED, user, batch=batch,
                        trigger=trigger, planned_qty=remaining,
                        previous_batch=latest.batch_code if latest else None)
        work_order.sync_stage()

        logger.info(f"Batch {batch.batch_code} opened ({trigger}) for {remaining} pcs")
        return batch

    @staticmethod
    @transaction.atomic
    def record_production(batch_id, qty_ok, qty_scrap, user):
        """Add produced pieces (good and scrap) to an open batch"""
        PermissionService.require_permission(user, 'production', 'record')

        if qty_ok < 0 or qty_scrap < 0:
            raise NegativeQuantity(f"Production quantities cannot be negative (ok={qty_ok}, scrap={qty_scrap})")
        if qty_ok == 0 and qty_scrap == 0:
            raise ValidationError("Nothing to record")

        work_order, batch = lock_batch(batch_id)

        if not batch.accepts_production:
            state = 'production complete' if batch.production_complete else 'ended'
            logger.warning(f"Production rejected on {batch.batch_code}: batch is {state}")
            raise BatchClosed(blockers=[f"batch {batch.batch_code} is {state}"])
        if work_order.status not in PRODUCING_STATUSES:
            raise PreconditionFailed('work_order_not_started', [
                f"{work_order.wo_number} is {work_order.status}; production needs an in-progress work order"
            ])
        if batch.stage not in (BatchStageChoices.CUTTING, BatchStageChoices.PRODUCTION):
            raise PreconditionFailed('batch_stage', [
                f"batch {batch.batch_code} is at {batch.stage}; production is recorded at cutting or production"
            ])

        if work_order.quantity_produced + qty_ok > work_order.max_producible_qty:
            logger.warning(
                f"Over-production rejected on {work_order.wo_number}: "
                f"{work_order.quantity_produced} + {qty_ok} > {work_order.max_producible_qty}"
            )
            raise PreconditionFailed('over_production', [
                f"{work_order.wo_number}: {work_order.quantity_produced} + {qty_ok} good pieces exceeds "
                f"ordered {work_order.quantity_ordered} + authorized overage {work_order.authorized_overage_qty}"
            ])

        if batch.stage == BatchStageChoices.CUTTING:
            move_stage(batch, BatchStageChoices.PRODUCTION, user)

        batch.produced_qty += qty_ok + qty_scrap
        batch.rejected_qty += qty_scrap
        batch.last_activity_at = timezone.now()
        batch.save(update_fields=['produced_qty', 'rejected_qty', 'last_activity_at', 'updated_at'])

        work_order.refresh_quantities()
        work_order.assert_quantities()
        work_order.sync_stage()

        ActivityLog.log(work_order, ActivityTypeChoices.PRODUCTION_RECORDED, user, batch=batch,
                        qty_ok=qty_ok, qty_scrap=qty_scrap)
        logger.info(f"{batch.batch_code}: +{qty_ok} ok, +{qty_scrap} scrap by {user.email}")
        return batch

    @staticmethod
    @transaction.atomic
    def mark_production_complete(batch_id, reason, user):
        """Close a batch for production; QC, packing and dispatch continue"""
        PermissionService.require_permission(user, 'production', 'complete')

        work_order, batch = lock_batch(batch_id)
        if batch.production_complete:
            raise BatchClosed(blockers=[f"batch {batch.batch_code} is already production complete"])

        batch.production_complete = True
        batch.production_complete_reason = reason or ''
        batch.production_completed_at = timezone.now()
        batch.last_activity_at = batch.production_completed_at
        batch.save(update_fields=[
            'production_complete', 'production_complete_reason', 'production_completed_at',
            'last_activity_at', 'updated_at'
        ])

        ActivityLog.log(work_order, ActivityTypeChoices.PRODUCTION_COMPLETED, user, batch=batch,
                        reason=reason or '', produced_qty=batch.produced_qty, good_qty=batch.good_qty)
        logger.info(f"{batch.batch_code} production complete: {batch.good_qty} good pcs")
        return batch

    @staticmethod
    def qc_entry_blockers(batch):
        blockers = []
        for gate in QualityGate.required_gates(batch):
            blockers.extend(QualityGate.gate_blockers(batch, gate))

        from .external_processing import ExternalProcessingTracker
        outstanding = ExternalProcessingTracker.batch_outstanding_qty(batch)
        if outstanding > 0:
            blockers.append(f"{outstanding} pcs of batch {batch.batch_number} still at external partners")
        return blockers

    @staticmethod
    def packing_entry_blockers(batch):
        blockers = list(QualityGate.gate_blockers(batch, GateKindChoices.FINAL))
        if batch.available_for_packing <= 0:
            blockers.append(f"batch {batch.batch_number} has no QC-approved quantity available for packing")
        return blockers

    @staticmethod
    def stage_blockers(batch, new_stage):
        """Every unmet condition for moving ``batch`` forward to ``new_stage``"""
        target_rank = STAGE_RANK[new_stage]
        blockers = []
        if batch.stage_rank < STAGE_RANK[BatchStageChoices.QC] <= target_rank:
            blockers.extend(BatchEngine.qc_entry_blockers(batch))
        if batch.stage_rank < STAGE_RANK[BatchStageChoices.PACKING] <= target_rank:
            blockers.extend(BatchEngine.packing_entry_blockers(batch))
        if new_stage == BatchStageChoices.DISPATCHED and batch.dispatched_qty <= 0:
            blockers.append(f"batch {batch.batch_number} has nothing dispatched")
        return blockers

    @staticmethod
    @transaction.atomic
    def advance_stage(batch_id, new_stage, user, override=False, reason=''):
        """
        Move a batch along cutting -> production -> external -> qc -> packing
        -> dispatched. Forward moves must clear their gates; backward moves
        need an override with a reason.
        """
        PermissionService.require_permission(user, 'production', 'advance')
        if new_stage not in BatchStageChoices.values:
            raise ValidationError(f"Unknown batch stage '{new_stage}'")
        if override:
            PermissionService.require_permission(user, 'production', 'override')
            if not reason:
                raise ValidationError("An override needs a reason")

        work_order, batch = lock_batch(batch_id)
        if batch.stage == new_stage:
            return batch

        backward = STAGE_RANK[new_stage] < batch.stage_rank
        if backward and not override:
            raise PreconditionFailed('backward_stage_move', [
                f"batch {batch.batch_number}: {batch.stage} -> {new_stage} is backward and needs an override"
            ])

        if not backward:
            blockers = BatchEngine.stage_blockers(batch, new_stage)
            if blockers:
                logger.warning(f"{batch.batch_code} -> {new_stage} blocked: {'; '.join(blockers)}")
                raise GateNotSatisfied(blockers=blockers)

        old_stage = move_stage(batch, new_stage, user, is_override=backward, reason=reason)
        work_order.sync_stage()

        ActivityLog.log(
            work_order,
            ActivityTypeChoices.STAGE_OVERRIDDEN if backward else ActivityTypeChoices.STAGE_CHANGED,
            user, batch=batch, reason=reason, from_stage=old_stage, to_stage=new_stage
        )
        logger.info(f"{batch.batch_code}: {old_stage} -> {new_stage}{' (override)' if backward else ''}")
        return batch

    @staticmethod
    @transaction.atomic
    def block_dispatch(batch_id, reason, user):
        PermissionService.require_permission(user, 'dispatch', 'block')
        if not reason:
            raise ValidationError("Blocking dispatch needs a reason")

        work_order, batch = lock_batch(batch_id)
        batch.dispatch_allowed = False
        batch.dispatch_block_reason = reason
        batch.save(update_fields=['dispatch_allowed', 'dispatch_block_reason', 'updated_at'])

        ActivityLog.log(work_order, ActivityTypeChoices.DISPATCH_BLOCKED, user, batch=batch, reason=reason)
        logger.warning(f"Dispatch blocked for {batch.batch_code}: {reason}")
        return batch

    @staticmethod
    @transaction.atomic
    def release_dispatch(batch_id, user, reason=''):
        PermissionService.require_permission(user, 'dispatch', 'release')

        work_order, batch = lock_batch(batch_id)
        previous_reason = batch.dispatch_block_reason
        batch.dispatch_allowed = True
        batch.dispatch_block_reason = ''
        batch.save(update_fields=['dispatch_allowed', 'dispatch_block_reason', 'updated_at'])

        ActivityLog.log(work_order, ActivityTypeChoices.DISPATCH_RELEASED, user, batch=batch,
                        reason=reason, previous_block_reason=previous_reason)
        logger.info(f"Dispatch released for {batch.batch_code}")
        return batch

    @staticmethod
    @transaction.atomic
    def end_batch(batch_id, reason, user):
        """Close a batch by hand; the next production opens a resumed batch"""
        PermissionService.require_permission(user, 'production', 'end')
        if not reason:
            raise ValidationError("Ending a batch needs a reason")

        work_order, batch = lock_batch(batch_id)
        if batch.is_ended:
            raise BatchClosed(blockers=[f"batch {batch.batch_code} was already ended"])

        batch.ended_at = timezone.now()
        batch.end_reason = reason
        batch.save(update_fields=['ended_at', 'end_reason', 'updated_at'])
        work_order.sync_stage()

        ActivityLog.log(work_order, ActivityTypeChoices.BATCH_ENDED, user, batch=batch, reason=reason)
        logger.info(f"{batch.batch_code} ended: {reason}")
        return batch
