from fg_store.models import DispatchAllocation
from fg_store.reconciliation import DispatchReconciliation
from manufacturing.batch_engine import BatchEngine
from manufacturing.lifecycle import WorkOrderLifecycle
from manufacturing.models import ActivityLog, BatchStageHistory
from notifications.models import WorkflowNotification
from utils.enums import (
    ActivityTypeChoices,
    BatchStageChoices,
    BatchTriggerChoices,
    NotificationTypeChoices,
    QCTypeChoices,
    RoleChoices,
    WorkOrderStageChoices,
    WorkOrderStatusChoices,
)
from utils.exceptions import (
    Conflict,
    DispatchNotAllowed,
    ExceedsApproved,
    ExceedsAvailable,
    NegativeQuantity,
    PreconditionFailed,
    Unauthorized,
    ValidationError,
)
from utils.test_helpers import ERPTestCase

Status = WorkOrderStatusChoices


class DispatchTestBase(ERPTestCase):

    def setUp(self):
        super().setUp()
        self.logistics = self.make_user('logistics@example.com', RoleChoices.LOGISTICS)
        self.work_order, self.batch = self.prepare_for_packing()

    def allocate(self, qty, reference='INV-1', destination='Acme Pune plant', batch=None):
        batch = batch or self.batch
        return DispatchReconciliation.allocate(batch.pk, qty, destination, reference, self.logistics)


class PartialDispatchTest(DispatchTestBase):
    """A short run packed and dispatched in full keeps the work order open"""

    def test_partial_production_dispatch(self):
        DispatchReconciliation.pack(self.batch.pk, 590, self.manager)
        allocation = self.allocate(590)

        work_order = self.reload(self.work_order)
        self.assertEqual(work_order.status, Status.PACKING)
        self.assertEqual(work_order.quantity_produced, 590)
        self.assertEqual(work_order.quantity_rejected, 10)
        self.assertEqual(work_order.quantity_qc_approved, 590)
        self.assertEqual(work_order.quantity_packed, 590)
        self.assertEqual(work_order.quantity_dispatched, 590)
        self.assertEqual(work_order.quantity_violations(), [])
        self.assertTrue(allocation.dispatch_number.startswith('DN-'))
        self.assertEqual(allocation.customer_name, 'Acme Automotive')

        batch = self.reload(self.batch)
        self.assertEqual(batch.stage, BatchStageChoices.DISPATCHED)

        with self.assertRaises(PreconditionFailed) as ctx:
            WorkOrderLifecycle.transition(work_order.pk, Status.COMPLETED, self.manager)
        self.assertIn('packed 590 of 1000 required', ctx.exception.blockers[0])

    def test_short_close_completes_and_ships(self):
        DispatchReconciliation.pack(self.batch.pk, 590, self.manager)
        self.allocate(590)
        production_head = self.make_user('head@example.com', RoleChoices.PRODUCTION_HEAD)

        with self.captureOnCommitCallbacks(execute=True):
            record = DispatchReconciliation.short_close(self.work_order.pk, 'Customer cancelled balance', self.manager)

        self.assertEqual(record.shortfall_qty, 410)
        self.assertEqual(record.quantity_packed, 590)

        work_order = self.reload(self.work_order)
        self.assertEqual(work_order.status, Status.COMPLETED)
        self.assertEqual(work_order.authorized_shortfall_qty, 410)
        self.assertEqual(work_order.required_packed_qty, 590)
        self.assertTrue(ActivityLog.objects.filter(
            work_order=work_order, activity_type=ActivityTypeChoices.SHORT_CLOSED
        ).exists())
        self.assertTrue(WorkflowNotification.objects.filter(
            recipient=production_head, notification_type=NotificationTypeChoices.SHORT_CLOSE
        ).exists())

        work_order = WorkOrderLifecycle.transition(work_order.pk, Status.SHIPPED, self.manager)
        self.assertEqual(work_order.status, Status.SHIPPED)
        self.assertEqual(work_order.current_stage, WorkOrderStageChoices.DISPATCH)


class AllocateTest(DispatchTestBase):
    """Test cases for dispatch allocation"""

    def setUp(self):
        super().setUp()
        DispatchReconciliation.pack(self.batch.pk, 400, self.manager)

    def test_replay_returns_original(self):
        first = self.allocate(100)
        again = self.allocate(100)

        self.assertEqual(first.pk, again.pk)
        self.assertEqual(DispatchAllocation.objects.count(), 1)
        self.assertEqual(self.reload(self.batch).dispatched_qty, 100)

    def test_reference_with_different_payload_conflicts(self):
        self.allocate(100)

        with self.assertRaises(Conflict):
            self.allocate(120)
        with self.assertRaises(Conflict):
            self.allocate(100, destination='Acme Chennai plant')
        self.assertEqual(self.reload(self.batch).dispatched_qty, 100)

    def test_cannot_dispatch_more_than_packed(self):
        with self.assertRaises(ExceedsApproved):
            self.allocate(401)

        self.allocate(300)
        with self.assertRaises(ExceedsApproved):
            self.allocate(101, reference='INV-2')

    def test_blocked_batch_cannot_dispatch(self):
        BatchEngine.block_dispatch(self.batch.pk, 'Burr on flange face', self.inspector)

        with self.assertRaises(DispatchNotAllowed) as ctx:
            self.allocate(100)
        self.assertIn('Burr on flange face', ctx.exception.blockers[0])

        BatchEngine.release_dispatch(self.batch.pk, self.inspector)
        self.assertEqual(self.allocate(100).quantity, 100)

    def test_failed_final_reinspection_stops_dispatch(self):
        self.record_qc(self.work_order, QCTypeChoices.FINAL, 'fail', batch=self.batch)

        with self.assertRaises(DispatchNotAllowed) as ctx:
            self.allocate(100)
        self.assertIn('final QC not passed for batch 1 (latest: fail)', ctx.exception.blockers)
        self.assertEqual(self.reload(self.batch).dispatched_qty, 0)

        self.record_qc(self.work_order, QCTypeChoices.FINAL, 'pass', batch=self.batch)
        self.assertEqual(self.allocate(100).quantity, 100)

    def test_work_order_before_packing_cannot_dispatch(self):
        WorkOrderLifecycle.transition(self.work_order.pk, Status.QC, self.manager, override=True, reason='Recheck')

        with self.assertRaises(DispatchNotAllowed):
            self.allocate(100)

    def test_partial_dispatch_keeps_batch_in_packing(self):
        self.allocate(100)
        self.assertEqual(self.reload(self.batch).stage, BatchStageChoices.PACKING)

    def test_reference_and_destination_required(self):
        with self.assertRaises(ValidationError):
            self.allocate(10, reference='')
        with self.assertRaises(ValidationError):
            self.allocate(10, destination='')
        with self.assertRaises(NegativeQuantity):
            self.allocate(0)

    def test_packer_cannot_allocate(self):
        packer = self.make_user('packer@example.com', RoleChoices.PACKING)
        with self.assertRaises(Unauthorized):
            DispatchReconciliation.allocate(self.batch.pk, 10, 'Acme', 'INV-9', packer)

    def test_dispatch_after_new_batch_starts_opens_another(self):
        second = BatchEngine.get_or_create_batch(self.work_order.pk, user=self.manager)
        self.assertEqual(second.trigger_reason, BatchTriggerChoices.POST_COMPLETE)

        self.allocate(100)
        third = BatchEngine.get_or_create_batch(self.work_order.pk, user=self.manager)

        self.assertEqual(third.trigger_reason, BatchTriggerChoices.POST_DISPATCH)
        self.assertEqual(self.reload(second).end_reason, 'Superseded (post_dispatch)')


class ShortCloseTest(DispatchTestBase):
    """Test cases for short close preconditions"""

    def test_short_close_needs_reason(self):
        with self.assertRaises(ValidationError):
            DispatchReconciliation.short_close(self.work_order.pk, '', self.manager)

    def test_pending_work_order_cannot_short_close(self):
        work_order = self.create_work_order()
        with self.assertRaises(PreconditionFailed) as ctx:
            DispatchReconciliation.short_close(work_order.pk, 'Cancelled', self.manager)
        self.assertEqual(ctx.exception.kind, 'short_close_not_allowed')

    def test_in_progress_short_close_keeps_status(self):
        work_order, batch = self.start_work_order(quantity=200)

        DispatchReconciliation.short_close(work_order.pk, 'Material shortage', self.manager)

        work_order = self.reload(work_order)
        self.assertEqual(work_order.status, Status.IN_PROGRESS)
        self.assertEqual(work_order.authorized_shortfall_qty, 200)

    def test_nothing_short(self):
        work_order, batch = self.prepare_for_packing(quantity=100, good=100, scrap=0)
        DispatchReconciliation.pack(batch.pk, 100, self.manager)

        with self.assertRaises(PreconditionFailed) as ctx:
            DispatchReconciliation.short_close(work_order.pk, 'Close', self.manager)
        self.assertEqual(ctx.exception.kind, 'nothing_short')


class ReverseTest(DispatchTestBase):
    """Test cases for dispatch reversal"""

    def setUp(self):
        super().setUp()
        DispatchReconciliation.pack(self.batch.pk, 590, self.manager)
        self.allocation = self.allocate(590)

    def test_reverse_part_of_allocation(self):
        reversal = DispatchReconciliation.reverse(self.allocation.pk, 90, 'Truck overloaded', self.logistics)

        allocation = self.reload(self.allocation)
        self.assertEqual(reversal.quantity, 90)
        self.assertEqual(allocation.net_qty, 500)
        self.assertTrue(allocation.is_live)

        batch = self.reload(self.batch)
        self.assertEqual(batch.dispatched_qty, 500)
        self.assertEqual(batch.dispatchable_qty, 90)
        self.assertEqual(batch.stage, BatchStageChoices.PACKING)
        self.assertTrue(BatchStageHistory.objects.filter(
            batch=batch, from_stage=BatchStageChoices.DISPATCHED, to_stage=BatchStageChoices.PACKING,
            is_override=True,
        ).exists())
        self.assertEqual(self.reload(self.work_order).quantity_dispatched, 500)

    def test_cannot_reverse_more_than_allocated(self):
        DispatchReconciliation.reverse(self.allocation.pk, 590, 'Shipment cancelled', self.logistics)

        self.assertFalse(self.reload(self.allocation).is_live)
        with self.assertRaises(ExceedsAvailable):
            DispatchReconciliation.reverse(self.allocation.pk, 1, 'Again', self.logistics)

    def test_reversal_needs_reason(self):
        with self.assertRaises(ValidationError):
            DispatchReconciliation.reverse(self.allocation.pk, 10, '', self.logistics)
