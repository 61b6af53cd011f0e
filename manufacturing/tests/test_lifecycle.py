from manufacturing.batch_engine import BatchEngine
from manufacturing.lifecycle import WorkOrderLifecycle, attention_role
from manufacturing.models import ActivityLog, WorkOrderStatusHistory
from notifications.models import WorkflowNotification
from utils.enums import (
    ActivityTypeChoices,
    BatchStageChoices,
    GateStatusChoices,
    RoleChoices,
    WorkOrderStageChoices,
    WorkOrderStatusChoices,
)
from utils.exceptions import NegativeQuantity, PreconditionFailed, Unauthorized, ValidationError
from utils.test_helpers import ERPTestCase

Status = WorkOrderStatusChoices


class CreateWorkOrderTest(ERPTestCase):
    """Test cases for opening work orders"""

    def test_create_work_order(self):
        work_order = self.create_work_order(quantity=500, sales_order_no='SO-77', sales_order_line=2)

        self.assertTrue(work_order.wo_number.startswith('WO-'))
        self.assertEqual(work_order.status, Status.PENDING)
        self.assertEqual(work_order.current_stage, WorkOrderStageChoices.GOODS_IN)
        self.assertEqual(work_order.customer, self.customer)
        self.assertEqual(work_order.customer_name, 'Acme Automotive')

        history = work_order.status_history.get()
        self.assertEqual(history.from_status, '')
        self.assertEqual(history.to_status, Status.PENDING)
        self.assertTrue(ActivityLog.objects.filter(
            work_order=work_order, activity_type=ActivityTypeChoices.WORK_ORDER_CREATED
        ).exists())

    def test_work_order_numbers_are_unique(self):
        first = self.create_work_order()
        second = self.create_work_order()
        self.assertNotEqual(first.wo_number, second.wo_number)

    def test_quantity_must_be_positive(self):
        with self.assertRaises(NegativeQuantity):
            self.create_work_order(quantity=0)

    def test_operator_cannot_create(self):
        with self.assertRaises(Unauthorized):
            WorkOrderLifecycle.create_work_order(self.operator, self.item, 10)


class TransitionTest(ERPTestCase):
    """Test cases for status transitions and their preconditions"""

    def test_start_needs_material_and_batch(self):
        work_order = self.create_work_order()

        with self.assertRaises(PreconditionFailed) as ctx:
            WorkOrderLifecycle.transition(work_order.pk, Status.IN_PROGRESS, self.manager)

        self.assertEqual(ctx.exception.kind, 'transition_blocked')
        self.assertEqual(len(ctx.exception.blockers), 2)
        self.assertIn(f"{work_order.wo_number} has no production batch", ctx.exception.blockers)

    def test_start(self):
        work_order, batch = self.start_work_order()

        self.assertEqual(work_order.status, Status.IN_PROGRESS)
        self.assertIsNotNone(work_order.started_at)
        self.assertEqual(work_order.current_stage, WorkOrderStageChoices.CUTTING)

    def test_skipping_a_status_is_blocked(self):
        work_order = self.create_work_order()

        with self.assertRaises(PreconditionFailed) as ctx:
            WorkOrderLifecycle.transition(work_order.pk, Status.PACKING, self.manager)
        self.assertIn('not a natural transition', ctx.exception.blockers[0])

    def test_qc_needs_every_batch_complete(self):
        work_order, batch = self.start_work_order()
        BatchEngine.record_production(batch.pk, 100, 0, self.operator)

        with self.assertRaises(PreconditionFailed) as ctx:
            WorkOrderLifecycle.transition(work_order.pk, Status.QC, self.manager)
        self.assertEqual(ctx.exception.blockers, ['batch 1 is not production complete'])

        BatchEngine.mark_production_complete(batch.pk, 'Short run', self.manager)
        work_order = WorkOrderLifecycle.transition(work_order.pk, Status.QC, self.manager)

        self.assertEqual(work_order.status, Status.QC)
        self.assertTrue(work_order.production_complete)
        self.assertEqual(work_order.production_complete_qty, 100)
        self.assertEqual(work_order.production_completed_by, self.manager)
        self.assertEqual(work_order.current_stage, WorkOrderStageChoices.QC)

    def test_packing_needs_final_inspection(self):
        work_order, batch = self.start_work_order()
        BatchEngine.record_production(batch.pk, 100, 0, self.operator)
        BatchEngine.mark_production_complete(batch.pk, '', self.manager)
        WorkOrderLifecycle.transition(work_order.pk, Status.QC, self.manager)

        with self.assertRaises(PreconditionFailed) as ctx:
            WorkOrderLifecycle.transition(work_order.pk, Status.PACKING, self.manager)
        self.assertEqual(ctx.exception.blockers, ['final QC not passed for batch 1 (no record)'])

    def test_completed_needs_packed_quantity(self):
        work_order, batch = self.prepare_for_packing()

        with self.assertRaises(PreconditionFailed) as ctx:
            WorkOrderLifecycle.transition(work_order.pk, Status.COMPLETED, self.manager)
        self.assertIn('packed 0 of 1000 required', ctx.exception.blockers[0])

    def test_shipped_needs_allocation(self):
        work_order, batch = self.prepare_for_packing()

        self.assertEqual(
            WorkOrderLifecycle.transition_blockers(work_order, Status.SHIPPED),
            [f"{work_order.wo_number} has no dispatch allocation"],
        )

    def test_status_history_and_notification(self):
        packer = self.make_user('packer@example.com', RoleChoices.PACKING)

        with self.captureOnCommitCallbacks(execute=True):
            work_order, batch = self.prepare_for_packing()

        self.assertEqual(
            list(work_order.status_history.order_by('id').values_list('to_status', flat=True)),
            [Status.PENDING, Status.IN_PROGRESS, Status.QC, Status.PACKING],
        )
        self.assertTrue(WorkflowNotification.objects.filter(
            recipient=packer, related_work_order=work_order
        ).exists())
        self.assertTrue(WorkflowNotification.objects.filter(
            recipient=self.inspector, related_work_order=work_order, title__contains='is now'
        ).exists())

    def test_unknown_status(self):
        work_order = self.create_work_order()
        with self.assertRaises(ValidationError):
            WorkOrderLifecycle.transition(work_order.pk, 'archived', self.manager)

    def test_same_status_is_a_no_op(self):
        work_order = self.create_work_order()
        WorkOrderLifecycle.transition(work_order.pk, Status.PENDING, self.manager)
        self.assertEqual(work_order.status_history.count(), 1)


class OverrideTest(ERPTestCase):
    """Test cases for manual status overrides"""

    def setUp(self):
        super().setUp()
        self.work_order, self.batch = self.start_work_order()

    def test_override_needs_reason(self):
        with self.assertRaises(ValidationError):
            WorkOrderLifecycle.transition(self.work_order.pk, Status.PENDING, self.manager, override=True)

    def test_override_needs_permission(self):
        supervisor = self.make_user('supervisor@example.com', RoleChoices.SUPERVISOR)
        with self.assertRaises(Unauthorized):
            WorkOrderLifecycle.transition(
                self.work_order.pk, Status.PENDING, supervisor, override=True, reason='Wrong start'
            )

    def test_override_is_recorded_and_notified(self):
        with self.captureOnCommitCallbacks(execute=True):
            work_order = WorkOrderLifecycle.transition(
                self.work_order.pk, Status.PENDING, self.manager, override=True, reason='Drawing revision'
            )

        self.assertEqual(work_order.status, Status.PENDING)
        history = work_order.status_history.first()
        self.assertTrue(history.is_override)
        self.assertEqual(history.reason, 'Drawing revision')
        self.assertTrue(ActivityLog.objects.filter(
            work_order=work_order, activity_type=ActivityTypeChoices.STATUS_OVERRIDDEN
        ).exists())
        self.assertTrue(WorkflowNotification.objects.filter(
            recipient=self.manager, title__startswith='Status override'
        ).exists())

    def test_override_skips_preconditions(self):
        work_order = WorkOrderLifecycle.transition(
            self.work_order.pk, Status.QC, self.manager, override=True, reason='Pilot lot'
        )
        self.assertEqual(work_order.status, Status.QC)


class OverageTest(ERPTestCase):
    """Test cases for authorized overage"""

    def setUp(self):
        super().setUp()
        self.work_order, self.batch = self.start_work_order(quantity=100)

    def test_overage_allows_extra_production(self):
        BatchEngine.record_production(self.batch.pk, 100, 0, self.operator)

        WorkOrderLifecycle.authorize_overage(self.work_order.pk, 5, 'Customer accepts spares', self.manager)
        work_order = WorkOrderLifecycle.authorize_overage(self.work_order.pk, 5, 'More spares', self.manager)
        self.assertEqual(work_order.authorized_overage_qty, 10)

        BatchEngine.record_production(self.batch.pk, 10, 0, self.operator)
        self.assertEqual(self.reload(self.work_order).quantity_produced, 110)

    def test_overage_needs_reason_and_quantity(self):
        with self.assertRaises(ValidationError):
            WorkOrderLifecycle.authorize_overage(self.work_order.pk, 5, '', self.manager)
        with self.assertRaises(NegativeQuantity):
            WorkOrderLifecycle.authorize_overage(self.work_order.pk, 0, 'Spares', self.manager)

    def test_supervisor_cannot_authorize(self):
        supervisor = self.make_user('supervisor@example.com', RoleChoices.SUPERVISOR)
        with self.assertRaises(Unauthorized):
            WorkOrderLifecycle.authorize_overage(self.work_order.pk, 5, 'Spares', supervisor)


class CompletionStatusTest(ERPTestCase):
    """Test cases for the completion checklist"""

    def test_pending_work_order(self):
        work_order = self.create_work_order()

        status = WorkOrderLifecycle.completion_status(work_order.pk)

        self.assertEqual(status['status'], Status.PENDING)
        self.assertEqual(status['current_stage'], WorkOrderStageChoices.GOODS_IN)
        self.assertEqual(status['next_status'], Status.IN_PROGRESS)
        self.assertEqual(len(status['blockers']), 2)
        self.assertIsNone(status['active_batch'])
        self.assertFalse(status['production_complete'])
        self.assertEqual(status['quantity_violations'], [])

    def test_in_progress_work_order(self):
        work_order, batch = self.start_work_order()
        BatchEngine.record_production(batch.pk, 250, 5, self.operator)

        status = WorkOrderLifecycle.completion_status(work_order.pk)

        self.assertEqual(status['active_batch'], batch.batch_code)
        self.assertEqual(status['batch_count'], 1)
        self.assertEqual(status['gates']['raw_material'], GateStatusChoices.PASSED)
        self.assertEqual(status['quantities']['produced'], 250)
        self.assertEqual(status['quantities']['rejected'], 5)
        self.assertEqual(status['quantities']['remaining_to_produce'], 750)
        self.assertEqual(status['blockers'], ['batch 1 is not production complete'])
        self.assertFalse(status['dispatch_allowed'])


class StageDerivationTest(ERPTestCase):
    """Test cases for the derived work order stage"""

    def test_least_advanced_batch_wins(self):
        work_order, first = self.start_work_order()
        BatchEngine.record_production(first.pk, 100, 0, self.operator)
        BatchEngine.mark_production_complete(first.pk, '', self.manager)
        second = BatchEngine.get_or_create_batch(work_order.pk, user=self.manager)

        self.assertEqual(self.reload(work_order).current_stage, WorkOrderStageChoices.CUTTING)
        self.assertEqual(second.stage, BatchStageChoices.CUTTING)

    def test_attention_roles(self):
        self.assertEqual(attention_role(Status.QC), 'quality')
        self.assertEqual(attention_role(Status.PACKING), RoleChoices.PACKING)
        self.assertEqual(attention_role(Status.COMPLETED), 'logistics')
        self.assertIsNone(attention_role(Status.IN_PROGRESS))
