from decimal import Decimal

from django.core.cache import cache

from authentication.models import Role
from inventory.ledger import MaterialLedger
from manufacturing.batch_engine import BatchEngine
from notifications.models import WorkflowNotification
from utils.enums import (
    GateKindChoices, GateStatusChoices, NotificationTypeChoices, QCResultChoices, QCTypeChoices, RoleChoices
)
from utils.exceptions import NegativeQuantity, PreconditionFailed, Unauthorized, ValidationError
from utils.test_helpers import ERPTestCase

from quality.gate import QualityGate, combine_statuses
from quality.models import QCRecord, ToleranceSpec


class CombineStatusesTest(ERPTestCase):

    def test_worst_status_wins(self):
        self.assertEqual(combine_statuses([]), GateStatusChoices.PENDING)
        self.assertEqual(
            combine_statuses([GateStatusChoices.PASSED, GateStatusChoices.FAILED]), GateStatusChoices.FAILED
        )
        self.assertEqual(
            combine_statuses([GateStatusChoices.PASSED, GateStatusChoices.WAIVED]), GateStatusChoices.PASSED
        )
        self.assertEqual(combine_statuses([GateStatusChoices.WAIVED]), GateStatusChoices.WAIVED)


class QualityGateTest(ERPTestCase):
    """Test cases for gate evaluation"""

    def setUp(self):
        super().setUp()
        self.work_order, self.batch = self.start_work_order()

    def test_no_record_keeps_gate_closed(self):
        self.assertFalse(QualityGate.can_advance(self.batch, GateKindChoices.FIRST_PIECE))
        self.assertEqual(
            QualityGate.gate_blockers(self.batch, GateKindChoices.FIRST_PIECE),
            ['first_piece QC not passed for batch 1 (no record)']
        )

    def test_latest_record_is_authoritative(self):
        self.record_qc(self.work_order, QCTypeChoices.FIRST_PIECE, 'fail', batch=self.batch)
        self.assertEqual(
            QualityGate.gate_blockers(self.batch, GateKindChoices.FIRST_PIECE),
            ['first_piece QC not passed for batch 1 (latest: fail)']
        )

        self.record_qc(self.work_order, QCTypeChoices.FIRST_PIECE, 'pass', batch=self.batch)
        self.assertTrue(QualityGate.can_advance(self.batch, GateKindChoices.FIRST_PIECE))

        self.record_qc(self.work_order, QCTypeChoices.FIRST_PIECE, 'rework', batch=self.batch)
        self.assertFalse(QualityGate.can_advance(self.batch, GateKindChoices.FIRST_PIECE))
        self.assertEqual(QualityGate.gate_status(self.batch, GateKindChoices.FIRST_PIECE), GateStatusChoices.REWORK)

    def test_work_order_level_record_covers_batches(self):
        self.record_qc(self.work_order, QCTypeChoices.FIRST_PIECE, 'pass')

        self.assertTrue(QualityGate.can_advance(self.batch, GateKindChoices.FIRST_PIECE))
        self.assertEqual(self.reload(self.work_order).qc_first_piece_status, GateStatusChoices.PASSED)

    def test_non_mandatory_record_does_not_open_gate(self):
        self.record_qc(self.work_order, QCTypeChoices.FIRST_PIECE, 'pass', batch=self.batch, is_mandatory=False)
        self.assertFalse(QualityGate.can_advance(self.batch, GateKindChoices.FIRST_PIECE))

    def test_raw_material_falls_back_to_issued_lots(self):
        self.assertTrue(QualityGate.can_advance(self.work_order, GateKindChoices.RAW_MATERIAL))

        pending_lot = self.receive_lot(heat_number='H-1002')
        MaterialLedger.issue(pending_lot.pk, self.work_order.pk, 50, self.manager)

        blockers = QualityGate.gate_blockers(self.work_order, GateKindChoices.RAW_MATERIAL)
        self.assertEqual(blockers, [f"raw_material QC not passed for lot {pending_lot.lot_number} (latest: pending)"])

    def test_work_order_incoming_record_overrides_lots(self):
        self.record_qc(self.work_order, QCTypeChoices.INCOMING, 'fail')

        self.assertFalse(QualityGate.can_advance(self.batch, GateKindChoices.RAW_MATERIAL))
        self.assertEqual(self.reload(self.work_order).qc_material_status, GateStatusChoices.FAILED)

    def test_lot_record_refreshes_consumer_caches(self):
        lot = MaterialLedger.issued_lots(self.work_order).get()
        self.approve_lot(lot, result='fail')

        self.assertEqual(self.reload(lot).qc_status, GateStatusChoices.FAILED)
        self.assertEqual(self.reload(self.work_order).qc_material_status, GateStatusChoices.FAILED)

    def test_required_gates_grow_with_inspections(self):
        self.assertEqual(
            QualityGate.required_gates(self.batch),
            [GateKindChoices.RAW_MATERIAL, GateKindChoices.FIRST_PIECE]
        )
        self.record_qc(self.work_order, QCTypeChoices.IN_PROCESS, 'pass', batch=self.batch)
        self.assertIn(GateKindChoices.IN_PROCESS, QualityGate.required_gates(self.batch))


class RecordResultTest(ERPTestCase):
    """Test cases for recording inspections"""

    def setUp(self):
        super().setUp()
        self.work_order, self.batch = self.start_work_order()
        ToleranceSpec.objects.create(
            item=self.item, dimension='OD', nominal=Decimal('50.00'),
            lower_limit=Decimal('49.95'), upper_limit=Decimal('50.05')
        )

    def test_measurements_within_tolerance_pass(self):
        record = self.record_qc(
            self.work_order, QCTypeChoices.FIRST_PIECE, None, batch=self.batch,
            measurements=[{'dimension': 'OD', 'measured_value': '50.01'}]
        )

        self.assertEqual(record.result, QCResultChoices.PASS)
        self.assertTrue(record.qc_id.startswith('QC-FP-'))
        measurement = record.measurements.get()
        self.assertTrue(measurement.within_tolerance)
        self.assertEqual(measurement.lower_limit, Decimal('49.95'))

    def test_declared_pass_contradicted_by_measurement_fails(self):
        record = self.record_qc(
            self.work_order, QCTypeChoices.FIRST_PIECE, 'pass', batch=self.batch,
            measurements=[{'dimension': 'OD', 'measured_value': '50.20'}]
        )
        self.assertEqual(record.result, QCResultChoices.FAIL)

    def test_optional_measurement_out_of_tolerance_still_passes(self):
        record = self.record_qc(
            self.work_order, QCTypeChoices.FIRST_PIECE, None, batch=self.batch,
            measurements=[
                {'dimension': 'OD', 'measured_value': '50.00'},
                {'dimension': 'Chamfer', 'measured_value': '2.0', 'lower_limit': '0.5',
                 'upper_limit': '1.0', 'is_mandatory': False},
            ]
        )
        self.assertEqual(record.result, QCResultChoices.PASS)

    def test_missing_band_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.record_qc(
                self.work_order, QCTypeChoices.FIRST_PIECE, None, batch=self.batch,
                measurements=[{'dimension': 'Length', 'measured_value': '12'}]
            )
        self.assertFalse(QCRecord.objects.filter(qc_type=QCTypeChoices.FIRST_PIECE).exists())

    def test_legacy_result_spelling(self):
        record = self.record_qc(self.work_order, QCTypeChoices.FIRST_PIECE, 'Approved', batch=self.batch)
        self.assertEqual(record.result, QCResultChoices.PASS)

        with self.assertRaises(ValidationError):
            self.record_qc(self.work_order, QCTypeChoices.FIRST_PIECE, 'maybe', batch=self.batch)

    def test_waiver_needs_waive_permission(self):
        Role.objects.filter(name=RoleChoices.QUALITY).update(permissions={'quality': ['record']})
        cache.clear()

        with self.assertRaises(Unauthorized):
            self.record_qc(self.work_order, QCTypeChoices.FIRST_PIECE, None, batch=self.batch,
                           waiver_reason='Customer concession')

    def test_waiver_opens_gate(self):
        record = self.record_qc(self.work_order, QCTypeChoices.FIRST_PIECE, 'fail', batch=self.batch,
                                waiver_reason='Customer concession CN-12')

        self.assertEqual(record.result, QCResultChoices.WAIVED)
        self.assertEqual(record.waived_by, self.inspector)
        self.assertTrue(QualityGate.can_advance(self.batch, GateKindChoices.FIRST_PIECE))

    def test_waived_without_reason_rejected(self):
        with self.assertRaises(ValidationError):
            self.record_qc(self.work_order, QCTypeChoices.FIRST_PIECE, 'waived', batch=self.batch)

    def test_final_approval_updates_batch(self):
        BatchEngine.record_production(self.batch.pk, 100, 5, self.manager)

        self.record_qc(self.work_order, QCTypeChoices.FINAL, 'pass', batch=self.batch,
                       approved_qty=80, inspected_qty=80)
        self.record_qc(self.work_order, QCTypeChoices.FINAL, 'pass', batch=self.batch,
                       approved_qty=20, inspected_qty=20)

        batch = self.reload(self.batch)
        self.assertEqual(batch.qc_approved_qty, 100)
        self.assertEqual(batch.qc_final_status, GateStatusChoices.PASSED)
        self.assertEqual(self.reload(self.work_order).quantity_qc_approved, 100)

    def test_final_approval_beyond_good_rejected(self):
        BatchEngine.record_production(self.batch.pk, 100, 5, self.manager)

        with self.assertRaises(PreconditionFailed) as ctx:
            self.record_qc(self.work_order, QCTypeChoices.FINAL, 'pass', batch=self.batch, approved_qty=101)
        self.assertEqual(ctx.exception.kind, 'approval_exceeds_good')

    def test_final_quantities_need_a_batch(self):
        BatchEngine.record_production(self.batch.pk, 100, 0, self.manager)

        with self.assertRaises(ValidationError):
            self.record_qc(self.work_order, QCTypeChoices.FINAL, 'pass', approved_qty=100)
        with self.assertRaises(ValidationError):
            self.record_qc(self.work_order, QCTypeChoices.FINAL, 'fail', rejected_qty=10)
        self.assertFalse(QCRecord.objects.filter(qc_type=QCTypeChoices.FINAL).exists())

        self.record_qc(self.work_order, QCTypeChoices.FINAL, 'pass')
        self.assertEqual(self.reload(self.work_order).quantity_qc_approved, 0)

    def test_approval_on_failed_inspection_rejected(self):
        BatchEngine.record_production(self.batch.pk, 100, 0, self.manager)

        with self.assertRaises(ValidationError):
            self.record_qc(self.work_order, QCTypeChoices.FINAL, 'fail', batch=self.batch, approved_qty=10)

    def test_negative_quantities_rejected(self):
        with self.assertRaises(NegativeQuantity):
            self.record_qc(self.work_order, QCTypeChoices.FINAL, 'pass', batch=self.batch, rejected_qty=-1)

    def test_work_order_required_except_for_lots(self):
        with self.assertRaises(ValidationError):
            QualityGate.record_result(self.inspector, None, QCTypeChoices.FIRST_PIECE, result='pass')

    def test_record_needs_permission(self):
        with self.assertRaises(Unauthorized):
            QualityGate.record_result(self.operator, self.work_order, QCTypeChoices.FIRST_PIECE, result='pass')

    def test_failure_notifies_quality_role(self):
        with self.captureOnCommitCallbacks(execute=True):
            self.record_qc(self.work_order, QCTypeChoices.FIRST_PIECE, 'fail', batch=self.batch)

        notification = WorkflowNotification.objects.get(recipient=self.inspector)
        self.assertEqual(notification.notification_type, NotificationTypeChoices.QC_FAILED)
        self.assertEqual(notification.entity_ref, self.batch.batch_code)
        self.assertTrue(notification.action_required)

    def test_pass_does_not_notify(self):
        with self.captureOnCommitCallbacks(execute=True):
            self.record_qc(self.work_order, QCTypeChoices.FIRST_PIECE, 'pass', batch=self.batch)

        self.assertFalse(WorkflowNotification.objects.exists())
