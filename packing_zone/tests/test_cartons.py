from fg_store.reconciliation import DispatchReconciliation
from manufacturing.batch_engine import BatchEngine
from packing_zone.models import Carton
from utils.enums import BatchStageChoices, QCTypeChoices, RoleChoices, WorkOrderStageChoices
from utils.exceptions import ExceedsApproved, GateNotSatisfied, PreconditionFailed, Unauthorized
from utils.test_helpers import ERPTestCase


class PackTest(ERPTestCase):
    """Test cases for packing approved pieces into cartons"""

    def setUp(self):
        super().setUp()
        self.packer = self.make_user('packer@example.com', RoleChoices.PACKING)
        self.work_order, self.batch = self.prepare_for_packing()

    def test_pack_carton(self):
        carton = DispatchReconciliation.pack(self.batch.pk, 200, self.packer, remarks='Box of 200')

        self.assertTrue(carton.carton_number.startswith('CTN-'))
        self.assertEqual(carton.heat_number, 'H-1001')
        self.assertEqual(carton.packed_by, self.packer)

        batch = self.reload(self.batch)
        self.assertEqual(batch.packed_qty, 200)
        self.assertEqual(batch.stage, BatchStageChoices.PACKING)
        self.assertEqual(batch.available_for_packing, 390)
        self.assertEqual(self.reload(self.work_order).quantity_packed, 200)

    def test_cannot_pack_beyond_approved(self):
        DispatchReconciliation.pack(self.batch.pk, 500, self.packer)

        with self.assertRaises(ExceedsApproved):
            DispatchReconciliation.pack(self.batch.pk, 91, self.packer)
        self.assertEqual(Carton.objects.filter(batch=self.batch).count(), 1)

    def test_operator_cannot_pack(self):
        with self.assertRaises(Unauthorized):
            DispatchReconciliation.pack(self.batch.pk, 10, self.operator)


class PackGateTest(ERPTestCase):
    """Packing waits for the final inspection"""

    def setUp(self):
        super().setUp()
        self.work_order, self.batch = self.start_work_order()
        BatchEngine.record_production(self.batch.pk, 300, 0, self.operator)

    def test_final_inspection_required(self):
        with self.assertRaises(GateNotSatisfied) as ctx:
            DispatchReconciliation.pack(self.batch.pk, 10, self.manager)
        self.assertEqual(ctx.exception.blockers, ['final QC not passed for batch 1 (no record)'])

    def test_batch_must_reach_qc(self):
        self.record_qc(self.work_order, QCTypeChoices.FINAL, 'pass', batch=self.batch, approved_qty=300)

        with self.assertRaises(PreconditionFailed) as ctx:
            DispatchReconciliation.pack(self.batch.pk, 10, self.manager)
        self.assertEqual(ctx.exception.kind, 'batch_stage')

    def test_work_order_stage_follows_packing(self):
        self.record_qc(self.work_order, QCTypeChoices.FIRST_PIECE, 'pass', batch=self.batch)
        self.record_qc(self.work_order, QCTypeChoices.FINAL, 'pass', batch=self.batch, approved_qty=300)
        BatchEngine.advance_stage(self.batch.pk, BatchStageChoices.QC, self.manager)

        DispatchReconciliation.pack(self.batch.pk, 300, self.manager)

        self.assertEqual(self.reload(self.work_order).current_stage, WorkOrderStageChoices.PACKING)
