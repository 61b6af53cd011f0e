from decimal import Decimal

from utils.enums import GateStatusChoices, MaterialLotStatusChoices
from utils.exceptions import (
    InsufficientStock, NegativeQuantity, PreconditionFailed, Unauthorized, ValidationError
)
from utils.test_helpers import ERPTestCase

from inventory.ledger import MaterialLedger
from inventory.models import MaterialIssue


class MaterialLedgerReceiveTest(ERPTestCase):
    """Test cases for receiving material lots"""

    def test_receive_lot(self):
        lot = MaterialLedger.receive_lot(self.manager, 'H-2001', 'EN8', '512.5', '500')

        self.assertTrue(lot.lot_number.startswith('LOT-'))
        self.assertEqual(lot.status, MaterialLotStatusChoices.RECEIVED)
        self.assertEqual(lot.qc_status, GateStatusChoices.PENDING)
        self.assertEqual(lot.net_weight_kg, Decimal('500.000'))
        self.assertEqual(lot.received_by, self.manager)

    def test_net_above_gross_rejected(self):
        with self.assertRaises(ValidationError):
            MaterialLedger.receive_lot(self.manager, 'H-2001', 'EN8', 400, 500)

    def test_non_positive_weight_rejected(self):
        with self.assertRaises(ValidationError):
            MaterialLedger.receive_lot(self.manager, 'H-2001', 'EN8', 0, 0)

    def test_receive_needs_permission(self):
        with self.assertRaises(Unauthorized):
            MaterialLedger.receive_lot(self.operator, 'H-2001', 'EN8', 510, 500)


class MaterialLedgerIssueTest(ERPTestCase):
    """Test cases for issuing material against work orders"""

    def setUp(self):
        super().setUp()
        self.work_order = self.create_work_order()
        self.lot = self.receive_lot(net_weight_kg=500)

    def test_issue_reduces_available(self):
        issue = MaterialLedger.issue(self.lot.pk, self.work_order.pk, 300, self.manager)

        self.assertEqual(issue.quantity_kg, Decimal('300.000'))
        self.assertEqual(MaterialLedger.available_qty(self.lot.pk), Decimal('200.000'))
        self.assertEqual(self.reload(self.lot).status, MaterialLotStatusChoices.ISSUED)

    def test_over_issue_rejected(self):
        """500 kg lot: 300 then 250 fails with InsufficientStock"""
        MaterialLedger.issue(self.lot.pk, self.work_order.pk, 300, self.manager)

        with self.assertRaises(InsufficientStock) as ctx:
            MaterialLedger.issue(self.lot.pk, self.work_order.pk, 250, self.manager)

        self.assertEqual(ctx.exception.kind, 'insufficient_stock')
        self.assertEqual(MaterialIssue.objects.filter(lot=self.lot).count(), 1)
        self.assertEqual(MaterialLedger.available_qty(self.lot.pk), Decimal('200.000'))

    def test_full_issue_consumes_lot(self):
        MaterialLedger.issue(self.lot.pk, self.work_order.pk, 500, self.manager)

        self.assertEqual(self.reload(self.lot).status, MaterialLotStatusChoices.CONSUMED)
        self.assertEqual(MaterialLedger.available_qty(self.lot.pk), 0)

    def test_non_positive_issue_rejected(self):
        with self.assertRaises(NegativeQuantity):
            MaterialLedger.issue(self.lot.pk, self.work_order.pk, 0, self.manager)
        with self.assertRaises(NegativeQuantity):
            MaterialLedger.issue(self.lot.pk, self.work_order.pk, -5, self.manager)

    def test_failed_lot_cannot_be_issued(self):
        self.approve_lot(self.lot, result='fail')

        with self.assertRaises(PreconditionFailed) as ctx:
            MaterialLedger.issue(self.lot.pk, self.work_order.pk, 10, self.manager)
        self.assertEqual(ctx.exception.kind, 'material_rejected')

    def test_traceability_both_ways(self):
        other_order = self.create_work_order(quantity=50)
        MaterialLedger.issue(self.lot.pk, self.work_order.pk, 100, self.manager)
        MaterialLedger.issue(self.lot.pk, other_order.pk, 50, self.manager)

        self.assertEqual(list(MaterialLedger.issued_lots(self.work_order)), [self.lot])
        self.assertEqual(
            set(MaterialLedger.lot_consumers(self.lot)),
            {self.work_order, other_order}
        )

    def test_issue_needs_permission(self):
        with self.assertRaises(Unauthorized):
            MaterialLedger.issue(self.lot.pk, self.work_order.pk, 10, self.operator)
