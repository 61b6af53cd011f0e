from unittest import mock

from django.db import IntegrityError, OperationalError
from django.test import TestCase, override_settings

from manufacturing.models import WorkOrder
from utils.concurrency import contention_guard, get_or_not_found, retry_on_contention
from utils.config import erp_setting
from utils.exceptions import (
    Contention, ExceedsApproved, GateNotSatisfied, NotFound, PreconditionFailed, ValidationError,
    erp_exception_handler
)
from utils.models import DocumentSequence
from utils.sequences import next_document_number
from utils.test_helpers import ERPTestCase


class DocumentNumberTest(TestCase):
    """Test cases for the sequence service"""

    def test_numbers_increase_per_prefix(self):
        self.assertEqual(next_document_number('WO'), 'WO-000001')
        self.assertEqual(next_document_number('WO'), 'WO-000002')
        self.assertEqual(next_document_number('QC-FP'), 'QC-FP-000001')
        self.assertEqual(DocumentSequence.objects.get(prefix='WO').last_value, 2)

    def test_width(self):
        self.assertEqual(next_document_number('CTN', width=4), 'CTN-0001')

    def test_concurrently_created_sequence_is_reused(self):
        DocumentSequence.objects.create(prefix='DN', last_value=4)

        with mock.patch('django.db.models.query.QuerySet.get_or_create', side_effect=IntegrityError):
            self.assertEqual(next_document_number('DN'), 'DN-000005')

    def test_unresolved_creation_race_is_retryable(self):
        with mock.patch('django.db.models.query.QuerySet.get_or_create', side_effect=IntegrityError):
            with self.assertRaises(Contention):
                next_document_number('DN')


class DocumentNumberImmutabilityTest(ERPTestCase):

    def test_number_cannot_change(self):
        work_order = self.create_work_order()
        work_order.wo_number = 'WO-999999'

        with self.assertRaises(ValidationError):
            work_order.save()

        reloaded = WorkOrder.objects.get(pk=work_order.pk)
        reloaded.due_date = None
        reloaded.save()


class ErrorResponseTest(TestCase):
    """Test cases for the DRF exception handler"""

    def test_precondition_failures_list_blockers(self):
        response = erp_exception_handler(
            GateNotSatisfied(blockers=['first_piece QC not passed', 'final QC not passed']), {}
        )
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.data['error'], 'gate_not_satisfied')
        self.assertEqual(response.data['kind'], 'gate_not_satisfied')
        self.assertEqual(len(response.data['blockers']), 2)
        self.assertFalse(response.data['retryable'])

    def test_status_codes(self):
        self.assertEqual(erp_exception_handler(NotFound('batch not found'), {}).status_code, 404)
        self.assertEqual(erp_exception_handler(ValidationError('bad'), {}).status_code, 400)
        response = erp_exception_handler(Contention('busy'), {})
        self.assertEqual(response.status_code, 503)
        self.assertTrue(response.data['retryable'])

    def test_single_blocker_string(self):
        exc = ExceedsApproved(blockers='packing 10, approved 5')
        self.assertEqual(exc.blockers, ['packing 10, approved 5'])
        self.assertEqual(exc.message, 'exceeds_approved: packing 10, approved 5')

    def test_kind_defaults(self):
        self.assertEqual(PreconditionFailed().kind, 'precondition')
        self.assertEqual(PreconditionFailed('over_production', ['x']).kind, 'over_production')


class ContentionTest(TestCase):
    """Test cases for lock contention handling"""

    def test_guard_translates_operational_error(self):
        with self.assertRaises(Contention):
            with contention_guard('batch'):
                raise OperationalError('Lock wait timeout exceeded')

    @mock.patch('utils.concurrency.time.sleep')
    def test_retry_until_success(self, sleep):
        calls = mock.Mock(side_effect=[Contention('busy'), Contention('busy'), 'done'])

        self.assertEqual(retry_on_contention(calls, 1, flag=True, max_attempts=3, backoff=0.1), 'done')
        self.assertEqual(calls.call_count, 3)
        calls.assert_called_with(1, flag=True)
        self.assertEqual([c.args[0] for c in sleep.call_args_list], [0.1, 0.2])

    @mock.patch('utils.concurrency.time.sleep')
    def test_retry_gives_up(self, sleep):
        calls = mock.Mock(side_effect=Contention('busy'))

        with self.assertRaises(Contention):
            retry_on_contention(calls, max_attempts=2, backoff=0)
        self.assertEqual(calls.call_count, 2)

    def test_other_errors_are_not_retried(self):
        calls = mock.Mock(side_effect=ValidationError('bad'))
        with self.assertRaises(ValidationError):
            retry_on_contention(calls)
        self.assertEqual(calls.call_count, 1)

    def test_not_found(self):
        with self.assertRaises(NotFound):
            get_or_not_found(WorkOrder, 'work order', pk=404)


class SettingsTest(TestCase):

    @override_settings(METALWORKS_ERP_SETTINGS={'BATCH_GAP_THRESHOLD_DAYS': 3})
    def test_configured_value_wins(self):
        self.assertEqual(erp_setting('BATCH_GAP_THRESHOLD_DAYS'), 3)
        self.assertEqual(erp_setting('EXTERNAL_DUE_SOON_DAYS'), 2)
