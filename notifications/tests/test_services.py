from unittest import mock

from notifications.models import WorkflowNotification
from notifications.services import NotificationService
from utils.enums import NotificationTypeChoices, PriorityChoices, RoleChoices
from utils.test_helpers import ERPTestCase


class NotificationServiceTest(ERPTestCase):
    """Test cases for deferred in-app notifications"""

    def test_delivered_on_commit(self):
        with self.captureOnCommitCallbacks(execute=False) as callbacks:
            NotificationService.notify([self.manager.pk, self.manager.pk], 'Batch ready', 'Batch B01 is ready', 'WO-1')

        self.assertFalse(WorkflowNotification.objects.exists())
        self.assertEqual(len(callbacks), 1)

        callbacks[0]()
        notification = WorkflowNotification.objects.get()
        self.assertEqual(notification.recipient, self.manager)
        self.assertEqual(notification.entity_ref, 'WO-1')
        self.assertEqual(notification.notification_type, NotificationTypeChoices.GENERAL)
        self.assertEqual(notification.priority, PriorityChoices.MEDIUM)

    def test_notify_role(self):
        second = self.make_user('qc2@example.com', RoleChoices.QUALITY)

        with self.captureOnCommitCallbacks(execute=True):
            NotificationService.notify_role(RoleChoices.QUALITY, 'Inspect', 'Inspect lot', 'LOT-1')

        self.assertEqual(
            set(WorkflowNotification.objects.values_list('recipient_id', flat=True)),
            {self.inspector.pk, second.pk},
        )

    def test_no_recipients(self):
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            NotificationService.notify_role(RoleChoices.LOGISTICS, 'Nobody', 'Nobody listens')
        self.assertEqual(callbacks, [])

    def test_delivery_failure_is_logged(self):
        with mock.patch.object(WorkflowNotification.objects, 'bulk_create', side_effect=RuntimeError('db down')):
            with self.assertLogs('notifications.services', level='ERROR'):
                with self.captureOnCommitCallbacks(execute=True):
                    NotificationService.notify([self.manager.pk], 'Lost', 'Lost message')

        self.assertFalse(WorkflowNotification.objects.exists())


class NotificationEndpointTest(ERPTestCase):

    def test_only_own_notifications_listed(self):
        from rest_framework.test import APIClient

        with self.captureOnCommitCallbacks(execute=True):
            NotificationService.notify([self.manager.pk], 'Mine', 'For the manager')
            NotificationService.notify([self.operator.pk], 'Theirs', 'For the operator')

        client = APIClient()
        client.force_authenticate(user=self.manager)
        response = client.get('/api/notifications/workflow-notifications/')

        self.assertEqual(response.status_code, 200)
        self.assertEqual([n['title'] for n in response.data['results']], ['Mine'])

        response = client.post(f"/api/notifications/workflow-notifications/{response.data['results'][0]['id']}/mark_as_read/")
        self.assertTrue(response.data['is_read'])
