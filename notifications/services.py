"""
In-app notification provider.

Notifications are written after the surrounding transaction commits so that a
rolled back operation never notifies, and a failing write never breaks the
operation that raised it.
"""
import logging

from django.db import transaction

from authentication.services import PermissionService
from utils.enums import NotificationTypeChoices, PriorityChoices

from .models import WorkflowNotification

logger = logging.getLogger(__name__)


class NotificationService:

    @staticmethod
    def notify(user_ids, title, message, entity_ref='', notification_type=NotificationTypeChoices.GENERAL,
               priority=PriorityChoices.MEDIUM, work_order=None, batch=None, created_by=None,
               action_required=False):
        """Queue one notification per recipient; delivery happens on commit"""
        user_ids = sorted(set(user_ids))
        if not user_ids:
            logger.debug(f"No recipients for notification '{title}' ({entity_ref})")
            return

        payload = {
            'notification_type': notification_type,
            'title': title[:200],
            'message': message,
            'priority': priority,
            'entity_ref': entity_ref,
            'related_work_order_id': getattr(work_order, 'pk', None),
            'related_batch_id': getattr(batch, 'pk', None),
            'created_by_id': getattr(created_by, 'pk', None),
            'action_required': action_required,
        }

        def deliver():
            try:
                WorkflowNotification.objects.bulk_create([
                    WorkflowNotification(recipient_id=user_id, **payload) for user_id in user_ids
                ])
            except Exception:
                logger.error(f"Failed to deliver notification '{title}' to {user_ids}", exc_info=True)

        transaction.on_commit(deliver)

    @staticmethod
    def notify_role(role, title, message, entity_ref='', **kwargs):
        user_ids = list(PermissionService.users_with_role(role).values_list('id', flat=True))
        NotificationService.notify(user_ids, title, message, entity_ref, **kwargs)
