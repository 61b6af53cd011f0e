from django.utils import timezone
from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from .models import WorkflowNotification
from .serializers import WorkflowNotificationSerializer


class WorkflowNotificationViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Notifications addressed to the current user
    """
    serializer_class = WorkflowNotificationSerializer
    filterset_fields = ['notification_type', 'is_read', 'action_required', 'priority']
    ordering_fields = ['created_at', 'priority']
    ordering = ['-created_at']

    def get_queryset(self):
        return WorkflowNotification.objects.filter(
            recipient=self.request.user
        ).select_related('related_work_order', 'related_batch', 'created_by')

    @action(detail=True, methods=['post'])
    def mark_as_read(self, request, pk=None):
        notification = self.get_object()
        notification.is_read = True
        notification.read_at = timezone.now()
        notification.save(update_fields=['is_read', 'read_at'])
        return Response(self.get_serializer(notification).data)

    @action(detail=True, methods=['post'])
    def mark_action_taken(self, request, pk=None):
        notification = self.get_object()
        notification.action_taken = True
        notification.action_taken_at = timezone.now()
        notification.save(update_fields=['action_taken', 'action_taken_at'])
        return Response(self.get_serializer(notification).data)
