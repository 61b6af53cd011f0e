from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import WorkflowNotificationViewSet

router = DefaultRouter()
router.register(r'workflow-notifications', WorkflowNotificationViewSet, basename='workflownotification')

app_name = 'notifications'

urlpatterns = [
    path('', include(router.urls)),
]
