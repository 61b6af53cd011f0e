from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import ExternalMovementViewSet, ProductionBatchViewSet, WorkOrderViewSet

router = DefaultRouter()
router.register(r'work-orders', WorkOrderViewSet, basename='workorder')
router.register(r'batches', ProductionBatchViewSet, basename='batch')
router.register(r'external-movements', ExternalMovementViewSet, basename='externalmovement')

app_name = 'manufacturing'

urlpatterns = [
    path('', include(router.urls)),
]
