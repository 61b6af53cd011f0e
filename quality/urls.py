from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import QCRecordViewSet, ToleranceSpecViewSet

router = DefaultRouter()
router.register(r'qc-records', QCRecordViewSet, basename='qcrecord')
router.register(r'tolerance-specs', ToleranceSpecViewSet, basename='tolerancespec')

app_name = 'quality'

urlpatterns = [
    path('', include(router.urls)),
]
