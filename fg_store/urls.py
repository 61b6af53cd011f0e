from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import DispatchAllocationViewSet

router = DefaultRouter()
router.register(r'dispatch-allocations', DispatchAllocationViewSet, basename='dispatch-allocation')

app_name = 'fg_store'

urlpatterns = [
    path('', include(router.urls)),
]
