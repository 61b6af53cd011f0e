"""
URL patterns for third_party app
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from . import views

app_name = 'third_party'

router = DefaultRouter()
router.register(r'suppliers', views.SupplierViewSet, basename='supplier')
router.register(r'customers', views.CustomerViewSet, basename='customer')
router.register(r'external-partners', views.ExternalPartnerViewSet, basename='external-partner')

urlpatterns = [
    path('', include(router.urls)),
]
