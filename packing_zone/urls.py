from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import CartonViewSet

router = DefaultRouter()
router.register(r'cartons', CartonViewSet, basename='carton')

app_name = 'packing_zone'

urlpatterns = [
    path('', include(router.urls)),
]
