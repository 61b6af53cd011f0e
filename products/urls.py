from django.urls import include, path
from rest_framework.routers import DefaultRouter

from . import views

app_name = 'products'

router = DefaultRouter()
router.register(r'items', views.ItemViewSet, basename='item')

urlpatterns = [
    path('', include(router.urls)),
]
