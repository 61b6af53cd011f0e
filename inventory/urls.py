from django.urls import include, path
from rest_framework.routers import DefaultRouter

from . import views

app_name = 'inventory'

router = DefaultRouter()
router.register(r'material-lots', views.MaterialLotViewSet, basename='material-lot')
router.register(r'material-issues', views.MaterialIssueViewSet, basename='material-issue')

urlpatterns = [
    path('', include(router.urls)),
]
