"""
API views for shared reference entities
"""

from rest_framework import filters, viewsets

from authentication.permissions import IsAdminOrManager

from .models import Customer, ExternalPartner, Supplier
from .serializers import CustomerSerializer, ExternalPartnerSerializer, SupplierSerializer


class ReferenceDataViewSet(viewsets.ModelViewSet):
    """Reads for any authenticated user, writes for admin/manager"""
    filter_backends = [filters.SearchFilter, filters.OrderingFilter]
    search_fields = ['name', 'gst_no', 'contact_person']
    ordering = ['name']
    http_method_names = ['get', 'post', 'patch', 'head', 'options']

    def get_permissions(self):
        if self.action in ('list', 'retrieve'):
            return super().get_permissions()
        return [IsAdminOrManager()]

    def perform_create(self, serializer):
        serializer.save(created_by=self.request.user)


class SupplierViewSet(ReferenceDataViewSet):
    queryset = Supplier.objects.all()
    serializer_class = SupplierSerializer


class CustomerViewSet(ReferenceDataViewSet):
    queryset = Customer.objects.all()
    serializer_class = CustomerSerializer
    search_fields = ['c_id', 'name', 'gst_no', 'contact_person']


class ExternalPartnerViewSet(ReferenceDataViewSet):
    queryset = ExternalPartner.objects.all()
    serializer_class = ExternalPartnerSerializer
