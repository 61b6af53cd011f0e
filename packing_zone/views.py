from rest_framework import status, viewsets
from rest_framework.response import Response

from fg_store.reconciliation import DispatchReconciliation
from utils.concurrency import retry_on_contention

from .models import Carton
from .serializers import CartonSerializer, PackSerializer


class CartonViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Cartons packed from QC-approved batch quantity.
    POST packs a new carton through the dispatch reconciliation service.
    """
    queryset = Carton.objects.select_related('batch', 'work_order', 'packed_by')
    serializer_class = CartonSerializer
    filterset_fields = ['batch', 'work_order']
    ordering_fields = ['packed_at', 'quantity']
    ordering = ['-packed_at']

    def create(self, request, *args, **kwargs):
        serializer = PackSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        carton = retry_on_contention(
            DispatchReconciliation.pack,
            serializer.validated_data['batch'],
            serializer.validated_data['quantity'],
            request.user,
            remarks=serializer.validated_data['remarks'],
        )
        return Response(CartonSerializer(carton).data, status=status.HTTP_201_CREATED)
