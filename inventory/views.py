from rest_framework import filters, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from django_filters.rest_framework import DjangoFilterBackend

from manufacturing.serializers import WorkOrderListSerializer
from third_party.models import Supplier
from utils.concurrency import get_or_not_found, retry_on_contention

from .ledger import MaterialLedger
from .models import MaterialIssue, MaterialLot
from .serializers import (
    IssueSerializer,
    MaterialIssueSerializer,
    MaterialLotSerializer,
    ReceiveLotSerializer,
)


class MaterialLotViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Raw material lots. POST receives a lot; ``issue`` draws material
    against a work order.
    """
    queryset = MaterialLot.objects.select_related('supplier', 'received_by')
    serializer_class = MaterialLotSerializer
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['status', 'qc_status', 'alloy', 'supplier']
    search_fields = ['lot_number', 'heat_number', 'alloy', 'grade']
    ordering_fields = ['received_at', 'lot_number']
    ordering = ['-received_at']

    def create(self, request, *args, **kwargs):
        serializer = ReceiveLotSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        supplier = None
        if data.get('supplier'):
            supplier = get_or_not_found(Supplier, 'supplier', pk=data['supplier'])
        lot = MaterialLedger.receive_lot(
            request.user,
            data['heat_number'],
            data['alloy'],
            data['gross_weight_kg'],
            data['net_weight_kg'],
            supplier=supplier,
            grade=data['grade'],
            quality_certificate_number=data['quality_certificate_number'],
            remarks=data['remarks'],
        )
        return Response(MaterialLotSerializer(lot).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def issue(self, request, pk=None):
        serializer = IssueSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        issue = retry_on_contention(
            MaterialLedger.issue, pk, data['work_order'], data['quantity_kg'], request.user,
            batch=data.get('batch'), remarks=data['remarks']
        )
        return Response(MaterialIssueSerializer(issue).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['get'])
    def consumers(self, request, pk=None):
        """Work orders that drew from this lot"""
        lot = self.get_object()
        return Response(WorkOrderListSerializer(MaterialLedger.lot_consumers(lot), many=True).data)


class MaterialIssueViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = MaterialIssue.objects.select_related('lot', 'work_order', 'batch', 'issued_by')
    serializer_class = MaterialIssueSerializer
    filterset_fields = ['lot', 'work_order', 'batch']
    ordering_fields = ['issued_at', 'quantity_kg']
    ordering = ['-issued_at']
