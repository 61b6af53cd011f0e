from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from manufacturing.serializers import ShortCloseRecordSerializer
from utils.concurrency import retry_on_contention

from .models import DispatchAllocation
from .reconciliation import DispatchReconciliation
from .serializers import (
    AllocateSerializer,
    DispatchAllocationSerializer,
    DispatchReversalSerializer,
    ReverseSerializer,
    ShortCloseSerializer,
)


class DispatchAllocationViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Dispatch allocations. POST allocates (idempotent by ``reference``);
    ``reverse`` books a compensating reversal.
    """
    queryset = DispatchAllocation.objects.select_related('batch', 'work_order').prefetch_related('reversals')
    serializer_class = DispatchAllocationSerializer
    filterset_fields = ['work_order', 'batch', 'external_reference']
    ordering_fields = ['allocated_at', 'quantity']
    ordering = ['-allocated_at']

    def create(self, request, *args, **kwargs):
        serializer = AllocateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        allocation = retry_on_contention(
            DispatchReconciliation.allocate,
            data['batch'], data['quantity'], data['destination'], data['reference'], request.user
        )
        return Response(DispatchAllocationSerializer(allocation).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def reverse(self, request, pk=None):
        serializer = ReverseSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        reversal = retry_on_contention(
            DispatchReconciliation.reverse,
            pk, serializer.validated_data['quantity'], serializer.validated_data['reason'], request.user
        )
        return Response(DispatchReversalSerializer(reversal).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['post'])
    def short_close(self, request):
        serializer = ShortCloseSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        short_close = retry_on_contention(
            DispatchReconciliation.short_close,
            serializer.validated_data['work_order'], serializer.validated_data['reason'], request.user
        )
        return Response(ShortCloseRecordSerializer(short_close).data, status=status.HTTP_201_CREATED)
