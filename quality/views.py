from rest_framework import filters, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from django_filters.rest_framework import DjangoFilterBackend

from manufacturing.models import ProductionBatch, WorkOrder
from third_party.views import ReferenceDataViewSet
from utils.concurrency import get_or_not_found, retry_on_contention
from utils.enums import GateKindChoices
from utils.exceptions import ValidationError

from .gate import QualityGate
from .models import QCRecord, ToleranceSpec
from .serializers import QCRecordSerializer, RecordResultSerializer, ToleranceSpecSerializer


class ToleranceSpecViewSet(ReferenceDataViewSet):
    queryset = ToleranceSpec.objects.select_related('item')
    serializer_class = ToleranceSpecSerializer
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['item', 'is_mandatory']
    search_fields = ['item__item_code', 'dimension']
    ordering = ['item', 'dimension']

    def perform_create(self, serializer):
        serializer.save()


class QCRecordViewSet(viewsets.ReadOnlyModelViewSet):
    """
    QC inspections. Records are immutable; a newer record supersedes an
    older one for gate purposes.
    """
    queryset = QCRecord.objects.select_related(
        'work_order', 'batch', 'material_lot', 'inspected_by'
    ).prefetch_related('measurements')
    serializer_class = QCRecordSerializer
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['qc_type', 'result', 'work_order', 'batch', 'material_lot', 'is_mandatory']
    search_fields = ['qc_id', 'work_order__wo_number', 'batch__batch_code', 'material_lot__heat_number']
    ordering_fields = ['inspected_at']
    ordering = ['-inspected_at', '-id']

    def create(self, request, *args, **kwargs):
        serializer = RecordResultSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        record = retry_on_contention(
            QualityGate.record_result,
            request.user,
            data.pop('work_order', None),
            data.pop('qc_type'),
            measurements=[dict(m) for m in data.pop('measurements')],
            **data
        )
        return Response(QCRecordSerializer(record).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['get'])
    def gates(self, request):
        """Gate status and blockers for ?batch= or ?work_order="""
        batch_id = request.query_params.get('batch')
        work_order_id = request.query_params.get('work_order')
        if batch_id:
            target = get_or_not_found(ProductionBatch, 'batch', pk=batch_id)
        elif work_order_id:
            target = get_or_not_found(WorkOrder, 'work order', pk=work_order_id)
        else:
            raise ValidationError("Pass batch or work_order")

        return Response({
            kind: {
                'status': QualityGate.gate_status(target, kind),
                'blockers': QualityGate.gate_blockers(target, kind),
            }
            for kind in GateKindChoices.values
        })
