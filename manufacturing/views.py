from rest_framework import filters, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from django_filters.rest_framework import DjangoFilterBackend
from django.db.models import Prefetch

from quality.gate import QualityGate
from utils.concurrency import retry_on_contention
from utils.enums import BatchStageChoices

from .batch_engine import BatchEngine
from .external_processing import ExternalProcessingTracker
from .lifecycle import WorkOrderLifecycle
from .models import ExternalMovement, ProductionBatch, WorkOrder, WorkOrderStatusHistory
from .serializers import (
    ActivityLogSerializer,
    AdvanceStageSerializer,
    ExternalMovementSerializer,
    ForwardSerializer,
    OpenBatchSerializer,
    OverageSerializer,
    ProductionBatchDetailSerializer,
    ProductionBatchSerializer,
    ReasonSerializer,
    ReceiveReturnSerializer,
    RecordProductionSerializer,
    SendOutSerializer,
    TransitionSerializer,
    TransitSerializer,
    WorkOrderCreateSerializer,
    WorkOrderDetailSerializer,
    WorkOrderListSerializer,
)


class WorkOrderViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Work orders. Creation and every status change go through
    WorkOrderLifecycle; there is no direct update.
    """
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['status', 'current_stage', 'item', 'customer']
    search_fields = ['wo_number', 'item__item_code', 'sales_order_no', 'customer_name']
    ordering_fields = ['created_at', 'due_date', 'wo_number']
    ordering = ['-created_at']

    def get_queryset(self):
        queryset = WorkOrder.objects.select_related('item', 'customer', 'created_by')
        if self.action == 'retrieve':
            queryset = queryset.prefetch_related(
                'batches',
                Prefetch('status_history', queryset=WorkOrderStatusHistory.objects.select_related('changed_by'))
            )
        return queryset

    def get_serializer_class(self):
        if self.action == 'list':
            return WorkOrderListSerializer
        return WorkOrderDetailSerializer

    def create(self, request, *args, **kwargs):
        serializer = WorkOrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        work_order = WorkOrderLifecycle.create_work_order(
            request.user,
            data['item'],
            data['quantity'],
            customer=data.get('customer'),
            sales_order_no=data['sales_order_no'],
            sales_order_line=data.get('sales_order_line'),
            authorized_overage_qty=data['authorized_overage_qty'],
            due_date=data.get('due_date'),
        )
        return Response(WorkOrderDetailSerializer(work_order).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def transition(self, request, pk=None):
        """Move the work order to a new status (natural or override)"""
        serializer = TransitionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        work_order = retry_on_contention(
            WorkOrderLifecycle.transition, pk, data['status'], request.user,
            override=data['override'], reason=data['reason']
        )
        return Response(WorkOrderDetailSerializer(work_order).data)

    @action(detail=True, methods=['post'])
    def authorize_overage(self, request, pk=None):
        serializer = OverageSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        work_order = retry_on_contention(
            WorkOrderLifecycle.authorize_overage, pk,
            serializer.validated_data['quantity'], serializer.validated_data['reason'], request.user
        )
        return Response(WorkOrderDetailSerializer(work_order).data)

    @action(detail=True, methods=['get'])
    def completion_status(self, request, pk=None):
        return Response(WorkOrderLifecycle.completion_status(pk))

    @action(detail=True, methods=['get'])
    def activity(self, request, pk=None):
        work_order = self.get_object()
        logs = work_order.activity_logs.select_related('batch', 'performed_by')
        return Response(ActivityLogSerializer(logs, many=True).data)


class ProductionBatchViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Production batches. POST opens (or returns) the active batch of a work
    order; the actions below drive production and stage moves.
    """
    queryset = ProductionBatch.objects.select_related('work_order', 'material_lot')
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['work_order', 'stage', 'location', 'production_complete', 'dispatch_allowed']
    search_fields = ['batch_code', 'work_order__wo_number', 'material_lot__heat_number']
    ordering_fields = ['started_at', 'last_activity_at', 'batch_number']
    ordering = ['work_order', 'batch_number']

    def get_serializer_class(self):
        if self.action == 'retrieve':
            return ProductionBatchDetailSerializer
        return ProductionBatchSerializer

    def _respond(self, batch):
        return Response(ProductionBatchSerializer(batch).data)

    def create(self, request, *args, **kwargs):
        serializer = OpenBatchSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        batch = retry_on_contention(
            BatchEngine.get_or_create_batch,
            data['work_order'],
            gap_threshold_days=data.get('gap_threshold_days'),
            user=request.user,
            material_lot=data.get('material_lot'),
            shift=data.get('shift') or None,
        )
        return Response(ProductionBatchSerializer(batch).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def record_production(self, request, pk=None):
        serializer = RecordProductionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        batch = retry_on_contention(
            BatchEngine.record_production, pk,
            serializer.validated_data['qty_ok'], serializer.validated_data['qty_scrap'], request.user
        )
        return self._respond(batch)

    @action(detail=True, methods=['post'])
    def mark_complete(self, request, pk=None):
        serializer = ReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        batch = retry_on_contention(
            BatchEngine.mark_production_complete, pk, serializer.validated_data['reason'], request.user
        )
        return self._respond(batch)

    @action(detail=True, methods=['post'])
    def advance_stage(self, request, pk=None):
        serializer = AdvanceStageSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        batch = retry_on_contention(
            BatchEngine.advance_stage, pk, data['stage'], request.user,
            override=data['override'], reason=data['reason']
        )
        return self._respond(batch)

    @action(detail=True, methods=['get'])
    def blockers(self, request, pk=None):
        """What stands between the batch and QC / packing"""
        batch = self.get_object()
        return Response({
            'batch': batch.batch_code,
            'stage': batch.stage,
            'required_gates': QualityGate.required_gates(batch),
            'qc': BatchEngine.stage_blockers(batch, BatchStageChoices.QC),
            'packing': BatchEngine.stage_blockers(batch, BatchStageChoices.PACKING),
        })

    @action(detail=True, methods=['post'])
    def block_dispatch(self, request, pk=None):
        serializer = ReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        batch = retry_on_contention(BatchEngine.block_dispatch, pk, serializer.validated_data['reason'], request.user)
        return self._respond(batch)

    @action(detail=True, methods=['post'])
    def release_dispatch(self, request, pk=None):
        serializer = ReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        batch = retry_on_contention(
            BatchEngine.release_dispatch, pk, request.user, reason=serializer.validated_data['reason']
        )
        return self._respond(batch)

    @action(detail=True, methods=['post'])
    def end(self, request, pk=None):
        serializer = ReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        batch = retry_on_contention(BatchEngine.end_batch, pk, serializer.validated_data['reason'], request.user)
        return self._respond(batch)


class ExternalMovementViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Send-outs to external partners. POST sends pieces out; returns,
    transit updates and forwards are actions on a movement.
    """
    queryset = ExternalMovement.objects.select_related('work_order', 'batch', 'partner').prefetch_related('receipts')
    serializer_class = ExternalMovementSerializer
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['work_order', 'batch', 'partner', 'status']
    search_fields = ['challan_no', 'partner_name', 'batch__batch_code']
    ordering_fields = ['sent_at', 'expected_return_date']
    ordering = ['-sent_at']

    def create(self, request, *args, **kwargs):
        serializer = SendOutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        movement = retry_on_contention(
            ExternalProcessingTracker.send_out,
            data['batch'], data['partner'], data['quantity'], data.get('expected_return_date'), request.user,
            process_step=data['process_step'],
        )
        return Response(ExternalMovementSerializer(movement).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'])
    def transit(self, request, pk=None):
        serializer = TransitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        movement = retry_on_contention(
            ExternalProcessingTracker.update_transit, pk, serializer.validated_data['status'], request.user
        )
        return Response(ExternalMovementSerializer(movement).data)

    @action(detail=True, methods=['post'])
    def receive(self, request, pk=None):
        serializer = ReceiveReturnSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        movement = retry_on_contention(
            ExternalProcessingTracker.receive_return, pk,
            data['quantity_returned'], data['quantity_rejected'], request.user, remarks=data['remarks']
        )
        return Response(ExternalMovementSerializer(movement).data)

    @action(detail=True, methods=['post'])
    def forward(self, request, pk=None):
        serializer = ForwardSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        onward = retry_on_contention(
            ExternalProcessingTracker.forward, pk, data['partner'], request.user,
            expected_return_date=data.get('expected_return_date'), process_step=data['process_step']
        )
        return Response(ExternalMovementSerializer(onward).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['get'])
    def overdue(self, request):
        movements = ExternalProcessingTracker.overdue_movements()
        return Response(ExternalMovementSerializer(movements, many=True).data)

    @action(detail=False, methods=['get'])
    def due_soon(self, request):
        movements = ExternalProcessingTracker.due_soon_movements()
        return Response(ExternalMovementSerializer(movements, many=True).data)
