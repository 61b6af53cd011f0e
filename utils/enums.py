from django.db import models
from django.utils.translation import gettext_lazy as _


# ============================================================================
# AUTHENTICATION & USER CHOICES
# ============================================================================

class RoleChoices(models.TextChoices):
    ADMIN = 'admin', _('Admin')
    MANAGER = 'manager', _('Manager')
    PRODUCTION_HEAD = 'production_head', _('Production Head')
    SUPERVISOR = 'supervisor', _('Supervisor')
    QUALITY = 'quality', _('Quality Control')
    RM_STORE = 'rm_store', _('RM Store')
    PACKING = 'packing', _('Packing')
    LOGISTICS = 'logistics', _('Logistics')
    OPERATOR = 'operator', _('Operator')


class ShiftChoices(models.TextChoices):
    SHIFT_I = 'I', _('9AM-5PM (Shift I)')
    SHIFT_II = 'II', _('5PM-2AM (Shift II)')
    SHIFT_III = 'III', _('2AM-9AM (Shift III)')


# ============================================================================
# REFERENCE DATA CHOICES
# ============================================================================

class PartnerProcessChoices(models.TextChoices):
    FORGING = 'forging', _('Forging')
    HEAT_TREATMENT = 'heat_treatment', _('Heat Treatment')
    PLATING = 'plating', _('Plating')
    GRINDING = 'grinding', _('Grinding')
    MACHINING = 'machining', _('Machining')
    OTHER = 'other', _('Other')


# ============================================================================
# RAW MATERIAL CHOICES
# ============================================================================

class MaterialLotStatusChoices(models.TextChoices):
    RECEIVED = 'received', _('Received')
    ISSUED = 'issued', _('Issued')
    IN_USE = 'in_use', _('In Use')
    CONSUMED = 'consumed', _('Consumed')


# ============================================================================
# QUALITY CHOICES
# ============================================================================

class QCTypeChoices(models.TextChoices):
    INCOMING = 'incoming', _('Incoming / Raw Material')
    FIRST_PIECE = 'first_piece', _('First Piece')
    IN_PROCESS = 'in_process', _('In Process')
    FINAL = 'final', _('Final')
    POST_EXTERNAL = 'post_external', _('Post External Processing')


class QCResultChoices(models.TextChoices):
    PASS = 'pass', _('Pass')
    FAIL = 'fail', _('Fail')
    REWORK = 'rework', _('Rework')
    PENDING = 'pending', _('Pending')
    WAIVED = 'waived', _('Waived')


class GateStatusChoices(models.TextChoices):
    PENDING = 'pending', _('Pending')
    PASSED = 'passed', _('Passed')
    FAILED = 'failed', _('Failed')
    REWORK = 'rework', _('Rework Required')
    WAIVED = 'waived', _('Waived')


class GateKindChoices(models.TextChoices):
    RAW_MATERIAL = 'raw_material', _('Raw Material')
    FIRST_PIECE = 'first_piece', _('First Piece')
    IN_PROCESS = 'in_process', _('In Process')
    FINAL = 'final', _('Final')
    POST_EXTERNAL = 'post_external', _('Post External')


GATE_KIND_TO_QC_TYPE = {
    GateKindChoices.RAW_MATERIAL: QCTypeChoices.INCOMING,
    GateKindChoices.FIRST_PIECE: QCTypeChoices.FIRST_PIECE,
    GateKindChoices.IN_PROCESS: QCTypeChoices.IN_PROCESS,
    GateKindChoices.FINAL: QCTypeChoices.FINAL,
    GateKindChoices.POST_EXTERNAL: QCTypeChoices.POST_EXTERNAL,
}

QC_RESULT_TO_GATE_STATUS = {
    QCResultChoices.PASS: GateStatusChoices.PASSED,
    QCResultChoices.WAIVED: GateStatusChoices.WAIVED,
    QCResultChoices.FAIL: GateStatusChoices.FAILED,
    QCResultChoices.REWORK: GateStatusChoices.REWORK,
    QCResultChoices.PENDING: GateStatusChoices.PENDING,
}

# Free-text values seen in older QC status columns
LEGACY_QC_RESULTS = {
    'pass': QCResultChoices.PASS,
    'passed': QCResultChoices.PASS,
    'ok': QCResultChoices.PASS,
    'approved': QCResultChoices.PASS,
    'fail': QCResultChoices.FAIL,
    'failed': QCResultChoices.FAIL,
    'rejected': QCResultChoices.FAIL,
    'rework': QCResultChoices.REWORK,
    'rework_required': QCResultChoices.REWORK,
    'hold': QCResultChoices.PENDING,
    'pending': QCResultChoices.PENDING,
    'not_started': QCResultChoices.PENDING,
    'not started': QCResultChoices.PENDING,
    'waive': QCResultChoices.WAIVED,
    'waived': QCResultChoices.WAIVED,
}


def normalize_qc_result(value):
    """
    Map a QC result string (including legacy spellings) onto QCResultChoices.
    Empty values are pending; unknown values raise ValueError.
    """
    if value is None:
        return QCResultChoices.PENDING
    key = str(value).strip().lower()
    if not key:
        return QCResultChoices.PENDING
    try:
        return LEGACY_QC_RESULTS[key]
    except KeyError:
        raise ValueError(f"Unknown QC result '{value}'")


# ============================================================================
# MANUFACTURING CHOICES
# ============================================================================

class WorkOrderStatusChoices(models.TextChoices):
    PENDING = 'pending', _('Pending')
    IN_PROGRESS = 'in_progress', _('In Progress')
    QC = 'qc', _('Quality Control')
    PACKING = 'packing', _('Packing')
    COMPLETED = 'completed', _('Completed')
    SHIPPED = 'shipped', _('Shipped')


class WorkOrderStageChoices(models.TextChoices):
    GOODS_IN = 'goods_in', _('Goods In')
    CUTTING = 'cutting', _('Cutting')
    FORGING = 'forging', _('Forging')
    PRODUCTION = 'production', _('Production')
    EXTERNAL = 'external', _('External Processing')
    QC = 'qc', _('Quality Control')
    PACKING = 'packing', _('Packing')
    DISPATCH = 'dispatch', _('Dispatch')


class BatchStageChoices(models.TextChoices):
    CUTTING = 'cutting', _('Cutting')
    PRODUCTION = 'production', _('Production')
    EXTERNAL = 'external', _('External Processing')
    QC = 'qc', _('Quality Control')
    PACKING = 'packing', _('Packing')
    DISPATCHED = 'dispatched', _('Dispatched')


class BatchLocationChoices(models.TextChoices):
    FACTORY = 'factory', _('Factory')
    EXTERNAL_PARTNER = 'external_partner', _('External Partner')
    TRANSIT = 'transit', _('In Transit')
    PACKED = 'packed', _('Packed')
    DISPATCHED = 'dispatched', _('Dispatched')


class BatchTriggerChoices(models.TextChoices):
    INITIAL = 'initial', _('Initial Batch')
    POST_COMPLETE = 'post_complete', _('After Production Complete')
    POST_DISPATCH = 'post_dispatch', _('After Dispatch')
    GAP_RESTART = 'gap_restart', _('Restart After Gap')
    RESUMED = 'resumed', _('Resumed After Manual Close')
    MATERIAL_CHANGE = 'material_change', _('Material Lot Change')
    SHIFT_CHANGE = 'shift_change', _('Shift Change')


class ExternalMovementStatusChoices(models.TextChoices):
    SENT = 'sent', _('Sent')
    IN_TRANSIT = 'in_transit', _('In Transit')
    AT_PARTNER = 'at_partner', _('At Partner')
    PARTIALLY_RETURNED = 'partially_returned', _('Partially Returned')
    RETURNED = 'returned', _('Returned')
    FORWARDED = 'forwarded', _('Forwarded')


class ActivityTypeChoices(models.TextChoices):
    WORK_ORDER_CREATED = 'work_order_created', _('Work Order Created')
    STATUS_CHANGED = 'status_changed', _('Status Changed')
    STATUS_OVERRIDDEN = 'status_overridden', _('Status Overridden')
    OVERAGE_AUTHORIZED = 'overage_authorized', _('Overage Authorized')
    BATCH_CREATED = 'batch_created', _('Batch Created')
    BATCH_ENDED = 'batch_ended', _('Batch Ended')
    PRODUCTION_RECORDED = 'production_recorded', _('Production Recorded')
    PRODUCTION_COMPLETED = 'production_completed', _('Production Completed')
    STAGE_CHANGED = 'stage_changed', _('Stage Changed')
    STAGE_OVERRIDDEN = 'stage_overridden', _('Stage Overridden')
    DISPATCH_BLOCKED = 'dispatch_blocked', _('Dispatch Blocked')
    DISPATCH_RELEASED = 'dispatch_released', _('Dispatch Released')
    QC_WAIVED = 'qc_waived', _('QC Waived')
    SHORT_CLOSED = 'short_closed', _('Short Closed')
    DISPATCH_REVERSED = 'dispatch_reversed', _('Dispatch Reversed')


# ============================================================================
# NOTIFICATION CHOICES
# ============================================================================

class NotificationTypeChoices(models.TextChoices):
    QC_PENDING = 'qc_pending', _('QC Pending')
    QC_FAILED = 'qc_failed', _('QC Failed')
    EXTERNAL_OVERDUE = 'external_overdue', _('External Return Overdue')
    EXTERNAL_DUE_SOON = 'external_due_soon', _('External Return Due Soon')
    SHORT_CLOSE = 'short_close', _('Short Close')
    STATUS_CHANGE = 'status_change', _('Status Change')
    GENERAL = 'general', _('General')


class PriorityChoices(models.TextChoices):
    LOW = 'low', _('Low')
    MEDIUM = 'medium', _('Medium')
    HIGH = 'high', _('High')
    URGENT = 'urgent', _('Urgent')
