"""
Manufacturing Models Package
"""

from .work_order import (
    WorkOrder,
    WorkOrderStatusHistory,
    ShortClose,
)
from .batch import (
    ProductionBatch,
    BatchStageHistory,
)
from .external import (
    ExternalMovement,
    ExternalReceipt,
)
from .activity_log import ActivityLog

__all__ = [
    # Work orders
    'WorkOrder',
    'WorkOrderStatusHistory',
    'ShortClose',

    # Batches
    'ProductionBatch',
    'BatchStageHistory',

    # External processing
    'ExternalMovement',
    'ExternalReceipt',

    # Audit
    'ActivityLog',
]
