"""Domain enums."""
from .execution_status import ExecutionStatus
from .label_status import LabelStatus
from .order_status import FulfillmentStatus, OrderLineItemStatus, OrderStatus
from .outbox_status import OutboxStatus

__all__ = [
    "ExecutionStatus",
    "FulfillmentStatus",
    "LabelStatus",
    "OrderLineItemStatus",
    "OrderStatus",
    "OutboxStatus",
]
