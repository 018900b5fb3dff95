"""
Order Status Enums.

Lifecycle values for orders, their line items and their aggregate
fulfillment progress.
"""
from enum import Enum


class OrderStatus(str, Enum):
    """Order lifecycle status."""

    PENDING = "pending"
    COMPLETED = "completed"
    ARCHIVED = "archived"
    CANCELED = "canceled"
    REQUIRES_ACTION = "requires_action"

    @property
    def can_ship(self) -> bool:
        return self not in (OrderStatus.PENDING, OrderStatus.CANCELED)


class FulfillmentStatus(str, Enum):
    """Aggregate fulfillment progress of an order."""

    NOT_FULFILLED = "not_fulfilled"
    PARTIALLY_FULFILLED = "partially_fulfilled"
    FULFILLED = "fulfilled"
    PARTIALLY_SHIPPED = "partially_shipped"
    SHIPPED = "shipped"
    CANCELED = "canceled"


class OrderLineItemStatus(str, Enum):
    """Per-line shipping progress."""

    PENDING = "pending"
    FULFILLED = "fulfilled"
    PARTIALLY_SHIPPED = "partially_shipped"
    SHIPPED = "shipped"
    CANCELED = "canceled"
