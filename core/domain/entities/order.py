"""
Order aggregate root.

CRITICAL: This file must contain ZERO imports from:
- sqlalchemy
- pydantic
- fastapi
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from shopflow_sdk.utils.datetime import utc_now

from ..enums import FulfillmentStatus, OrderLineItemStatus, OrderStatus
from ..events.order_events import OrderCanceled
from .aggregate import AggregateRoot


@dataclass
class OrderLineItem:
    """Individual line item within an order."""

    id: str
    title: str
    quantity: int
    shipped_quantity: int = 0
    variant_id: Optional[str] = None
    sku: Optional[str] = None
    status: OrderLineItemStatus = OrderLineItemStatus.PENDING

    @property
    def remaining_quantity(self) -> int:
        return self.quantity - self.shipped_quantity

    def apply_shipped_quantity(self, quantity: int) -> None:
        """Add ``quantity`` shipped units and update the per-line status.

        Raises:
            ValueError: Shipping more than what remains
        """
        if quantity <= 0:
            raise ValueError(f"Shipped quantity must be positive, got {quantity}")
        if quantity > self.remaining_quantity:
            raise ValueError(
                f"Cannot ship {quantity} of line {self.id}: only {self.remaining_quantity} remaining"
            )
        self.shipped_quantity += quantity
        if self.shipped_quantity >= self.quantity:
            self.status = OrderLineItemStatus.SHIPPED
        else:
            self.status = OrderLineItemStatus.PARTIALLY_SHIPPED


@dataclass
class Order(AggregateRoot):
    """
    Order aggregate root.

    Owns its line items; fulfillments are a separate aggregate that
    reference the order by id.
    """

    id: str = ""
    status: OrderStatus = OrderStatus.PENDING
    fulfillment_status: FulfillmentStatus = FulfillmentStatus.NOT_FULFILLED
    items: List[OrderLineItem] = field(default_factory=list)
    email: Optional[str] = None
    currency_code: str = "usd"
    canceled_at: Optional[datetime] = None
    version: int = 0

    def find_item(self, line_item_id: str) -> Optional[OrderLineItem]:
        return next((item for item in self.items if item.id == line_item_id), None)

    def is_canceled(self) -> bool:
        return self.status == OrderStatus.CANCELED

    def recompute_fulfillment_status(self) -> FulfillmentStatus:
        """Business rule: derive the aggregate shipping progress from the lines."""
        if not self.items:
            return self.fulfillment_status

        statuses = [item.status for item in self.items]
        if all(s == OrderLineItemStatus.SHIPPED for s in statuses):
            self.fulfillment_status = FulfillmentStatus.SHIPPED
        elif any(s in (OrderLineItemStatus.SHIPPED, OrderLineItemStatus.PARTIALLY_SHIPPED) for s in statuses):
            self.fulfillment_status = FulfillmentStatus.PARTIALLY_SHIPPED
        return self.fulfillment_status

    def cancel(
        self,
        reason: Optional[str] = None,
        canceled_by: Optional[str] = None,
        canceled_fulfillment_ids: Optional[List[str]] = None,
    ) -> None:
        """Business rule: transition to canceled and record OrderCanceled.

        Raises:
            ValueError: Order already canceled
        """
        if self.is_canceled():
            raise ValueError(f"Order is already canceled: {self.id}")
        self.status = OrderStatus.CANCELED
        self.fulfillment_status = FulfillmentStatus.CANCELED
        self.canceled_at = utc_now()
        for item in self.items:
            if item.status != OrderLineItemStatus.SHIPPED:
                item.status = OrderLineItemStatus.CANCELED
        self._record_event(
            OrderCanceled(
                order_id=self.id,
                reason=reason,
                canceled_by=canceled_by,
                canceled_fulfillment_ids=list(canceled_fulfillment_ids or []),
            )
        )
