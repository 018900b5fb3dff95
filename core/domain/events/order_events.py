"""
Order Domain Events.

Events that occur during the order and fulfillment lifecycle.
"""
from dataclasses import dataclass, field
from typing import List, Optional

from .base import DomainEvent


@dataclass
class OrderCanceled(DomainEvent):
    """Order was canceled."""

    order_id: str = ""
    reason: Optional[str] = None
    canceled_by: Optional[str] = None
    canceled_fulfillment_ids: List[str] = field(default_factory=list)

    def __post_init__(self):
        if not self.aggregate_id:
            self.aggregate_id = self.order_id
        super().__post_init__()


@dataclass
class FulfillmentCanceled(DomainEvent):
    """An unshipped fulfillment was canceled."""

    fulfillment_id: str = ""
    order_id: str = ""

    def __post_init__(self):
        if not self.aggregate_id:
            self.aggregate_id = self.fulfillment_id
        super().__post_init__()
