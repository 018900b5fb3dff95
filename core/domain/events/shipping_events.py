"""
Shipping Domain Events.

Emitted by the shipping transaction service through the outbox.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from .base import DomainEvent


@dataclass
class ShipmentItemData:
    """One shipped line inside ShipmentCreated."""

    line_item_id: str
    quantity: int
    title: str = ""


@dataclass
class ShipmentCreated(DomainEvent):
    """A fulfillment was marked shipped."""

    fulfillment_id: str = ""
    order_id: str = ""
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    carrier_code: Optional[str] = None
    label_id: Optional[str] = None
    items: List[ShipmentItemData] = field(default_factory=list)

    def __post_init__(self):
        if not self.aggregate_id:
            self.aggregate_id = self.fulfillment_id
        super().__post_init__()


@dataclass
class ShipmentLabelPurchased(DomainEvent):
    """A label was bought from a shipping provider."""

    fulfillment_id: str = ""
    order_id: str = ""
    label_id: str = ""
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    carrier: Optional[str] = None
    service: Optional[str] = None
    cost: Optional[Decimal] = None
    label_url: Optional[str] = None
    provider: str = ""
    idempotency_key: str = ""

    def __post_init__(self):
        if not self.aggregate_id:
            self.aggregate_id = self.fulfillment_id
        super().__post_init__()


@dataclass
class ShipmentLabelVoided(DomainEvent):
    """A purchased label was voided and (possibly) refunded."""

    fulfillment_id: str = ""
    order_id: str = ""
    label_id: str = ""
    provider: str = ""
    refund_amount: Optional[Decimal] = None

    def __post_init__(self):
        if not self.aggregate_id:
            self.aggregate_id = self.fulfillment_id
        super().__post_init__()


@dataclass
class ShipmentLabelVoidFailed(DomainEvent):
    """The provider refused to void a label; an operator has to follow up."""

    fulfillment_id: str = ""
    order_id: str = ""
    label_id: str = ""
    provider: str = ""
    error: str = ""
    requires_manual_intervention: bool = True

    def __post_init__(self):
        if not self.aggregate_id:
            self.aggregate_id = self.fulfillment_id
        super().__post_init__()
