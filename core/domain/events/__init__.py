"""Domain events written to the outbox."""
from .base import DomainEvent
from .order_events import FulfillmentCanceled, OrderCanceled
from .shipping_events import (
    ShipmentCreated,
    ShipmentItemData,
    ShipmentLabelPurchased,
    ShipmentLabelVoided,
    ShipmentLabelVoidFailed,
)

EVENT_TYPES = {
    cls.__name__: cls
    for cls in (
        ShipmentCreated,
        ShipmentLabelPurchased,
        ShipmentLabelVoided,
        ShipmentLabelVoidFailed,
        OrderCanceled,
        FulfillmentCanceled,
    )
}

__all__ = [
    "DomainEvent",
    "EVENT_TYPES",
    "FulfillmentCanceled",
    "OrderCanceled",
    "ShipmentCreated",
    "ShipmentItemData",
    "ShipmentLabelPurchased",
    "ShipmentLabelVoided",
    "ShipmentLabelVoidFailed",
]
