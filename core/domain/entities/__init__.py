"""Domain entities."""
from .aggregate import AggregateRoot
from .fulfillment import MANUAL_PROVIDER_ID, Fulfillment, FulfillmentItem
from .order import Order, OrderLineItem
from .outbox_event import OutboxEvent

__all__ = [
    "AggregateRoot",
    "Fulfillment",
    "FulfillmentItem",
    "MANUAL_PROVIDER_ID",
    "Order",
    "OrderLineItem",
    "OutboxEvent",
]
