"""Domain layer - pure domain models and interfaces."""

from .entities import Fulfillment, FulfillmentItem, Order, OrderLineItem, OutboxEvent
from .repositories import FulfillmentRepository, OrderRepository, OutboxRepository

__all__ = [
    "Fulfillment",
    "FulfillmentItem",
    "FulfillmentRepository",
    "Order",
    "OrderLineItem",
    "OrderRepository",
    "OutboxEvent",
    "OutboxRepository",
]
