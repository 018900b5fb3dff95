"""Repository interfaces."""
from .fulfillment_repository import FulfillmentRepository
from .order_repository import OrderRepository
from .outbox_repository import OutboxRepository

__all__ = ["FulfillmentRepository", "OrderRepository", "OutboxRepository"]
