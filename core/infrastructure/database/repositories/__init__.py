"""SQLAlchemy repository implementations."""
from .sqlalchemy_execution_repository import SQLAlchemyExecutionRepository
from .sqlalchemy_fulfillment_repository import SQLAlchemyFulfillmentRepository
from .sqlalchemy_order_repository import SQLAlchemyOrderRepository
from .sqlalchemy_outbox_repository import SQLAlchemyOutboxRepository

__all__ = [
    "SQLAlchemyExecutionRepository",
    "SQLAlchemyFulfillmentRepository",
    "SQLAlchemyOrderRepository",
    "SQLAlchemyOutboxRepository",
]
