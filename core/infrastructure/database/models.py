"""
SQLAlchemy ORM Models.

Maps domain aggregates to database tables. Aggregate roots carry a
``version`` column used for optimistic locking.
"""
import uuid

from sqlalchemy import (
    Column, String, DateTime, Integer, Float, Numeric, Text, Index, ForeignKey, JSON,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

from shopflow_sdk.utils.datetime import utc_now


Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


# =============================================================================
# ORDER MODELS
# =============================================================================

class OrderModel(Base):
    """Order aggregate root row."""

    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=_uuid)
    status = Column(String(32), nullable=False, default="pending", index=True)
    fulfillment_status = Column(String(32), nullable=False, default="not_fulfilled")
    email = Column(String(255), nullable=True)
    currency_code = Column(String(3), nullable=False, default="usd")
    canceled_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    items = relationship(
        "OrderLineItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderLineItemModel.position",
    )

    def __repr__(self):
        return f"<OrderModel(id={self.id}, status={self.status}, version={self.version})>"


class OrderLineItemModel(Base):
    """Order line item row (owned by the order aggregate)."""

    __tablename__ = "order_line_items"

    id = Column(String(36), primary_key=True, default=_uuid)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    title = Column(String(500), nullable=False, default="")
    variant_id = Column(String(36), nullable=True)
    sku = Column(String(255), nullable=True)
    quantity = Column(Integer, nullable=False)
    shipped_quantity = Column(Integer, nullable=False, default=0)
    status = Column(String(32), nullable=False, default="pending")

    order = relationship("OrderModel", back_populates="items")

    def __repr__(self):
        return f"<OrderLineItemModel(id={self.id}, quantity={self.quantity}, shipped={self.shipped_quantity})>"


# =============================================================================
# FULFILLMENT MODELS
# =============================================================================

class FulfillmentModel(Base):
    """Fulfillment aggregate root row with label columns."""

    __tablename__ = "fulfillments"

    id = Column(String(36), primary_key=True, default=_uuid)
    order_id = Column(String(36), ForeignKey("orders.id"), nullable=False, index=True)
    provider_id = Column(String(64), nullable=True)
    delivery_address = Column(JSON, nullable=True)

    # Label lifecycle
    label_status = Column(String(32), nullable=False, default="none")
    label_idempotency_key = Column(String(255), nullable=True, unique=True)
    label_attempt = Column(Integer, nullable=False, default=0)
    label_id = Column(String(255), nullable=True)
    label_url = Column(Text, nullable=True)
    label_cost = Column(Numeric(15, 2), nullable=True)
    label_currency = Column(String(3), nullable=True)
    carrier_code = Column(String(64), nullable=True)
    service_code = Column(String(64), nullable=True)
    label_void_error = Column(Text, nullable=True)
    label_purchased_at = Column(DateTime(timezone=True), nullable=True)
    label_pending_since = Column(DateTime(timezone=True), nullable=True)

    tracking_numbers = Column(JSON, nullable=False, default=list)
    tracking_urls = Column(JSON, nullable=False, default=list)
    shipped_at = Column(DateTime(timezone=True), nullable=True)
    canceled_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    items = relationship(
        "FulfillmentItemModel",
        back_populates="fulfillment",
        cascade="all, delete-orphan",
        order_by="FulfillmentItemModel.position",
    )

    __table_args__ = (
        Index("ix_fulfillments_label_status", "label_status"),
    )

    def __repr__(self):
        return f"<FulfillmentModel(id={self.id}, label_status={self.label_status}, version={self.version})>"


class FulfillmentItemModel(Base):
    """Line item quantity allocated to a fulfillment."""

    __tablename__ = "fulfillment_items"

    id = Column(String(36), primary_key=True, default=_uuid)
    fulfillment_id = Column(String(36), ForeignKey("fulfillments.id"), nullable=False, index=True)
    line_item_id = Column(String(36), ForeignKey("order_line_items.id"), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    quantity = Column(Integer, nullable=False)
    title = Column(String(500), nullable=False, default="")
    sku = Column(String(255), nullable=True)

    fulfillment = relationship("FulfillmentModel", back_populates="items")


# =============================================================================
# OUTBOX MODEL
# =============================================================================

class OutboxEventModel(Base):
    """Outbox row, written in the same transaction as the state change."""

    __tablename__ = "outbox_events"

    id = Column(String(36), primary_key=True, default=_uuid)
    aggregate_type = Column(String(100), nullable=False)
    aggregate_id = Column(String(36), nullable=False, index=True)
    event_type = Column(String(100), nullable=False)
    payload = Column(JSON, nullable=False)
    status = Column(String(20), nullable=False, default="pending")
    attempts = Column(Integer, nullable=False, default=0)
    next_attempt_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    last_error = Column(Text, nullable=True)
    published_at = Column(DateTime(timezone=True), nullable=True)
    correlation_id = Column(String(64), nullable=True)
    version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    __table_args__ = (
        Index("ix_outbox_events_status_next_attempt", "status", "next_attempt_at"),
        Index("ix_outbox_events_type_created", "event_type", "created_at"),
    )

    def __repr__(self):
        return f"<OutboxEventModel(id={self.id}, type={self.event_type}, status={self.status})>"


# =============================================================================
# WORKFLOW EXECUTION MODELS
# =============================================================================

class WorkflowExecutionModel(Base):
    """One workflow run recorded by the engine (audit only, never resumed)."""

    __tablename__ = "workflow_executions"

    id = Column(String(36), primary_key=True)
    workflow_name = Column(String(100), nullable=False, index=True)
    correlation_id = Column(String(64), nullable=False, index=True)
    parent_execution_id = Column(String(36), nullable=True)
    idempotency_key = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False)
    timeout_seconds = Column(Float, nullable=True)
    error_kind = Column(String(32), nullable=True)
    error_message = Column(Text, nullable=True)
    failed_compensations = Column(JSON, nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=False)
    finished_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_workflow_executions_name_status", "workflow_name", "status"),
    )


class IdempotencyKeyModel(Base):
    """Idempotency key claimed by a workflow invocation."""

    __tablename__ = "idempotency_keys"

    id = Column(Integer, primary_key=True, autoincrement=True)
    workflow_name = Column(String(100), nullable=False)
    key = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False)
    output = Column(JSON, nullable=True)
    error_kind = Column(String(32), nullable=True)
    error_message = Column(Text, nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    __table_args__ = (
        UniqueConstraint("workflow_name", "key", name="uq_idempotency_keys_workflow_key"),
    )
