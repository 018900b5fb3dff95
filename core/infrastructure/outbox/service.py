"""
Outbox Service.

Writes domain events into ``outbox_events`` inside the caller's write
transaction, so a state change and its events commit (or roll back)
together.
"""
from typing import Iterable, List, Optional
import logging

from core.domain.entities import OutboxEvent
from core.domain.events import DomainEvent


logger = logging.getLogger(__name__)

# Shipment events describe the fulfillment aggregate
_AGGREGATE_ALIASES = {"shipment": "fulfillment"}


def aggregate_type_for(event: DomainEvent) -> str:
    """Aggregate type stored with the row (``ShipmentCreated`` -> ``fulfillment``)."""
    return _AGGREGATE_ALIASES.get(event.aggregate_type, event.aggregate_type)


class OutboxService:
    """
    Enqueues domain events on a write UnitOfWork.

    Raises RuntimeError when used outside an active write transaction;
    events recorded there would never be committed.
    """

    def __init__(self, uow) -> None:
        self._uow = uow

    def _ensure_writable(self) -> None:
        if self._uow.read_only:
            raise RuntimeError("Outbox events cannot be enqueued in a read-only transaction")
        if not self._uow.is_active:
            raise RuntimeError("Outbox events must be enqueued inside an active transaction")

    async def enqueue(self, event: DomainEvent, correlation_id: Optional[str] = None) -> OutboxEvent:
        self._ensure_writable()
        outbox_event = OutboxEvent(
            aggregate_type=aggregate_type_for(event),
            aggregate_id=event.aggregate_id,
            event_type=event.event_type,
            payload=event.to_payload(),
            correlation_id=correlation_id,
        )
        await self._uow.outbox_events.add(outbox_event)
        logger.info(
            f"Enqueued {outbox_event.event_type} for {outbox_event.aggregate_type} "
            f"{outbox_event.aggregate_id} (correlation_id={correlation_id})"
        )
        return outbox_event

    async def enqueue_all(
        self, events: Iterable[DomainEvent], correlation_id: Optional[str] = None
    ) -> List[OutboxEvent]:
        return [await self.enqueue(event, correlation_id) for event in events]
