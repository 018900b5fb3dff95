"""
Outbox Publisher.

Picks up due PENDING rows and publishes them on the event bus
(at-least-once). Each row is handled in its own transaction; failures
back off exponentially until the row is marked FAILED.
"""
from datetime import timedelta
from typing import Optional
import logging

from sqlalchemy.ext.asyncio import async_sessionmaker

from core.domain.entities import OutboxEvent
from core.domain.enums import OutboxStatus
from core.domain.events import EVENT_TYPES
from core.infrastructure.database.unit_of_work import UnitOfWork
from core.settings.sections import OutboxSettings
from orchestration.bus import EventBusProtocol
from orchestration.errors import ConcurrencyConflictError
from orchestration.events import Event, EventMetadata
from shopflow_sdk.utils.datetime import utc_now


logger = logging.getLogger(__name__)


class OutboxPublisher:
    """Dispatches outbox rows through an event bus."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        event_bus: EventBusProtocol,
        settings: Optional[OutboxSettings] = None,
    ) -> None:
        self._session_factory = session_factory
        self._event_bus = event_bus
        self._settings = settings or OutboxSettings()

    async def publish_pending(self) -> int:
        """
        Publish one batch of due events.

        Returns:
            Number of events published successfully
        """
        if not self._settings.enabled:
            return 0

        async with UnitOfWork(self._session_factory, read_only=True) as uow:
            due = await uow.outbox_events.find_due(utc_now(), self._settings.batch_size)

        if not due:
            return 0

        logger.info(f"Publishing {len(due)} outbox events")
        published = 0
        for candidate in due:
            if await self._publish_one(candidate.id):
                published += 1
        return published

    async def _publish_one(self, event_id: str) -> bool:
        async with UnitOfWork(self._session_factory) as uow:
            event = await uow.outbox_events.get(event_id)
            if event is None or event.status != OutboxStatus.PENDING:
                return False

            try:
                await self._event_bus.publish(self._to_bus_event(event))
                event.mark_published()
            except Exception as exc:
                event.mark_failed(
                    str(exc) or type(exc).__name__,
                    max_attempts=self._settings.max_attempts,
                    max_backoff_seconds=self._settings.max_backoff_seconds,
                )
                if event.status == OutboxStatus.FAILED:
                    logger.error(
                        f"Outbox event {event.id} ({event.event_type}) failed permanently "
                        f"after {event.attempts} attempts: {exc}"
                    )
                else:
                    logger.warning(
                        f"Outbox event {event.id} ({event.event_type}) publish failed "
                        f"(attempt {event.attempts}), next attempt at {event.next_attempt_at.isoformat()}: {exc}"
                    )

            try:
                await uow.outbox_events.save(event)
                await uow.commit()
            except ConcurrencyConflictError:
                logger.info(f"Outbox event {event.id} already handled by another publisher")
                return False

        return event.status == OutboxStatus.PUBLISHED

    def _to_bus_event(self, event: OutboxEvent) -> Event:
        if event.event_type not in EVENT_TYPES:
            logger.warning(f"Unknown outbox event type: {event.event_type} (id={event.id})")
        return Event(
            name=event.event_type,
            payload={
                **event.payload,
                "aggregate_type": event.aggregate_type,
                "aggregate_id": event.aggregate_id,
            },
            metadata=EventMetadata(
                execution_id=None,
                correlation_id=event.correlation_id,
                workflow_name=None,
                timestamp=utc_now(),
            ),
        )

    async def count_failed(self) -> int:
        async with UnitOfWork(self._session_factory, read_only=True) as uow:
            return await uow.outbox_events.count_failed()

    async def cleanup_published(self, older_than: Optional[timedelta] = None) -> int:
        """Delete PUBLISHED rows older than the retention window."""
        cutoff = utc_now() - (older_than or timedelta(days=self._settings.retention_days))
        async with UnitOfWork(self._session_factory) as uow:
            deleted = await uow.outbox_events.delete_published_before(cutoff)
            await uow.commit()
        if deleted:
            logger.info(f"Deleted {deleted} published outbox events older than {cutoff.isoformat()}")
        return deleted
