"""
SQLAlchemy Outbox Repository Implementation.
"""
from datetime import datetime
from typing import List, Optional
import logging

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.domain.entities import OutboxEvent
from core.domain.enums import OutboxStatus
from core.domain.repositories import OutboxRepository
from core.infrastructure.database.models import OutboxEventModel
from orchestration.errors import ConcurrencyConflictError
from shopflow_sdk.utils.datetime import ensure_utc


logger = logging.getLogger(__name__)


class SQLAlchemyOutboxRepository(OutboxRepository):
    """SQLAlchemy implementation of OutboxRepository."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, event: OutboxEvent) -> None:
        self.session.add(
            OutboxEventModel(
                id=event.id,
                aggregate_type=event.aggregate_type,
                aggregate_id=event.aggregate_id,
                event_type=event.event_type,
                payload=event.payload,
                status=event.status.value,
                attempts=event.attempts,
                next_attempt_at=event.next_attempt_at,
                correlation_id=event.correlation_id,
                created_at=event.created_at,
                version=event.version,
            )
        )
        await self.session.flush()

    async def get(self, event_id: str) -> Optional[OutboxEvent]:
        result = await self.session.execute(
            select(OutboxEventModel)
            .where(OutboxEventModel.id == event_id)
            .execution_options(populate_existing=True)
        )
        model = result.scalar_one_or_none()
        return self._to_domain_entity(model) if model is not None else None

    async def find_due(self, now: datetime, limit: int) -> List[OutboxEvent]:
        result = await self.session.execute(
            select(OutboxEventModel)
            .where(
                OutboxEventModel.status == OutboxStatus.PENDING.value,
                OutboxEventModel.next_attempt_at <= now,
            )
            .order_by(OutboxEventModel.created_at)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return [self._to_domain_entity(model) for model in result.scalars().all()]

    async def find_by_aggregate(self, aggregate_id: str) -> List[OutboxEvent]:
        result = await self.session.execute(
            select(OutboxEventModel)
            .where(OutboxEventModel.aggregate_id == aggregate_id)
            .order_by(OutboxEventModel.created_at)
            .execution_options(populate_existing=True)
        )
        return [self._to_domain_entity(model) for model in result.scalars().all()]

    async def save(self, event: OutboxEvent) -> None:
        result = await self.session.execute(
            update(OutboxEventModel)
            .where(OutboxEventModel.id == event.id, OutboxEventModel.version == event.version)
            .values(
                status=event.status.value,
                attempts=event.attempts,
                next_attempt_at=event.next_attempt_at,
                last_error=event.last_error,
                published_at=event.published_at,
                version=OutboxEventModel.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise ConcurrencyConflictError(f"Outbox event {event.id} was updated by another publisher")
        event.version += 1

    async def count_failed(self) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(OutboxEventModel).where(
                OutboxEventModel.status == OutboxStatus.FAILED.value
            )
        )
        return int(result.scalar_one())

    async def delete_published_before(self, cutoff: datetime) -> int:
        result = await self.session.execute(
            delete(OutboxEventModel)
            .where(
                OutboxEventModel.status == OutboxStatus.PUBLISHED.value,
                OutboxEventModel.published_at < cutoff,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    def _to_domain_entity(self, model: OutboxEventModel) -> OutboxEvent:
        return OutboxEvent(
            id=model.id,
            aggregate_type=model.aggregate_type,
            aggregate_id=model.aggregate_id,
            event_type=model.event_type,
            payload=dict(model.payload or {}),
            status=OutboxStatus(model.status),
            attempts=model.attempts,
            next_attempt_at=ensure_utc(model.next_attempt_at),
            last_error=model.last_error,
            published_at=ensure_utc(model.published_at),
            correlation_id=model.correlation_id,
            created_at=ensure_utc(model.created_at),
            version=model.version,
        )
