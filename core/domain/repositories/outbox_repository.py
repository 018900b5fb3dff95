"""Repository interface for outbox rows."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from ..entities.outbox_event import OutboxEvent


class OutboxRepository(ABC):
    """Abstract repository for outbox persistence."""

    @abstractmethod
    async def add(self, event: OutboxEvent) -> None:
        pass

    @abstractmethod
    async def get(self, event_id: str) -> Optional[OutboxEvent]:
        pass

    @abstractmethod
    async def find_due(self, now: datetime, limit: int) -> List[OutboxEvent]:
        """PENDING rows whose ``next_attempt_at`` has passed, oldest first."""
        pass

    @abstractmethod
    async def find_by_aggregate(self, aggregate_id: str) -> List[OutboxEvent]:
        pass

    @abstractmethod
    async def save(self, event: OutboxEvent) -> None:
        """
        Raises:
            ConcurrencyConflictError: Another publisher updated the row first
        """
        pass

    @abstractmethod
    async def count_failed(self) -> int:
        pass

    @abstractmethod
    async def delete_published_before(self, cutoff: datetime) -> int:
        pass
