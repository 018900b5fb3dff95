"""Repository interfaces for the Fulfillment aggregate."""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..entities.fulfillment import Fulfillment


class FulfillmentRepository(ABC):
    """Abstract repository for Fulfillment aggregate persistence."""

    @abstractmethod
    async def get(self, fulfillment_id: str) -> Optional[Fulfillment]:
        pass

    @abstractmethod
    async def find_by_order_id(self, order_id: str) -> List[Fulfillment]:
        pass

    @abstractmethod
    async def add(self, fulfillment: Fulfillment) -> None:
        pass

    @abstractmethod
    async def save(self, fulfillment: Fulfillment) -> None:
        """Persist changes guarded by the fulfillment's version.

        Raises:
            ConcurrencyConflictError: The stored version moved on
        """
        pass
