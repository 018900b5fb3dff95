"""Repository interfaces for the Order aggregate."""

from abc import ABC, abstractmethod
from typing import Optional

from ..entities.order import Order


class OrderRepository(ABC):
    """Abstract repository for Order aggregate persistence."""

    @abstractmethod
    async def get(self, order_id: str) -> Optional[Order]:
        """Load an order with its line items.

        Args:
            order_id: Order identifier

        Returns:
            Order if found, None otherwise
        """
        pass

    @abstractmethod
    async def add(self, order: Order) -> None:
        """Insert a new order."""
        pass

    @abstractmethod
    async def save(self, order: Order) -> None:
        """Persist changes guarded by the order's version.

        Raises:
            ConcurrencyConflictError: The stored version moved on
        """
        pass
