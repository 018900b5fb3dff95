"""
Shipping label provider interface.
"""
from abc import ABC, abstractmethod
from typing import Optional

from .models import CreateLabelRequest, LabelResult, VoidResult


class ShippingLabelProvider(ABC):
    """
    Interface for shipping label providers.

    Implementations must honour the idempotency key so that a retried
    purchase returns the label bought the first time.
    """

    name: str

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the provider is enabled and configured."""
        pass

    @abstractmethod
    async def create_label(self, idempotency_key: str, request: CreateLabelRequest) -> Optional[LabelResult]:
        """Buy a label.

        Args:
            idempotency_key: Deduplicates retried purchases at the provider
            request: Label creation request

        Returns:
            LabelResult, or None when the provider does not buy labels

        Raises:
            ExternalProviderError: Purchase failed
        """
        pass

    @abstractmethod
    async def void_label(self, label_id: str) -> VoidResult:
        """Void a label; failures are reported in the result, not raised."""
        pass
