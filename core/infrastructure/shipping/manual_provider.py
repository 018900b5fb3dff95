"""
Manual shipping provider.

Merchants ship with their own carrier account; no label is bought.
"""
from typing import Optional
import logging

from .models import CreateLabelRequest, LabelResult, VoidResult
from .provider import ShippingLabelProvider


logger = logging.getLogger(__name__)


class ManualShippingProvider(ShippingLabelProvider):
    """No-op provider: ships without an external label purchase."""

    name = "manual"

    def is_available(self) -> bool:
        return True

    async def create_label(self, idempotency_key: str, request: CreateLabelRequest) -> Optional[LabelResult]:
        logger.info(f"Manual provider: no label purchase (idempotency_key={idempotency_key})")
        return None

    async def void_label(self, label_id: str) -> VoidResult:
        logger.info(f"Manual provider: nothing to void for label {label_id}")
        return VoidResult(success=True)
