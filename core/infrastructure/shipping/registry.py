"""
Shipping Provider Registry.

Resolves the provider for a fulfillment from its stored provider id.
"""
from typing import Dict, Iterable, List, Optional
import logging

from .provider import ShippingLabelProvider


logger = logging.getLogger(__name__)

DEFAULT_PROVIDER = "shipengine"
MANUAL_PROVIDER = "manual"


def normalize_provider_id(provider_id: Optional[str]) -> str:
    """
    Map stored provider ids onto registered provider names.

    Legacy aggregator ids (shippo, shipstation, easypost) and unknown ids
    resolve to ShipEngine; ids mentioning "manual" stay manual.
    """
    lower = (provider_id or "").lower()
    if "manual" in lower:
        return MANUAL_PROVIDER
    return DEFAULT_PROVIDER


class ShippingProviderRegistry:
    """Registry of shipping label providers keyed by name."""

    def __init__(self, providers: Iterable[ShippingLabelProvider]):
        self._providers: Dict[str, ShippingLabelProvider] = {p.name.lower(): p for p in providers}
        logger.info(f"Registered {len(self._providers)} shipping providers: {sorted(self._providers)}")

    def get_provider(self, provider_id: Optional[str]) -> ShippingLabelProvider:
        """
        Provider for ``provider_id``, falling back to the default provider.

        Raises:
            LookupError: No provider registered at all
        """
        provider = self._providers.get(normalize_provider_id(provider_id))
        return provider or self.get_default_provider()

    def get_default_provider(self) -> ShippingLabelProvider:
        provider = self._providers.get(DEFAULT_PROVIDER) or self._providers.get(MANUAL_PROVIDER)
        if provider is None:
            raise LookupError("No shipping providers registered")
        return provider

    def get_available_providers(self) -> List[ShippingLabelProvider]:
        return [p for p in self._providers.values() if p.is_available()]

    def is_provider_available(self, provider_id: Optional[str]) -> bool:
        return self.get_provider(provider_id).is_available()
