"""Shipping label providers."""
from .manual_provider import ManualShippingProvider
from .models import CreateLabelRequest, LabelResult, Parcel, ShippingAddress, VoidResult
from .provider import ShippingLabelProvider
from .registry import ShippingProviderRegistry, normalize_provider_id
from .shipengine_provider import ShipEngineProvider, default_parcels

__all__ = [
    "CreateLabelRequest",
    "LabelResult",
    "ManualShippingProvider",
    "Parcel",
    "ShipEngineProvider",
    "ShippingAddress",
    "ShippingLabelProvider",
    "ShippingProviderRegistry",
    "VoidResult",
    "default_parcels",
    "normalize_provider_id",
]
