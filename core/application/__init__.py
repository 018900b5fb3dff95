"""Application layer - DTOs, transactional services and workflows."""

from .dtos import (
    ApplyShipmentResult,
    CancelOrderInput,
    CancelOrderResult,
    CreateShipmentInput,
    ParcelInput,
    ShipmentItemInput,
    VoidLabelInput,
    VoidLabelResult,
)
from .shipping import PreparedLabelVoid, PreparedShipment, ShippingTxService, ValidatedShipmentItem

__all__ = [
    # DTOs
    "ApplyShipmentResult",
    "CancelOrderInput",
    "CancelOrderResult",
    "CreateShipmentInput",
    "ParcelInput",
    "ShipmentItemInput",
    "VoidLabelInput",
    "VoidLabelResult",
    # Shipping
    "PreparedLabelVoid",
    "PreparedShipment",
    "ShippingTxService",
    "ValidatedShipmentItem",
]
