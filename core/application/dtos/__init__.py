"""Application DTOs."""
from .order_dto import CancelOrderInput, CancelOrderResult
from .shipping_dto import (
    ApplyShipmentResult,
    CreateShipmentInput,
    ParcelInput,
    ShipmentItemInput,
    VoidLabelInput,
    VoidLabelResult,
)

__all__ = [
    "ApplyShipmentResult",
    "CancelOrderInput",
    "CancelOrderResult",
    "CreateShipmentInput",
    "ParcelInput",
    "ShipmentItemInput",
    "VoidLabelInput",
    "VoidLabelResult",
]
