"""Two-phase transactional shipping operations."""
from .service import (
    PreparedLabelVoid,
    PreparedShipment,
    ShippingTxService,
    ValidatedShipmentItem,
)

__all__ = [
    "PreparedLabelVoid",
    "PreparedShipment",
    "ShippingTxService",
    "ValidatedShipmentItem",
]
