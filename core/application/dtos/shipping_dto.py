"""Application DTOs for shipping operations."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field


class ShipmentItemInput(BaseModel):
    """One line item quantity to ship."""

    line_item_id: str = Field(..., description="Order line item ID")
    quantity: int = Field(..., description="Quantity to ship")

    model_config = {"frozen": True}


class ParcelInput(BaseModel):
    """Package dimensions for the label purchase."""

    length: float = Field(..., gt=0)
    width: float = Field(..., gt=0)
    height: float = Field(..., gt=0)
    weight: float = Field(..., gt=0)
    dimension_unit: str = Field(default="in")
    weight_unit: str = Field(default="lb")

    model_config = {"frozen": True}


class CreateShipmentInput(BaseModel):
    """Input of the create-shipment workflow."""

    order_id: str = Field(..., description="Order ID")
    fulfillment_id: str = Field(..., description="Fulfillment to ship")
    items: List[ShipmentItemInput] = Field(..., min_length=1, description="Items to ship")
    parcels: List[ParcelInput] = Field(default_factory=list, description="Parcels (default box if empty)")
    carrier: Optional[str] = Field(None, description="Carrier id override")
    service: Optional[str] = Field(None, description="Service code override")

    model_config = {"frozen": True}


class ApplyShipmentResult(BaseModel):
    """Outcome of a shipment: identical on every idempotent replay."""

    fulfillment_id: str
    order_id: str
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    label_id: Optional[str] = None
    shipped_at: datetime

    model_config = {"frozen": True}


class VoidLabelInput(BaseModel):
    """Input of the void-shipment-label workflow."""

    fulfillment_id: str = Field(..., description="Fulfillment whose label is voided")

    model_config = {"frozen": True}


class VoidLabelResult(BaseModel):
    """Outcome of a void attempt."""

    fulfillment_id: str
    label_id: Optional[str] = None
    label_status: str
    success: bool
    refund_amount: Optional[Decimal] = None
    error: Optional[str] = None
    requires_manual_intervention: bool = False

    model_config = {"frozen": True}
