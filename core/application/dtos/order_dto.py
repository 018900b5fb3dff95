"""Application DTOs for order operations."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class CancelOrderInput(BaseModel):
    """Input of the cancel-order workflow."""

    order_id: str = Field(..., description="Order to cancel")
    reason: Optional[str] = Field(None, description="Cancellation reason")
    canceled_by: Optional[str] = Field(None, description="Actor requesting the cancellation")

    model_config = {"frozen": True}


class CancelOrderResult(BaseModel):
    """Outcome of a cancellation."""

    order_id: str
    status: str
    canceled_at: datetime
    canceled_fulfillment_ids: List[str] = Field(default_factory=list)

    model_config = {"frozen": True}
