"""
Shipment endpoints.

Thin wrappers around the create-shipment and void-shipment-label
workflows.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, status
from pydantic import BaseModel, Field

from api.dependencies import get_workflow_engine
from api.errors import raise_for_failure
from core.application.dtos import (
    ApplyShipmentResult,
    CreateShipmentInput,
    ParcelInput,
    ShipmentItemInput,
    VoidLabelInput,
    VoidLabelResult,
)
from orchestration import Failure, WorkflowEngine, WorkflowOptions


router = APIRouter()


class CreateShipmentRequest(BaseModel):
    """Body of POST /admin/orders/{order_id}/shipments."""

    fulfillment_id: str
    items: List[ShipmentItemInput] = Field(..., min_length=1)
    parcels: List[ParcelInput] = Field(default_factory=list)
    carrier: Optional[str] = None
    service: Optional[str] = None


@router.post(
    "/orders/{order_id}/shipments",
    response_model=ApplyShipmentResult,
    status_code=status.HTTP_200_OK,
    summary="Ship a fulfillment",
)
async def create_shipment(
    order_id: str,
    request: CreateShipmentRequest,
    engine: WorkflowEngine = Depends(get_workflow_engine),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    correlation_id: Optional[str] = Header(None, alias="X-Correlation-ID"),
):
    workflow_input = CreateShipmentInput(
        order_id=order_id,
        fulfillment_id=request.fulfillment_id,
        items=request.items,
        parcels=request.parcels,
        carrier=request.carrier,
        service=request.service,
    )
    options = WorkflowOptions(correlation_id=correlation_id)
    if idempotency_key:
        result = await engine.execute_idempotent(
            "create-shipment", workflow_input, idempotency_key, options=options
        )
    else:
        result = await engine.execute("create-shipment", workflow_input, options=options)

    if isinstance(result, Failure):
        raise_for_failure(result)
    return result.data


@router.post(
    "/fulfillments/{fulfillment_id}/void-label",
    response_model=VoidLabelResult,
    summary="Void the label of a fulfillment",
)
async def void_label(
    fulfillment_id: str,
    engine: WorkflowEngine = Depends(get_workflow_engine),
    correlation_id: Optional[str] = Header(None, alias="X-Correlation-ID"),
):
    result = await engine.execute(
        "void-shipment-label",
        VoidLabelInput(fulfillment_id=fulfillment_id),
        options=WorkflowOptions(correlation_id=correlation_id),
    )
    if isinstance(result, Failure):
        raise_for_failure(result)
    return result.data
