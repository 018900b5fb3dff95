"""
Order endpoints.
"""
from typing import Optional

from fastapi import APIRouter, Body, Depends, Header
from pydantic import BaseModel

from api.dependencies import get_workflow_engine
from api.errors import raise_for_failure
from core.application.dtos import CancelOrderInput, CancelOrderResult
from orchestration import Failure, WorkflowEngine, WorkflowOptions


router = APIRouter()


class CancelOrderRequest(BaseModel):
    """Body of POST /admin/orders/{order_id}/cancel."""

    reason: Optional[str] = None
    canceled_by: Optional[str] = None


@router.post("/orders/{order_id}/cancel", response_model=CancelOrderResult, summary="Cancel an order")
async def cancel_order(
    order_id: str,
    request: Optional[CancelOrderRequest] = Body(None),
    engine: WorkflowEngine = Depends(get_workflow_engine),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    correlation_id: Optional[str] = Header(None, alias="X-Correlation-ID"),
):
    """
    Cancel an order and its unshipped fulfillments.

    With an ``Idempotency-Key`` header a repeated request replays the first
    outcome instead of running the workflow again.
    """
    request = request or CancelOrderRequest()
    workflow_input = CancelOrderInput(
        order_id=order_id, reason=request.reason, canceled_by=request.canceled_by
    )
    options = WorkflowOptions(correlation_id=correlation_id)
    if idempotency_key:
        result = await engine.execute_idempotent(
            "cancel-order", workflow_input, idempotency_key, options=options
        )
    else:
        result = await engine.execute("cancel-order", workflow_input, options=options)

    if isinstance(result, Failure):
        raise_for_failure(result)
    return result.data
