"""Create-shipment workflow: prepare, mark pending, buy label, apply."""

from typing import Optional

from core.application.dtos import ApplyShipmentResult, CreateShipmentInput
from core.application.shipping import PreparedShipment, ShippingTxService
from core.infrastructure.shipping import (
    CreateLabelRequest,
    LabelResult,
    Parcel,
    ShippingProviderRegistry,
    VoidResult,
    default_parcels,
)
from core.infrastructure.shipping.registry import MANUAL_PROVIDER
from orchestration import (
    ConcurrencyConflictError,
    Failure,
    StepResponse,
    Success,
    Workflow,
    WorkflowContext,
    WorkflowResult,
    create_step,
)
from shopflow_sdk.logging import get_logger

logger = get_logger("workflows.create_shipment")

PREPARED_KEY = "prepared_shipment"
LABEL_KEY = "label_result"
MARKED_KEY = "label_purchase_marked"


def needs_label_purchase(prepared: PreparedShipment, provider_name: str) -> bool:
    return (
        not prepared.already_shipped
        and not prepared.label_already_purchased
        and provider_name != MANUAL_PROVIDER
    )


class CreateShipmentWorkflow(Workflow[CreateShipmentInput, ApplyShipmentResult]):
    """Ship a fulfillment, buying a carrier label when its provider sells one.

    The label purchase runs between two short transactions. A purchase that
    succeeded is voided again if the apply step fails for any reason other
    than a version conflict, and the void is recorded so a retry buys under
    a fresh key. On a conflict the purchase lease is released and the caller
    restarts the whole cycle; the provider replays the same label for the
    same key.
    """

    name = "create-shipment"

    def __init__(self, tx_service: ShippingTxService, providers: ShippingProviderRegistry) -> None:
        self._tx = tx_service
        self._providers = providers

        self.prepare_step = create_step("prepare-shipment", self._prepare)
        self.mark_pending_step = create_step("mark-label-pending", self._mark_pending, self._release_pending)
        self.purchase_step = create_step("purchase-label", self._purchase, self._void_purchased)
        self.apply_step = create_step("apply-shipment", self._apply)

    async def execute(
        self, input_: CreateShipmentInput, context: WorkflowContext
    ) -> WorkflowResult[ApplyShipmentResult]:
        try:
            await self.prepare_step.invoke(input_, context)
            await self.mark_pending_step.invoke(input_, context)
            await self.purchase_step.invoke(input_, context)
            response = await self.apply_step.invoke(input_, context)
            return Success(response.data)
        except ConcurrencyConflictError as exc:
            logger.warning(
                "shipment_version_conflict",
                extra={
                    "correlation_id": context.correlation_id,
                    "execution_id": context.execution_id,
                    "fulfillment_id": input_.fulfillment_id,
                    "error": str(exc),
                },
            )
            if context.metadata.get(MARKED_KEY):
                await self._release_after_conflict(input_, context)
            return Failure(exc)
        except Exception as exc:
            await context.run_compensations()
            return Failure(exc)

    async def _release_after_conflict(self, input_: CreateShipmentInput, context: WorkflowContext) -> None:
        try:
            await self._tx.release_label_purchase(input_.fulfillment_id)
        except Exception as exc:
            # Lease then simply runs out
            logger.warning(
                "label_purchase_release_failed",
                extra={
                    "correlation_id": context.correlation_id,
                    "execution_id": context.execution_id,
                    "fulfillment_id": input_.fulfillment_id,
                    "error": str(exc),
                },
            )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _prepare(
        self, input_: CreateShipmentInput, context: WorkflowContext
    ) -> StepResponse[PreparedShipment]:
        prepared = await self._tx.prepare_shipment(input_)
        context.add_metadata(PREPARED_KEY, prepared)
        return StepResponse.of(prepared)

    async def _mark_pending(
        self, input_: CreateShipmentInput, context: WorkflowContext
    ) -> StepResponse[bool]:
        prepared = context.get_metadata(PREPARED_KEY, PreparedShipment)
        provider = self._providers.get_provider(prepared.provider)
        if not needs_label_purchase(prepared, provider.name):
            return StepResponse.of(False)
        marked = await self._tx.mark_label_pending_purchase(
            prepared.fulfillment_id, prepared.idempotency_key
        )
        context.add_metadata(MARKED_KEY, marked)
        return StepResponse.of(marked)

    async def _release_pending(
        self, input_: CreateShipmentInput, marked: bool, context: WorkflowContext
    ) -> None:
        if marked:
            await self._tx.release_label_purchase(input_.fulfillment_id)

    async def _purchase(
        self, input_: CreateShipmentInput, context: WorkflowContext
    ) -> StepResponse[Optional[LabelResult]]:
        prepared = context.get_metadata(PREPARED_KEY, PreparedShipment)
        provider = self._providers.get_provider(prepared.provider)
        marked = bool(context.metadata.get(MARKED_KEY))
        if not marked:
            logger.info(
                "label_purchase_skipped",
                extra={
                    "correlation_id": context.correlation_id,
                    "execution_id": context.execution_id,
                    "fulfillment_id": prepared.fulfillment_id,
                    "provider": provider.name,
                    "already_shipped": prepared.already_shipped,
                    "label_already_purchased": prepared.label_already_purchased,
                    "purchase_needed": needs_label_purchase(prepared, provider.name),
                },
            )
            return StepResponse.of(None)

        parcels = [
            Parcel(
                length=p.length,
                width=p.width,
                height=p.height,
                weight=p.weight,
                dimension_unit=p.dimension_unit,
                weight_unit=p.weight_unit,
            )
            for p in input_.parcels
        ] or default_parcels()
        request = CreateLabelRequest(
            ship_to_address=prepared.ship_to_address,
            parcels=parcels,
            carrier=input_.carrier,
            service=input_.service,
            metadata={"order_id": prepared.order_id, "fulfillment_id": prepared.fulfillment_id},
        )
        label = await provider.create_label(prepared.idempotency_key, request)
        context.add_metadata(LABEL_KEY, label)
        return StepResponse.of(label)

    async def _void_purchased(
        self, input_: CreateShipmentInput, label: Optional[LabelResult], context: WorkflowContext
    ) -> None:
        if label is None:
            return
        prepared = context.get_metadata(PREPARED_KEY, PreparedShipment)
        provider = self._providers.get_provider(prepared.provider)
        try:
            result = await provider.void_label(label.label_id)
        except Exception as exc:
            result = VoidResult(success=False, error=str(exc))
        if not result.success:
            # Label stays billable; someone has to void it by hand
            logger.error(
                "label_void_after_failure_failed",
                extra={
                    "correlation_id": context.correlation_id,
                    "execution_id": context.execution_id,
                    "fulfillment_id": prepared.fulfillment_id,
                    "label_id": label.label_id,
                    "error": result.error,
                },
            )
        await self._tx.record_compensating_void(
            prepared.fulfillment_id,
            label.label_id,
            success=result.success,
            error=result.error,
            refund_amount=result.refund_amount,
            correlation_id=context.correlation_id,
        )

    async def _apply(
        self, input_: CreateShipmentInput, context: WorkflowContext
    ) -> StepResponse[ApplyShipmentResult]:
        prepared = context.get_metadata(PREPARED_KEY, PreparedShipment)
        label = context.metadata.get(LABEL_KEY)
        result = await self._tx.apply_label_result(prepared, label, context.correlation_id)
        return StepResponse.of(result)
