"""Void-shipment-label workflow."""

from core.application.dtos import VoidLabelInput, VoidLabelResult
from core.application.shipping import PreparedLabelVoid, ShippingTxService
from core.domain.enums import LabelStatus
from core.infrastructure.shipping import ShippingProviderRegistry, VoidResult
from orchestration import (
    Failure,
    StepResponse,
    Success,
    Workflow,
    WorkflowContext,
    WorkflowResult,
    create_step,
)
from shopflow_sdk.logging import get_logger

logger = get_logger("workflows.void_label")

PREPARED_KEY = "prepared_void"
VOID_RESULT_KEY = "void_result"


class VoidShipmentLabelWorkflow(Workflow[VoidLabelInput, VoidLabelResult]):
    """Void a purchased label and record the provider's answer.

    A rejected void is not retried: the fulfillment ends in VOID_FAILED and
    a manual-intervention event is enqueued. The run itself still succeeds
    because the outcome was recorded; callers read ``success`` on the result.
    """

    name = "void-shipment-label"

    def __init__(self, tx_service: ShippingTxService, providers: ShippingProviderRegistry) -> None:
        self._tx = tx_service
        self._providers = providers

        self.prepare_step = create_step("prepare-void", self._prepare)
        self.mark_requested_step = create_step("mark-void-requested", self._mark_requested)
        self.void_step = create_step("void-label", self._void)
        self.record_step = create_step("record-void-outcome", self._record_outcome)

    async def execute(
        self, input_: VoidLabelInput, context: WorkflowContext
    ) -> WorkflowResult[VoidLabelResult]:
        try:
            prepared = (await self.prepare_step.invoke(input_, context)).data
            if prepared.already_voided:
                return Success(
                    VoidLabelResult(
                        fulfillment_id=prepared.fulfillment_id,
                        label_id=prepared.label_id,
                        label_status=LabelStatus.VOIDED.value,
                        success=True,
                    )
                )
            await self.mark_requested_step.invoke(input_, context)
            await self.void_step.invoke(input_, context)
            response = await self.record_step.invoke(input_, context)
            return Success(response.data)
        except Exception as exc:
            await context.run_compensations()
            return Failure(exc)

    async def _prepare(
        self, input_: VoidLabelInput, context: WorkflowContext
    ) -> StepResponse[PreparedLabelVoid]:
        prepared = await self._tx.prepare_label_void(input_.fulfillment_id)
        context.add_metadata(PREPARED_KEY, prepared)
        return StepResponse.of(prepared)

    async def _mark_requested(self, input_: VoidLabelInput, context: WorkflowContext) -> StepResponse[None]:
        await self._tx.mark_label_void_requested(input_.fulfillment_id)
        return StepResponse.of(None)

    async def _void(self, input_: VoidLabelInput, context: WorkflowContext) -> StepResponse[VoidResult]:
        prepared = context.get_metadata(PREPARED_KEY, PreparedLabelVoid)
        provider = self._providers.get_provider(prepared.provider)
        try:
            result = await provider.void_label(prepared.label_id)
        except Exception as exc:
            logger.warning(
                "label_void_call_failed",
                extra={
                    "correlation_id": context.correlation_id,
                    "execution_id": context.execution_id,
                    "fulfillment_id": prepared.fulfillment_id,
                    "label_id": prepared.label_id,
                    "error": str(exc),
                },
            )
            result = VoidResult(success=False, error=str(exc))
        context.add_metadata(VOID_RESULT_KEY, result)
        return StepResponse.of(result)

    async def _record_outcome(
        self, input_: VoidLabelInput, context: WorkflowContext
    ) -> StepResponse[VoidLabelResult]:
        result = context.get_metadata(VOID_RESULT_KEY, VoidResult)
        outcome = await self._tx.mark_void_outcome(
            input_.fulfillment_id,
            success=result.success,
            error=result.error,
            refund_amount=result.refund_amount,
            correlation_id=context.correlation_id,
        )
        return StepResponse.of(outcome)
