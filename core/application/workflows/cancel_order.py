"""Cancel-order workflow."""

from dataclasses import dataclass, field
from typing import List

from core.application.dtos import CancelOrderInput, CancelOrderResult
from core.application.shipping.service import UnitOfWorkFactory
from core.domain.entities import Fulfillment, Order
from core.domain.events import DomainEvent
from orchestration import (
    Failure,
    NotFoundError,
    StepResponse,
    Success,
    ValidationError,
    Workflow,
    WorkflowContext,
    WorkflowResult,
    create_step,
)
from shopflow_sdk.logging import get_logger

logger = get_logger("workflows.cancel_order")

SNAPSHOT_KEY = "order_snapshot"
CANCELED_KEY = "canceled_fulfillments"


def ensure_fulfillment_cancelable(order_id: str, fulfillment: Fulfillment) -> None:
    """
    Raises:
        ValidationError: Fulfillment shipped or still holding a live label
    """
    if fulfillment.is_shipped():
        raise ValidationError(f"Cannot cancel order {order_id}: fulfillment {fulfillment.id} already shipped")
    if fulfillment.has_label_purchased():
        raise ValidationError(
            f"Cannot cancel order {order_id}: void the label of fulfillment {fulfillment.id} first"
        )


@dataclass
class OrderSnapshot:
    order: Order
    fulfillments: List[Fulfillment] = field(default_factory=list)


@dataclass
class CanceledFulfillments:
    fulfillment_ids: List[str] = field(default_factory=list)
    events: List[DomainEvent] = field(default_factory=list)


class CancelOrderWorkflow(Workflow[CancelOrderInput, CancelOrderResult]):
    """Cancel an order and every unshipped fulfillment on it.

    Fulfillments are canceled first. If the order itself cannot be canceled
    afterwards they are restored. All events are enqueued together with the
    order cancellation, so a restored fulfillment never announces a cancel.
    """

    name = "cancel-order"

    def __init__(self, uow_factory: UnitOfWorkFactory) -> None:
        self._uow_factory = uow_factory

        self.get_order_step = create_step("get-order", self._get_order)
        self.validate_step = create_step("validate-cancelable", self._validate)
        self.cancel_fulfillments_step = create_step(
            "cancel-fulfillments", self._cancel_fulfillments, self._restore_fulfillments
        )
        self.cancel_order_step = create_step("cancel-order", self._cancel_order)

    async def execute(
        self, input_: CancelOrderInput, context: WorkflowContext
    ) -> WorkflowResult[CancelOrderResult]:
        try:
            await self.get_order_step.invoke(input_, context)
            await self.validate_step.invoke(input_, context)
            await self.cancel_fulfillments_step.invoke(input_, context)
            response = await self.cancel_order_step.invoke(input_, context)
            return Success(response.data)
        except Exception as exc:
            await context.run_compensations()
            return Failure(exc)

    async def _get_order(self, input_: CancelOrderInput, context: WorkflowContext) -> StepResponse[OrderSnapshot]:
        async with self._uow_factory(read_only=True) as uow:
            order = await uow.orders.get(input_.order_id)
            if order is None:
                raise NotFoundError(f"Order not found: {input_.order_id}")
            fulfillments = await uow.fulfillments.find_by_order_id(order.id)
        snapshot = OrderSnapshot(order=order, fulfillments=fulfillments)
        context.add_metadata(SNAPSHOT_KEY, snapshot)
        return StepResponse.of(snapshot)

    async def _validate(self, input_: CancelOrderInput, context: WorkflowContext) -> StepResponse[None]:
        snapshot = context.get_metadata(SNAPSHOT_KEY, OrderSnapshot)
        if snapshot.order.is_canceled():
            raise ValidationError(f"Order is already canceled: {snapshot.order.id}")
        for fulfillment in snapshot.fulfillments:
            ensure_fulfillment_cancelable(snapshot.order.id, fulfillment)
        return StepResponse.of(None)

    async def _cancel_fulfillments(
        self, input_: CancelOrderInput, context: WorkflowContext
    ) -> StepResponse[CanceledFulfillments]:
        snapshot = context.get_metadata(SNAPSHOT_KEY, OrderSnapshot)
        canceled = CanceledFulfillments()
        async with self._uow_factory() as uow:
            for candidate in snapshot.fulfillments:
                if candidate.is_canceled():
                    continue
                # Re-checked on the fresh row; a label may have been bought since the snapshot
                fulfillment = await uow.fulfillments.get(candidate.id)
                if fulfillment is None:
                    raise NotFoundError(f"Fulfillment not found: {candidate.id}")
                ensure_fulfillment_cancelable(input_.order_id, fulfillment)
                try:
                    fulfillment.cancel()
                except ValueError as exc:
                    raise ValidationError(str(exc)) from exc
                await uow.fulfillments.save(fulfillment)
                canceled.fulfillment_ids.append(fulfillment.id)
                canceled.events.extend(fulfillment.pull_domain_events())
            await uow.commit()

        context.add_metadata(CANCELED_KEY, canceled)
        return StepResponse.of(canceled)

    async def _restore_fulfillments(
        self, input_: CancelOrderInput, canceled: CanceledFulfillments, context: WorkflowContext
    ) -> None:
        async with self._uow_factory() as uow:
            for fulfillment_id in canceled.fulfillment_ids:
                fulfillment = await uow.fulfillments.get(fulfillment_id)
                if fulfillment is None:
                    continue
                fulfillment.restore()
                await uow.fulfillments.save(fulfillment)
            await uow.commit()
        logger.info(
            "fulfillments_restored",
            extra={
                "correlation_id": context.correlation_id,
                "execution_id": context.execution_id,
                "fulfillment_ids": canceled.fulfillment_ids,
            },
        )

    async def _cancel_order(
        self, input_: CancelOrderInput, context: WorkflowContext
    ) -> StepResponse[CancelOrderResult]:
        canceled = context.get_metadata(CANCELED_KEY, CanceledFulfillments)
        async with self._uow_factory() as uow:
            order = await uow.orders.get(input_.order_id)
            if order is None:
                raise NotFoundError(f"Order not found: {input_.order_id}")
            try:
                order.cancel(
                    reason=input_.reason,
                    canceled_by=input_.canceled_by,
                    canceled_fulfillment_ids=canceled.fulfillment_ids,
                )
            except ValueError as exc:
                raise ValidationError(str(exc)) from exc
            await uow.orders.save(order)
            await uow.outbox.enqueue_all(canceled.events + order.pull_domain_events(), context.correlation_id)
            await uow.commit()

        return StepResponse.of(
            CancelOrderResult(
                order_id=order.id,
                status=order.status.value,
                canceled_at=order.canceled_at,
                canceled_fulfillment_ids=list(canceled.fulfillment_ids),
            )
        )
