"""
Shipping Transaction Service.

Every database step of a shipment runs in its own short transaction;
label purchase and void calls happen between them, outside any
transaction:

    prepare (read-only) -> mark pending (write) -> provider call -> apply (write)
    prepare void (read-only) -> mark void requested (write) -> provider call -> void outcome (write)
"""
from dataclasses import dataclass, field
from datetime import timedelta
from decimal import Decimal
from functools import partial
from typing import Callable, Dict, List, Optional
import logging

from sqlalchemy.ext.asyncio import async_sessionmaker

from core.application.dtos import (
    ApplyShipmentResult,
    CreateShipmentInput,
    ShipmentItemInput,
    VoidLabelResult,
)
from core.domain.entities import Fulfillment, Order
from core.domain.enums import LabelStatus, OrderStatus
from core.domain.events import ShipmentItemData
from core.infrastructure.database.unit_of_work import UnitOfWork
from core.infrastructure.shipping import LabelResult, ShippingAddress
from orchestration.errors import NotFoundError, ValidationError, WorkflowInProgressError


logger = logging.getLogger(__name__)

UnitOfWorkFactory = Callable[..., UnitOfWork]

DEFAULT_PURCHASE_LEASE = timedelta(minutes=2)


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass(frozen=True)
class ValidatedShipmentItem:
    """A requested line quantity that passed the quantity guards."""

    line_item_id: str
    fulfillment_item_id: str
    quantity_to_ship: int
    current_shipped_quantity: int
    new_shipped_quantity: int
    title: str
    sku: str


@dataclass(frozen=True)
class PreparedShipment:
    """Everything the provider call and the apply phase need."""

    fulfillment_id: str
    order_id: str
    provider: str
    idempotency_key: str
    label_already_purchased: bool
    existing_label_id: Optional[str]
    existing_tracking_number: Optional[str]
    ship_to_address: ShippingAddress
    items: List[ValidatedShipmentItem] = field(default_factory=list)
    already_shipped: bool = False


@dataclass(frozen=True)
class PreparedLabelVoid:
    fulfillment_id: str
    order_id: str
    provider: str
    label_id: Optional[str]
    already_voided: bool = False


# =============================================================================
# SERVICE
# =============================================================================

class ShippingTxService:
    """
    Transactional service for shipping operations.

    All DB operations are encapsulated here with explicit transaction
    boundaries. External API calls (label purchase/void) are made by the
    caller between these methods.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        purchase_lease: timedelta = DEFAULT_PURCHASE_LEASE,
    ):
        """
        Args:
            uow_factory: ``uow_factory(read_only=...)`` returns a fresh UnitOfWork
            purchase_lease: How long a PENDING_PURCHASE marker blocks other runs
        """
        self._uow_factory = uow_factory
        self._purchase_lease = purchase_lease

    @classmethod
    def from_session_factory(
        cls,
        session_factory: async_sessionmaker,
        purchase_lease: timedelta = DEFAULT_PURCHASE_LEASE,
    ) -> "ShippingTxService":
        return cls(partial(UnitOfWork, session_factory), purchase_lease)

    # -------------------------------------------------------------------------
    # Shipment
    # -------------------------------------------------------------------------

    async def prepare_shipment(self, input_: CreateShipmentInput) -> PreparedShipment:
        """
        Load, validate and prepare for label purchase. No writes.

        Raises:
            NotFoundError: Order or fulfillment missing
            ValidationError: A guard failed
        """
        logger.info(f"Preparing shipment for order={input_.order_id}, fulfillment={input_.fulfillment_id}")

        async with self._uow_factory(read_only=True) as uow:
            order = await uow.orders.get(input_.order_id)
            if order is None:
                raise NotFoundError(f"Order not found: {input_.order_id}")
            if order.status == OrderStatus.CANCELED:
                raise ValidationError(f"Cannot ship canceled order: {input_.order_id}")
            if order.status == OrderStatus.PENDING:
                raise ValidationError(f"Cannot ship pending order: {input_.order_id}")

            fulfillment = await uow.fulfillments.get(input_.fulfillment_id)
            if fulfillment is None:
                raise NotFoundError(f"Fulfillment not found: {input_.fulfillment_id}")
            if fulfillment.order_id != order.id:
                raise ValidationError(
                    f"Fulfillment {input_.fulfillment_id} does not belong to order {input_.order_id}"
                )
            if fulfillment.is_canceled():
                raise ValidationError(f"Cannot ship canceled fulfillment: {input_.fulfillment_id}")

            if fulfillment.is_shipped():
                logger.info(f"Fulfillment {fulfillment.id} already shipped - returning existing data")
                return self._prepared_from_existing(order, fulfillment)

            label_already_purchased = fulfillment.has_label_purchased()
            if label_already_purchased:
                logger.info(f"Label already purchased for fulfillment {fulfillment.id} - will reuse")

            items = self._validate_items(order, fulfillment, input_.items)

        return PreparedShipment(
            fulfillment_id=fulfillment.id,
            order_id=order.id,
            provider=fulfillment.provider,
            idempotency_key=fulfillment.label_idempotency_key or fulfillment.generate_label_idempotency_key(),
            label_already_purchased=label_already_purchased,
            existing_label_id=fulfillment.label_id if label_already_purchased else None,
            existing_tracking_number=fulfillment.tracking_number,
            ship_to_address=ShippingAddress.from_dict(fulfillment.delivery_address),
            items=items,
        )

    async def mark_label_pending_purchase(self, fulfillment_id: str, idempotency_key: str) -> bool:
        """
        Persist the purchase intent before the provider call.

        A PENDING_PURCHASE left behind by a crashed or released run is taken
        over once its lease has expired; the version check on save lets only
        one run win the takeover.

        Returns:
            True if this run now holds the purchase, False if the fulfillment
            is not eligible (label purchased, shipped or canceled)

        Raises:
            WorkflowInProgressError: Another run holds a fresh purchase lease
            ConcurrencyConflictError: Another run marked the fulfillment first
        """
        async with self._uow_factory() as uow:
            fulfillment = await uow.fulfillments.get(fulfillment_id)
            if fulfillment is None:
                raise NotFoundError(f"Fulfillment not found: {fulfillment_id}")

            if fulfillment.label_status == LabelStatus.PENDING_PURCHASE and not (
                fulfillment.is_shipped() or fulfillment.is_canceled()
            ):
                if fulfillment.is_label_purchase_in_progress(self._purchase_lease):
                    raise WorkflowInProgressError(
                        f"Label purchase already in progress for fulfillment {fulfillment_id}"
                    )
                logger.info(
                    f"Resuming stale PENDING_PURCHASE for fulfillment {fulfillment_id} "
                    f"(key={fulfillment.label_idempotency_key})"
                )
                fulfillment.resume_label_purchase()
            elif not fulfillment.can_purchase_label():
                logger.info(
                    f"Fulfillment {fulfillment_id} not eligible for PENDING_PURCHASE "
                    f"(label_status={fulfillment.label_status.value})"
                )
                return False
            else:
                fulfillment.mark_label_pending_purchase(idempotency_key)

            await uow.fulfillments.save(fulfillment)
            await uow.commit()

        logger.info(
            f"Marked fulfillment {fulfillment_id} as PENDING_PURCHASE "
            f"(key={fulfillment.label_idempotency_key})"
        )
        return True

    async def release_label_purchase(self, fulfillment_id: str) -> None:
        """Drop this run's purchase lease so a restart can resume immediately."""
        async with self._uow_factory() as uow:
            fulfillment = await uow.fulfillments.get(fulfillment_id)
            if fulfillment is None or fulfillment.label_status != LabelStatus.PENDING_PURCHASE:
                return
            fulfillment.release_label_purchase()
            await uow.fulfillments.save(fulfillment)
            await uow.commit()
        logger.info(f"Released purchase lease for fulfillment {fulfillment_id}")

    async def record_compensating_void(
        self,
        fulfillment_id: str,
        label_id: str,
        success: bool,
        error: Optional[str] = None,
        refund_amount: Optional[Decimal] = None,
        correlation_id: Optional[str] = None,
    ) -> None:
        """
        Persist the void of a label whose shipment was never applied.

        Without this the fulfillment would stay PENDING_PURCHASE under the
        voided label's idempotency key and every retry would get the voided
        label replayed by the provider.
        """
        async with self._uow_factory() as uow:
            fulfillment = await uow.fulfillments.get(fulfillment_id)
            if fulfillment is None:
                raise NotFoundError(f"Fulfillment not found: {fulfillment_id}")
            if fulfillment.label_status != LabelStatus.PENDING_PURCHASE:
                logger.warning(
                    f"Not recording compensating void of label {label_id} for fulfillment "
                    f"{fulfillment_id} (label_status={fulfillment.label_status.value})"
                )
                return

            fulfillment.record_unapplied_label_void(label_id, success, error, refund_amount)
            if not success:
                logger.warning(
                    f"Compensating void of label {label_id} failed for fulfillment "
                    f"{fulfillment_id}: {error} - manual intervention required"
                )

            await uow.fulfillments.save(fulfillment)
            await uow.outbox.enqueue_all(fulfillment.pull_domain_events(), correlation_id)
            await uow.commit()

        logger.info(
            f"Recorded compensating void of label {label_id} for fulfillment {fulfillment_id} "
            f"(label_status={fulfillment.label_status.value})"
        )

    async def apply_label_result(
        self,
        prepared: PreparedShipment,
        label_result: Optional[LabelResult],
        correlation_id: Optional[str] = None,
    ) -> ApplyShipmentResult:
        """
        Apply the label result and mark shipped, enqueueing outbox events
        in the same transaction.

        Raises:
            ValidationError: Order or fulfillment canceled meanwhile
            ConcurrencyConflictError: Concurrent update; restart from prepare
        """
        logger.info(f"Applying label result for fulfillment={prepared.fulfillment_id}")

        async with self._uow_factory() as uow:
            fulfillment = await uow.fulfillments.get(prepared.fulfillment_id)
            if fulfillment is None:
                raise NotFoundError(f"Fulfillment not found: {prepared.fulfillment_id}")
            order = await uow.orders.get(prepared.order_id)
            if order is None:
                raise NotFoundError(f"Order not found: {prepared.order_id}")

            if order.status == OrderStatus.CANCELED:
                raise ValidationError(f"Order was canceled during shipping: {prepared.order_id}")
            if fulfillment.is_canceled():
                raise ValidationError(f"Fulfillment was canceled during shipping: {prepared.fulfillment_id}")

            if fulfillment.is_shipped():
                logger.info(f"Fulfillment {fulfillment.id} already shipped (idempotent return)")
                return self._result(fulfillment)

            if label_result is not None:
                fulfillment.apply_label_purchase(
                    label_id=label_result.label_id,
                    tracking_number=label_result.tracking_number,
                    tracking_url=label_result.tracking_url,
                    label_url=label_result.label_url,
                    carrier=label_result.carrier,
                    service=label_result.service,
                    cost=label_result.cost,
                    currency=label_result.currency,
                )

            for item in prepared.items:
                line = order.find_item(item.line_item_id)
                if line is None:
                    raise ValidationError(f"Order line item not found: {item.line_item_id}")
                if item.quantity_to_ship > line.remaining_quantity:
                    raise ValidationError(
                        f"Cannot ship {item.quantity_to_ship} items. Only {line.remaining_quantity} available"
                    )
                line.apply_shipped_quantity(item.quantity_to_ship)

            fulfillment.ship(
                [
                    ShipmentItemData(line_item_id=i.line_item_id, quantity=i.quantity_to_ship, title=i.title)
                    for i in prepared.items
                ]
            )
            order.recompute_fulfillment_status()

            await uow.fulfillments.save(fulfillment)
            await uow.orders.save(order)

            # ShipmentLabelPurchased is recorded first; ShipmentCreated follows it
            await uow.outbox.enqueue_all(fulfillment.pull_domain_events(), correlation_id)
            await uow.commit()

        logger.info(
            f"Shipment applied for fulfillment={fulfillment.id} "
            f"(order fulfillment_status={order.fulfillment_status.value})"
        )
        return self._result(fulfillment)

    # -------------------------------------------------------------------------
    # Void
    # -------------------------------------------------------------------------

    async def prepare_label_void(self, fulfillment_id: str) -> PreparedLabelVoid:
        async with self._uow_factory(read_only=True) as uow:
            fulfillment = await uow.fulfillments.get(fulfillment_id)
            if fulfillment is None:
                raise NotFoundError(f"Fulfillment not found: {fulfillment_id}")

            prepared = PreparedLabelVoid(
                fulfillment_id=fulfillment.id,
                order_id=fulfillment.order_id,
                provider=fulfillment.provider,
                label_id=fulfillment.label_id,
                already_voided=fulfillment.label_status == LabelStatus.VOIDED,
            )
            if not prepared.already_voided and not fulfillment.can_void_label():
                raise ValidationError(
                    f"Fulfillment {fulfillment_id} has no voidable label "
                    f"(label_status={fulfillment.label_status.value})"
                )
        return prepared

    async def mark_label_void_requested(self, fulfillment_id: str) -> None:
        async with self._uow_factory() as uow:
            fulfillment = await uow.fulfillments.get(fulfillment_id)
            if fulfillment is None:
                raise NotFoundError(f"Fulfillment not found: {fulfillment_id}")
            if not fulfillment.can_void_label():
                raise ValidationError(
                    f"Fulfillment {fulfillment_id} has no voidable label "
                    f"(label_status={fulfillment.label_status.value})"
                )
            fulfillment.mark_label_void_requested()
            await uow.fulfillments.save(fulfillment)
            await uow.commit()
        logger.info(f"Marked fulfillment {fulfillment_id} as VOID_REQUESTED")

    async def mark_void_outcome(
        self,
        fulfillment_id: str,
        success: bool,
        error: Optional[str] = None,
        refund_amount: Optional[Decimal] = None,
        correlation_id: Optional[str] = None,
    ) -> VoidLabelResult:
        """
        Record the provider's void answer.

        A failed void is not retried: the fulfillment moves to VOID_FAILED
        and ShipmentLabelVoidFailed (requires_manual_intervention) is
        enqueued for an operator.
        """
        logger.info(f"Marking void outcome for fulfillment={fulfillment_id}, success={success}")

        async with self._uow_factory() as uow:
            fulfillment = await uow.fulfillments.get(fulfillment_id)
            if fulfillment is None:
                raise NotFoundError(f"Fulfillment not found: {fulfillment_id}")

            if success:
                fulfillment.mark_label_voided(refund_amount)
            else:
                fulfillment.mark_label_void_failed(error or "Unknown error")
                logger.warning(
                    f"Label void failed for fulfillment {fulfillment_id}: {error} - manual intervention required"
                )

            await uow.fulfillments.save(fulfillment)
            await uow.outbox.enqueue_all(fulfillment.pull_domain_events(), correlation_id)
            await uow.commit()

        return VoidLabelResult(
            fulfillment_id=fulfillment.id,
            label_id=fulfillment.label_id,
            label_status=fulfillment.label_status.value,
            success=success,
            refund_amount=refund_amount if success else None,
            error=None if success else fulfillment.label_void_error,
            requires_manual_intervention=not success,
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _validate_items(
        self, order: Order, fulfillment: Fulfillment, items: List[ShipmentItemInput]
    ) -> List[ValidatedShipmentItem]:
        # Repeated line items are merged so the quantity guards see the total
        requested: Dict[str, int] = {}
        for item in items:
            if item.quantity <= 0:
                raise ValidationError("Shipment quantity must be positive")
            requested[item.line_item_id] = requested.get(item.line_item_id, 0) + item.quantity

        validated = []
        for line_item_id, quantity in requested.items():
            line = order.find_item(line_item_id)
            if line is None:
                raise ValidationError(f"Order line item not found: {line_item_id}")

            fulfillment_item = fulfillment.find_item(line_item_id)
            if fulfillment_item is None:
                raise ValidationError(f"Line item {line_item_id} not in fulfillment {fulfillment.id}")

            if quantity > fulfillment_item.quantity:
                raise ValidationError(
                    f"Cannot ship {quantity} items. Fulfillment only has {fulfillment_item.quantity}"
                )
            if quantity > line.remaining_quantity:
                raise ValidationError(
                    f"Cannot ship {quantity} items. Only {line.remaining_quantity} available"
                )

            validated.append(
                ValidatedShipmentItem(
                    line_item_id=line.id,
                    fulfillment_item_id=fulfillment_item.id,
                    quantity_to_ship=quantity,
                    current_shipped_quantity=line.shipped_quantity,
                    new_shipped_quantity=line.shipped_quantity + quantity,
                    title=fulfillment_item.title or line.title,
                    sku=fulfillment_item.sku or line.sku or line.variant_id or "",
                )
            )
        return validated

    def _prepared_from_existing(self, order: Order, fulfillment: Fulfillment) -> PreparedShipment:
        return PreparedShipment(
            fulfillment_id=fulfillment.id,
            order_id=order.id,
            provider=fulfillment.provider,
            idempotency_key=fulfillment.label_idempotency_key or fulfillment.generate_label_idempotency_key(),
            label_already_purchased=fulfillment.has_label_purchased(),
            existing_label_id=fulfillment.label_id,
            existing_tracking_number=fulfillment.tracking_number,
            ship_to_address=ShippingAddress.from_dict(fulfillment.delivery_address),
            items=[],
            already_shipped=True,
        )

    @staticmethod
    def _result(fulfillment: Fulfillment) -> ApplyShipmentResult:
        return ApplyShipmentResult(
            fulfillment_id=fulfillment.id,
            order_id=fulfillment.order_id,
            tracking_number=fulfillment.tracking_number,
            tracking_url=fulfillment.tracking_url,
            label_id=fulfillment.label_id,
            shipped_at=fulfillment.shipped_at,
        )
