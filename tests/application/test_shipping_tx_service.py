"""Tests for ShippingTxService - the two-phase shipping transactions."""

from datetime import timedelta
from decimal import Decimal

import pytest

from core.application.dtos import CreateShipmentInput, ShipmentItemInput
from core.application.shipping import ShippingTxService
from core.domain.enums import FulfillmentStatus, LabelStatus, OrderLineItemStatus, OrderStatus
from core.infrastructure.database.repositories import SQLAlchemyFulfillmentRepository
from core.infrastructure.shipping import LabelResult
from orchestration.errors import (
    ConcurrencyConflictError,
    NotFoundError,
    ValidationError,
    WorkflowInProgressError,
)


LABEL = LabelResult(
    label_id="L1",
    tracking_number="T1",
    tracking_url="https://track.example.com/T1",
    label_url="https://labels.example.com/L1.pdf",
    carrier="usps",
    service="usps_priority_mail",
    cost=Decimal("7.50"),
)


def shipment_input(seeded, quantity: int = 2) -> CreateShipmentInput:
    return CreateShipmentInput(
        order_id=seeded.order_id,
        fulfillment_id=seeded.fulfillment_id,
        items=[ShipmentItemInput(line_item_id=seeded.line_item_id, quantity=quantity)],
    )


async def load(uow_factory, seeded):
    async with uow_factory(read_only=True) as uow:
        order = await uow.orders.get(seeded.order_id)
        fulfillment = await uow.fulfillments.get(seeded.fulfillment_id)
        events = await uow.outbox_events.find_by_aggregate(seeded.fulfillment_id)
    return order, fulfillment, events


async def ship(tx_service, seeded, label=LABEL):
    prepared = await tx_service.prepare_shipment(shipment_input(seeded))
    await tx_service.mark_label_pending_purchase(prepared.fulfillment_id, prepared.idempotency_key)
    return prepared, await tx_service.apply_label_result(prepared, label, correlation_id="corr-1")


# =============================================================================
# PREPARE
# =============================================================================

@pytest.mark.asyncio
async def test_prepare_validates_items(tx_service, seed_order):
    seeded = await seed_order(quantity=2)

    prepared = await tx_service.prepare_shipment(shipment_input(seeded))

    assert prepared.idempotency_key == f"label:{seeded.fulfillment_id}"
    assert prepared.provider == "shipengine"
    assert not prepared.label_already_purchased
    assert not prepared.already_shipped
    [item] = prepared.items
    assert item.quantity_to_ship == 2
    assert item.current_shipped_quantity == 0
    assert item.new_shipped_quantity == 2
    assert prepared.ship_to_address.city == "Austin"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "quantity, shipped_quantity, fulfillment_quantity",
    [
        (3, 0, 2),  # more than the fulfillment holds
        (2, 1, 2),  # more than the line has left
        (0, 0, 2),
    ],
)
async def test_quantity_guard_fails_without_mutation(
    tx_service, seed_order, uow_factory, quantity, shipped_quantity, fulfillment_quantity
):
    seeded = await seed_order(
        quantity=2, shipped_quantity=shipped_quantity, fulfillment_quantity=fulfillment_quantity
    )

    with pytest.raises(ValidationError):
        await tx_service.prepare_shipment(shipment_input(seeded, quantity=quantity))

    order, fulfillment, events = await load(uow_factory, seeded)
    assert order.version == 0
    assert order.items[0].shipped_quantity == shipped_quantity
    assert fulfillment.version == 0
    assert fulfillment.label_status is LabelStatus.NONE
    assert events == []


@pytest.mark.asyncio
async def test_repeated_line_items_are_checked_together(tx_service, seed_order, uow_factory):
    seeded = await seed_order(quantity=2)
    split = CreateShipmentInput(
        order_id=seeded.order_id,
        fulfillment_id=seeded.fulfillment_id,
        items=[
            ShipmentItemInput(line_item_id=seeded.line_item_id, quantity=2),
            ShipmentItemInput(line_item_id=seeded.line_item_id, quantity=2),
        ],
    )

    with pytest.raises(ValidationError, match="Cannot ship 4 items"):
        await tx_service.prepare_shipment(split)

    order, fulfillment, events = await load(uow_factory, seeded)
    assert order.items[0].shipped_quantity == 0
    assert fulfillment.version == 0
    assert events == []


@pytest.mark.asyncio
async def test_repeated_line_items_within_limits_are_merged(tx_service, seed_order):
    seeded = await seed_order(quantity=3)
    split = CreateShipmentInput(
        order_id=seeded.order_id,
        fulfillment_id=seeded.fulfillment_id,
        items=[
            ShipmentItemInput(line_item_id=seeded.line_item_id, quantity=1),
            ShipmentItemInput(line_item_id=seeded.line_item_id, quantity=2),
        ],
    )

    prepared = await tx_service.prepare_shipment(split)

    [item] = prepared.items
    assert item.quantity_to_ship == 3
    assert item.new_shipped_quantity == 3


@pytest.mark.asyncio
async def test_prepare_guards(tx_service, seed_order):
    pending = await seed_order(status=OrderStatus.PENDING)
    canceled = await seed_order(status=OrderStatus.CANCELED)
    other = await seed_order()
    another = await seed_order()

    with pytest.raises(NotFoundError):
        await tx_service.prepare_shipment(
            CreateShipmentInput(
                order_id="missing",
                fulfillment_id=other.fulfillment_id,
                items=[ShipmentItemInput(line_item_id=other.line_item_id, quantity=1)],
            )
        )
    with pytest.raises(ValidationError, match="pending"):
        await tx_service.prepare_shipment(shipment_input(pending))
    with pytest.raises(ValidationError, match="canceled"):
        await tx_service.prepare_shipment(shipment_input(canceled))
    with pytest.raises(ValidationError, match="does not belong"):
        await tx_service.prepare_shipment(
            CreateShipmentInput(
                order_id=another.order_id,
                fulfillment_id=other.fulfillment_id,
                items=[ShipmentItemInput(line_item_id=other.line_item_id, quantity=1)],
            )
        )


# =============================================================================
# MARK PENDING
# =============================================================================

@pytest.mark.asyncio
async def test_mark_pending_holds_a_purchase_lease(tx_service, seed_order, uow_factory):
    seeded = await seed_order()
    prepared = await tx_service.prepare_shipment(shipment_input(seeded))

    assert await tx_service.mark_label_pending_purchase(seeded.fulfillment_id, prepared.idempotency_key)
    with pytest.raises(WorkflowInProgressError):
        await tx_service.mark_label_pending_purchase(seeded.fulfillment_id, "label:other")

    _, fulfillment, _ = await load(uow_factory, seeded)
    assert fulfillment.label_status is LabelStatus.PENDING_PURCHASE
    assert fulfillment.label_idempotency_key == prepared.idempotency_key
    assert fulfillment.label_pending_since is not None
    assert fulfillment.version == 1


@pytest.mark.asyncio
async def test_expired_lease_is_taken_over_with_the_same_key(uow_factory, seed_order):
    seeded = await seed_order()
    impatient = ShippingTxService(uow_factory, purchase_lease=timedelta(0))
    prepared = await impatient.prepare_shipment(shipment_input(seeded))
    await impatient.mark_label_pending_purchase(seeded.fulfillment_id, prepared.idempotency_key)

    assert await impatient.mark_label_pending_purchase(seeded.fulfillment_id, "label:other")

    _, fulfillment, _ = await load(uow_factory, seeded)
    assert fulfillment.label_idempotency_key == prepared.idempotency_key
    assert fulfillment.version == 2


@pytest.mark.asyncio
async def test_released_lease_can_be_resumed(tx_service, seed_order, uow_factory):
    seeded = await seed_order()
    prepared = await tx_service.prepare_shipment(shipment_input(seeded))
    await tx_service.mark_label_pending_purchase(seeded.fulfillment_id, prepared.idempotency_key)

    await tx_service.release_label_purchase(seeded.fulfillment_id)

    _, fulfillment, _ = await load(uow_factory, seeded)
    assert fulfillment.label_pending_since is None
    assert await tx_service.mark_label_pending_purchase(seeded.fulfillment_id, prepared.idempotency_key)


@pytest.mark.asyncio
async def test_mark_pending_after_purchase_is_refused(tx_service, seed_order):
    seeded = await seed_order()
    await ship(tx_service, seeded)

    assert not await tx_service.mark_label_pending_purchase(seeded.fulfillment_id, "label:other")


# =============================================================================
# APPLY
# =============================================================================

@pytest.mark.asyncio
async def test_apply_ships_and_enqueues_events(tx_service, seed_order, uow_factory):
    seeded = await seed_order(quantity=2)

    prepared, result = await ship(tx_service, seeded)

    assert result.label_id == "L1"
    assert result.tracking_number == "T1"
    order, fulfillment, events = await load(uow_factory, seeded)
    assert order.items[0].shipped_quantity == 2
    assert order.items[0].status is OrderLineItemStatus.SHIPPED
    assert order.fulfillment_status is FulfillmentStatus.SHIPPED
    assert fulfillment.label_status is LabelStatus.PURCHASED
    assert fulfillment.is_shipped()
    assert sorted(e.event_type for e in events) == ["ShipmentCreated", "ShipmentLabelPurchased"]
    assert {e.aggregate_type for e in events} == {"fulfillment"}
    assert {e.correlation_id for e in events} == {"corr-1"}


@pytest.mark.asyncio
async def test_apply_twice_is_idempotent(tx_service, seed_order, uow_factory):
    seeded = await seed_order(quantity=2)
    prepared, first = await ship(tx_service, seeded)

    second = await tx_service.apply_label_result(prepared, LABEL, correlation_id="corr-2")

    assert second == first
    order, fulfillment, events = await load(uow_factory, seeded)
    assert order.items[0].shipped_quantity == 2
    assert fulfillment.label_id == "L1"
    assert len(events) == 2


@pytest.mark.asyncio
async def test_prepare_after_shipment_short_circuits(tx_service, seed_order):
    seeded = await seed_order()
    await ship(tx_service, seeded)

    prepared = await tx_service.prepare_shipment(shipment_input(seeded))

    assert prepared.already_shipped
    assert prepared.existing_label_id == "L1"
    assert prepared.existing_tracking_number == "T1"
    assert prepared.items == []


@pytest.mark.asyncio
async def test_apply_rechecks_cancellation(tx_service, seed_order, uow_factory):
    seeded = await seed_order()
    prepared = await tx_service.prepare_shipment(shipment_input(seeded))

    async with uow_factory() as uow:
        fulfillment = await uow.fulfillments.get(seeded.fulfillment_id)
        fulfillment.cancel()
        await uow.fulfillments.save(fulfillment)
        await uow.commit()

    with pytest.raises(ValidationError, match="canceled"):
        await tx_service.apply_label_result(prepared, LABEL)

    order, _, events = await load(uow_factory, seeded)
    assert order.items[0].shipped_quantity == 0
    assert events == []


@pytest.mark.asyncio
async def test_apply_without_label_ships_manually(tx_service, seed_order, uow_factory):
    seeded = await seed_order(provider_id="manual")
    prepared = await tx_service.prepare_shipment(shipment_input(seeded))

    result = await tx_service.apply_label_result(prepared, None)

    assert result.label_id is None
    _, fulfillment, events = await load(uow_factory, seeded)
    assert fulfillment.label_status is LabelStatus.NONE
    assert [e.event_type for e in events] == ["ShipmentCreated"]


# =============================================================================
# OPTIMISTIC LOCKING
# =============================================================================

@pytest.mark.asyncio
async def test_concurrent_fulfillment_saves_one_conflicts(seed_order, uow_factory):
    seeded = await seed_order()

    async with uow_factory() as first, uow_factory() as second:
        mine = await first.fulfillments.get(seeded.fulfillment_id)
        theirs = await second.fulfillments.get(seeded.fulfillment_id)

        mine.mark_label_pending_purchase("label:a")
        await first.fulfillments.save(mine)
        await first.commit()

        theirs.mark_label_pending_purchase("label:b")
        with pytest.raises(ConcurrencyConflictError):
            await second.fulfillments.save(theirs)

    _, fulfillment, _ = await load(uow_factory, seeded)
    assert fulfillment.label_idempotency_key == "label:a"
    assert fulfillment.version == 1


@pytest.mark.asyncio
async def test_concurrent_order_saves_one_conflicts(seed_order, uow_factory):
    seeded = await seed_order()

    async with uow_factory() as first, uow_factory() as second:
        mine = await first.orders.get(seeded.order_id)
        theirs = await second.orders.get(seeded.order_id)

        mine.items[0].apply_shipped_quantity(1)
        await first.orders.save(mine)
        await first.commit()

        theirs.items[0].apply_shipped_quantity(2)
        with pytest.raises(ConcurrencyConflictError):
            await second.orders.save(theirs)

    order, _, _ = await load(uow_factory, seeded)
    assert order.items[0].shipped_quantity == 1



@pytest.mark.asyncio
async def test_apply_surfaces_version_conflict(tx_service, seed_order, uow_factory, monkeypatch):
    seeded = await seed_order()
    prepared = await tx_service.prepare_shipment(shipment_input(seeded))
    await tx_service.mark_label_pending_purchase(prepared.fulfillment_id, prepared.idempotency_key)
    original_get = SQLAlchemyFulfillmentRepository.get

    async def get_then_concurrent_write(self, fulfillment_id):
        fulfillment = await original_get(self, fulfillment_id)
        monkeypatch.setattr(SQLAlchemyFulfillmentRepository, "get", original_get)
        async with uow_factory() as other:
            theirs = await other.fulfillments.get(fulfillment_id)
            await other.fulfillments.save(theirs)
            await other.commit()
        return fulfillment

    monkeypatch.setattr(SQLAlchemyFulfillmentRepository, "get", get_then_concurrent_write)

    with pytest.raises(ConcurrencyConflictError):
        await tx_service.apply_label_result(prepared, LABEL, correlation_id="corr-1")

    order, fulfillment, events = await load(uow_factory, seeded)
    assert order.items[0].shipped_quantity == 0
    assert order.version == 0
    assert fulfillment.label_status is LabelStatus.PENDING_PURCHASE
    assert not fulfillment.is_shipped()
    assert events == []


# =============================================================================
# VOID
# =============================================================================

@pytest.mark.asyncio
async def test_void_failure_requires_manual_intervention(tx_service, seed_order, uow_factory):
    seeded = await seed_order()
    await ship(tx_service, seeded)

    prepared = await tx_service.prepare_label_void(seeded.fulfillment_id)
    await tx_service.mark_label_void_requested(seeded.fulfillment_id)
    result = await tx_service.mark_void_outcome(
        seeded.fulfillment_id, success=False, error="carrier rejected", correlation_id="corr-9"
    )

    assert prepared.label_id == "L1"
    assert not result.success
    assert result.requires_manual_intervention
    assert result.refund_amount is None
    assert result.label_status == "void_failed"
    _, fulfillment, events = await load(uow_factory, seeded)
    assert fulfillment.label_status is LabelStatus.VOID_FAILED
    assert fulfillment.label_void_error == "carrier rejected"
    [failed] = [e for e in events if e.event_type == "ShipmentLabelVoidFailed"]
    assert failed.payload["requires_manual_intervention"] is True
    assert failed.payload["error"] == "carrier rejected"
    assert "refund_amount" not in failed.payload


@pytest.mark.asyncio
async def test_void_success(tx_service, seed_order, uow_factory):
    seeded = await seed_order()
    await ship(tx_service, seeded)

    await tx_service.mark_label_void_requested(seeded.fulfillment_id)
    result = await tx_service.mark_void_outcome(
        seeded.fulfillment_id, success=True, refund_amount=Decimal("7.50")
    )

    assert result.success
    assert result.refund_amount == Decimal("7.50")
    _, fulfillment, events = await load(uow_factory, seeded)
    assert fulfillment.label_status is LabelStatus.VOIDED
    [voided] = [e for e in events if e.event_type == "ShipmentLabelVoided"]
    assert voided.payload["refund_amount"] == "7.50"


@pytest.mark.asyncio
async def test_void_requires_purchased_label(tx_service, seed_order):
    seeded = await seed_order()

    with pytest.raises(ValidationError):
        await tx_service.prepare_label_void(seeded.fulfillment_id)
    with pytest.raises(NotFoundError):
        await tx_service.prepare_label_void("missing")


# =============================================================================
# COMPENSATING VOID
# =============================================================================

@pytest.mark.asyncio
async def test_compensating_void_frees_fulfillment_for_new_key(tx_service, seed_order, uow_factory):
    seeded = await seed_order()
    prepared = await tx_service.prepare_shipment(shipment_input(seeded))
    await tx_service.mark_label_pending_purchase(prepared.fulfillment_id, prepared.idempotency_key)

    await tx_service.record_compensating_void(
        seeded.fulfillment_id, "L1", success=True, refund_amount=Decimal("7.50"), correlation_id="corr-3"
    )

    _, fulfillment, events = await load(uow_factory, seeded)
    assert fulfillment.label_status is LabelStatus.VOIDED
    assert fulfillment.label_idempotency_key is None
    assert fulfillment.label_pending_since is None
    [voided] = events
    assert voided.event_type == "ShipmentLabelVoided"
    assert voided.payload["label_id"] == "L1"
    assert voided.correlation_id == "corr-3"

    again = await tx_service.prepare_shipment(shipment_input(seeded))
    assert again.idempotency_key == f"label:{seeded.fulfillment_id}:1"
    assert not again.label_already_purchased


@pytest.mark.asyncio
async def test_compensating_void_ignores_settled_fulfillment(tx_service, seed_order, uow_factory):
    seeded = await seed_order()
    await ship(tx_service, seeded)

    await tx_service.record_compensating_void(seeded.fulfillment_id, "L7", success=True)

    _, fulfillment, events = await load(uow_factory, seeded)
    assert fulfillment.label_id == "L1"
    assert fulfillment.label_status is LabelStatus.PURCHASED
    assert "ShipmentLabelVoided" not in [e.event_type for e in events]
