"""Tests for the outbox service and publisher."""

import asyncio
from datetime import timedelta

import pytest

from core.domain.entities import OutboxEvent
from core.domain.enums import OutboxStatus
from core.domain.events import OrderCanceled, ShipmentCreated
from core.infrastructure.outbox import OutboxPublisher, aggregate_type_for, run_outbox_worker
from core.settings.sections import OutboxSettings
from orchestration import InMemoryEventBus
from shopflow_sdk.utils.datetime import utc_now


async def enqueue(uow_factory, *events, correlation_id=None):
    async with uow_factory() as uow:
        rows = await uow.outbox.enqueue_all(events, correlation_id)
        await uow.commit()
    return rows


async def reload(uow_factory, event_id):
    async with uow_factory(read_only=True) as uow:
        return await uow.outbox_events.get(event_id)


def test_aggregate_type_aliases():
    assert aggregate_type_for(ShipmentCreated(fulfillment_id="f1")) == "fulfillment"
    assert aggregate_type_for(OrderCanceled(order_id="o1")) == "order"


def test_mark_failed_backs_off_exponentially():
    event = OutboxEvent(aggregate_type="order", aggregate_id="o1", event_type="OrderCanceled", payload={})

    event.mark_failed("boom")
    assert timedelta(seconds=0) < event.next_attempt_at - utc_now() <= timedelta(seconds=1)

    for _ in range(3):
        event.mark_failed("boom")
    assert timedelta(seconds=7) < event.next_attempt_at - utc_now() <= timedelta(seconds=8)
    assert event.attempts == 4
    assert event.status is OutboxStatus.PENDING
    assert event.last_error == "boom"


def test_mark_failed_caps_attempts():
    event = OutboxEvent(aggregate_type="order", aggregate_id="o1", event_type="OrderCanceled", payload={})
    for _ in range(10):
        event.mark_failed("boom")

    assert event.status is OutboxStatus.FAILED
    assert not event.can_retry()


@pytest.mark.asyncio
async def test_enqueue_requires_write_transaction(uow_factory):
    async with uow_factory(read_only=True) as uow:
        with pytest.raises(RuntimeError):
            await uow.outbox.enqueue(OrderCanceled(order_id="o1"))


@pytest.mark.asyncio
async def test_enqueue_rolls_back_with_transaction(uow_factory):
    async with uow_factory() as uow:
        await uow.outbox.enqueue(OrderCanceled(order_id="o1"))

    async with uow_factory(read_only=True) as uow:
        assert await uow.outbox_events.find_by_aggregate("o1") == []


@pytest.mark.asyncio
async def test_enqueue_serializes_payload(uow_factory):
    [row] = await enqueue(
        uow_factory,
        OrderCanceled(order_id="o1", reason="fraud", canceled_fulfillment_ids=["f1"]),
        correlation_id="corr-1",
    )

    stored = await reload(uow_factory, row.id)
    assert stored.aggregate_type == "order"
    assert stored.event_type == "OrderCanceled"
    assert stored.payload["reason"] == "fraud"
    assert stored.payload["canceled_fulfillment_ids"] == ["f1"]
    assert stored.correlation_id == "corr-1"
    assert stored.status is OutboxStatus.PENDING


@pytest.mark.asyncio
async def test_publish_pending_marks_published(session_factory, uow_factory):
    bus = InMemoryEventBus(raise_errors=True)
    received = []

    async def handler(event):
        received.append(event)

    bus.subscribe("ShipmentCreated", handler)
    [row] = await enqueue(uow_factory, ShipmentCreated(fulfillment_id="f1", order_id="o1"), correlation_id="c-9")
    publisher = OutboxPublisher(session_factory, bus)

    assert await publisher.publish_pending() == 1
    assert await publisher.publish_pending() == 0

    [event] = received
    assert event.payload["aggregate_type"] == "fulfillment"
    assert event.payload["aggregate_id"] == "f1"
    assert event.metadata.correlation_id == "c-9"
    stored = await reload(uow_factory, row.id)
    assert stored.status is OutboxStatus.PUBLISHED
    assert stored.published_at is not None


@pytest.mark.asyncio
async def test_failing_handler_schedules_retry(session_factory, uow_factory):
    bus = InMemoryEventBus(raise_errors=True)

    async def handler(event):
        raise ConnectionError("broker down")

    bus.subscribe("*", handler)
    [row] = await enqueue(uow_factory, OrderCanceled(order_id="o1"))
    publisher = OutboxPublisher(session_factory, bus)

    assert await publisher.publish_pending() == 0
    # backoff keeps the row out of the next batch
    assert await publisher.publish_pending() == 0

    stored = await reload(uow_factory, row.id)
    assert stored.status is OutboxStatus.PENDING
    assert stored.attempts == 1
    assert stored.last_error == "broker down"
    assert stored.next_attempt_at > stored.created_at


@pytest.mark.asyncio
async def test_exhausted_row_is_failed(session_factory, uow_factory):
    bus = InMemoryEventBus(raise_errors=True)

    async def handler(event):
        raise ConnectionError("broker down")

    bus.subscribe("*", handler)
    [row] = await enqueue(uow_factory, OrderCanceled(order_id="o1"))
    publisher = OutboxPublisher(session_factory, bus, OutboxSettings(max_attempts=1))

    await publisher.publish_pending()

    stored = await reload(uow_factory, row.id)
    assert stored.status is OutboxStatus.FAILED
    assert await publisher.count_failed() == 1


@pytest.mark.asyncio
async def test_disabled_publisher_does_nothing(session_factory, uow_factory):
    await enqueue(uow_factory, OrderCanceled(order_id="o1"))
    publisher = OutboxPublisher(session_factory, InMemoryEventBus(), OutboxSettings(enabled=False))

    assert await publisher.publish_pending() == 0


@pytest.mark.asyncio
async def test_cleanup_removes_published_rows(session_factory, uow_factory):
    [published, pending] = await enqueue(
        uow_factory, OrderCanceled(order_id="o1"), OrderCanceled(order_id="o2")
    )
    async with uow_factory() as uow:
        row = await uow.outbox_events.get(published.id)
        row.mark_published()
        await uow.outbox_events.save(row)
        await uow.commit()
    publisher = OutboxPublisher(session_factory, InMemoryEventBus())

    assert await publisher.cleanup_published(older_than=timedelta(0)) == 1

    assert await reload(uow_factory, published.id) is None
    assert await reload(uow_factory, pending.id) is not None


# =============================================================================
# WORKER
# =============================================================================

@pytest.mark.asyncio
async def test_worker_drains_outbox_until_cancelled(session_factory, uow_factory):
    bus = InMemoryEventBus(raise_errors=True)
    received = []

    async def handler(event):
        received.append(event)

    bus.subscribe("*", handler)
    [row] = await enqueue(uow_factory, ShipmentCreated(fulfillment_id="f1", order_id="o1"))
    settings = OutboxSettings(poll_interval_seconds=0.01)
    worker = asyncio.create_task(run_outbox_worker(OutboxPublisher(session_factory, bus, settings), settings))

    for _ in range(200):
        if received:
            break
        await asyncio.sleep(0.01)
    worker.cancel()
    with pytest.raises(asyncio.CancelledError):
        await worker

    assert [e.name for e in received] == ["ShipmentCreated"]
    stored = await reload(uow_factory, row.id)
    assert stored.status is OutboxStatus.PUBLISHED


@pytest.mark.asyncio
async def test_worker_survives_a_failing_iteration(session_factory):
    class FlakyPublisher(OutboxPublisher):
        calls = 0

        async def publish_pending(self):
            self.calls += 1
            if self.calls == 1:
                raise ConnectionError("database went away")
            return 0

    settings = OutboxSettings(poll_interval_seconds=0.01)
    publisher = FlakyPublisher(session_factory, InMemoryEventBus(), settings)
    worker = asyncio.create_task(run_outbox_worker(publisher, settings))

    for _ in range(200):
        if publisher.calls >= 2:
            break
        await asyncio.sleep(0.01)
    worker.cancel()
    with pytest.raises(asyncio.CancelledError):
        await worker

    assert publisher.calls >= 2
