"""Tests for the SQL-backed execution recorder and idempotency store."""

from dataclasses import replace
from datetime import timedelta

import pytest

from core.domain.enums import ExecutionStatus
from core.infrastructure.workflow import SqlAlchemyExecutionRecorder, SqlAlchemyIdempotencyStore
from orchestration import ExecutionRecord
from shopflow_sdk.utils.datetime import utc_now


@pytest.fixture
def store(session_factory):
    return SqlAlchemyIdempotencyStore(session_factory)


@pytest.mark.asyncio
async def test_recorder_upserts_run(session_factory, uow_factory):
    recorder = SqlAlchemyExecutionRecorder(session_factory)
    record = ExecutionRecord(
        execution_id="exec-1",
        workflow_name="create-shipment",
        correlation_id="corr-1",
        status=ExecutionStatus.RUNNING,
        started_at=utc_now(),
        timeout_seconds=30.0,
        idempotency_key="key-1",
    )

    await recorder.record_started(record)
    await recorder.record_finished(
        replace(
            record,
            status=ExecutionStatus.FAILED,
            finished_at=utc_now(),
            error_kind="external_provider",
            error_message="ShipEngine API error: 503",
            failed_compensations=["purchase-label"],
        )
    )

    async with uow_factory(read_only=True) as uow:
        stored = await uow.executions.get("exec-1")
        runs = await uow.executions.find_by_workflow("create-shipment")
    assert stored.status is ExecutionStatus.FAILED
    assert stored.error_kind == "external_provider"
    assert stored.failed_compensations == ["purchase-label"]
    assert stored.finished_at is not None
    assert [r.execution_id for r in runs] == ["exec-1"]


@pytest.mark.asyncio
async def test_claim_is_exclusive(store):
    expires = utc_now() + timedelta(hours=1)

    assert await store.claim("cancel-order", "k1", expires)
    assert not await store.claim("cancel-order", "k1", expires)
    assert await store.claim("create-shipment", "k1", expires)

    record = await store.get("cancel-order", "k1")
    assert record.status is ExecutionStatus.RUNNING


@pytest.mark.asyncio
async def test_complete_and_fail_are_stored(store):
    expires = utc_now() + timedelta(hours=1)
    await store.claim("cancel-order", "ok", expires)
    await store.claim("cancel-order", "bad", expires)

    await store.complete("cancel-order", "ok", {"order_id": "o1", "status": "canceled"})
    await store.fail("cancel-order", "bad", "validation", "Order is already canceled: o1")

    done = await store.get("cancel-order", "ok")
    failed = await store.get("cancel-order", "bad")
    assert done.status is ExecutionStatus.COMPLETED
    assert done.output == {"order_id": "o1", "status": "canceled"}
    assert failed.status is ExecutionStatus.FAILED
    assert failed.error_kind == "validation"


@pytest.mark.asyncio
async def test_release_and_expiry_free_the_key(store):
    await store.claim("cancel-order", "k1", utc_now() + timedelta(hours=1))
    await store.release("cancel-order", "k1")
    assert await store.get("cancel-order", "k1") is None

    await store.claim("cancel-order", "k2", utc_now() - timedelta(seconds=1))
    assert await store.get("cancel-order", "k2") is None
    assert await store.claim("cancel-order", "k2", utc_now() + timedelta(hours=1))
