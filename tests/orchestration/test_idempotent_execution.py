"""Tests for WorkflowEngine.execute_idempotent."""

import asyncio

import pytest
from pydantic import BaseModel

from core.domain.enums import ExecutionStatus
from orchestration import (
    CachedWorkflowFailure,
    ErrorKind,
    ExternalProviderError,
    Failure,
    InMemoryIdempotencyStore,
    Success,
    ValidationError,
    Workflow,
    WorkflowContext,
    WorkflowEngine,
    WorkflowInProgressError,
)


class CountInput(BaseModel):
    amount: int


class CountOutput(BaseModel):
    total: int
    run: int


class CountingWorkflow(Workflow[CountInput, CountOutput]):
    """Counts its runs; fails as scripted by ``error``."""

    name = "counting"

    def __init__(self) -> None:
        self.runs = 0
        self.error: Exception | None = None
        self.gate: asyncio.Event | None = None

    async def execute(self, input_: CountInput, context: WorkflowContext):
        self.runs += 1
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            return Failure(self.error)
        return Success(CountOutput(total=input_.amount * 10, run=self.runs))


@pytest.fixture
def store():
    return InMemoryIdempotencyStore()


@pytest.fixture
def workflow():
    return CountingWorkflow()


@pytest.fixture
def engine(store, workflow):
    engine = WorkflowEngine(idempotency_store=store)
    engine.register(workflow, CountInput, CountOutput)
    return engine


@pytest.mark.asyncio
async def test_completed_key_replays_output(engine, workflow):
    first = await engine.execute_idempotent("counting", CountInput(amount=2), "key-1")
    second = await engine.execute_idempotent("counting", CountInput(amount=2), "key-1")

    assert isinstance(second, Success)
    assert second.data == first.data == CountOutput(total=20, run=1)
    assert workflow.runs == 1


@pytest.mark.asyncio
async def test_different_keys_run_separately(engine, workflow):
    await engine.execute_idempotent("counting", CountInput(amount=1), "key-1")
    await engine.execute_idempotent("counting", CountInput(amount=1), "key-2")

    assert workflow.runs == 2


@pytest.mark.asyncio
async def test_deterministic_failure_is_replayed(engine, workflow):
    workflow.error = ValidationError("Cannot ship 3 items. Only 2 available")

    await engine.execute_idempotent("counting", CountInput(amount=1), "key-1")
    workflow.error = None
    replay = await engine.execute_idempotent("counting", CountInput(amount=1), "key-1")

    assert isinstance(replay, Failure)
    assert isinstance(replay.error, CachedWorkflowFailure)
    assert replay.kind is ErrorKind.VALIDATION
    assert replay.message == "Cannot ship 3 items. Only 2 available"
    assert workflow.runs == 1


@pytest.mark.asyncio
async def test_transient_failure_releases_key(engine, workflow, store):
    workflow.error = ExternalProviderError("ShipEngine API error: 503", provider="shipengine")

    first = await engine.execute_idempotent("counting", CountInput(amount=1), "key-1")
    assert first.kind is ErrorKind.EXTERNAL_PROVIDER
    assert await store.get("counting", "key-1") is None

    workflow.error = None
    retry = await engine.execute_idempotent("counting", CountInput(amount=1), "key-1")

    assert isinstance(retry, Success)
    assert workflow.runs == 2


@pytest.mark.asyncio
async def test_running_key_reports_in_progress(engine, workflow, store):
    workflow.gate = asyncio.Event()
    first = asyncio.create_task(engine.execute_idempotent("counting", CountInput(amount=1), "key-1"))
    await asyncio.sleep(0.01)

    second = await engine.execute_idempotent("counting", CountInput(amount=1), "key-1")
    workflow.gate.set()
    first_result = await first

    assert isinstance(second.error, WorkflowInProgressError)
    assert second.kind is ErrorKind.CONFLICT
    assert isinstance(first_result, Success)
    record = await store.get("counting", "key-1")
    assert record.status is ExecutionStatus.COMPLETED
    assert workflow.runs == 1
