"""Tests for WorkflowEngine - dispatch, timeout, lifecycle events, recording."""

import asyncio
from dataclasses import dataclass

import pytest

from core.domain.enums import ExecutionStatus
from core.settings.sections import WorkflowSettings
from orchestration import (
    ErrorKind,
    Event,
    Failure,
    InMemoryEventBus,
    InMemoryExecutionRecorder,
    StepResponse,
    Success,
    Workflow,
    WorkflowContext,
    WorkflowEngine,
    WorkflowNotFoundError,
    WorkflowOptions,
    WorkflowTimeoutError,
    WorkflowTypeError,
    create_step,
    describe_failure,
)


@dataclass
class EchoInput:
    value: str


@dataclass
class EchoOutput:
    value: str


class EchoWorkflow(Workflow[EchoInput, EchoOutput]):
    name = "echo"

    async def execute(self, input_: EchoInput, context: WorkflowContext):
        return Success(EchoOutput(value=input_.value.upper()))


class SlowWorkflow(Workflow[EchoInput, EchoOutput]):
    """Registers a compensation, then sleeps past the deadline."""

    name = "slow"

    def __init__(self) -> None:
        self.undone: list[str] = []

    async def execute(self, input_: EchoInput, context: WorkflowContext):
        async def reserve(inp, ctx):
            return StepResponse.of("reserved")

        async def release(inp, out, ctx):
            self.undone.append(out)

        await create_step("reserve", reserve, release).invoke(input_, context)
        await asyncio.sleep(5)
        return Success(EchoOutput(value="late"))


class CrashingWorkflow(Workflow[EchoInput, EchoOutput]):
    name = "crash"

    async def execute(self, input_: EchoInput, context: WorkflowContext):
        raise RuntimeError("unexpected")


class NotAResultWorkflow(Workflow[EchoInput, EchoOutput]):
    name = "not-a-result"

    async def execute(self, input_: EchoInput, context: WorkflowContext):
        return EchoOutput(value="raw")


@pytest.fixture
def bus():
    return InMemoryEventBus()


@pytest.fixture
def recorder():
    return InMemoryExecutionRecorder()


@pytest.fixture
def engine(bus, recorder):
    engine = WorkflowEngine(settings=WorkflowSettings(), event_bus=bus, execution_recorder=recorder)
    engine.register(EchoWorkflow(), EchoInput, EchoOutput)
    return engine


@pytest.mark.asyncio
async def test_execute_registered_workflow(engine, recorder):
    result = await engine.execute("echo", EchoInput("hi"), EchoInput, EchoOutput)

    assert isinstance(result, Success)
    assert result.data == EchoOutput("HI")
    [record] = recorder.by_workflow("echo")
    assert record.status is ExecutionStatus.COMPLETED
    assert record.finished_at is not None


@pytest.mark.asyncio
async def test_unknown_workflow_is_not_found(engine):
    result = await engine.execute("missing", EchoInput("hi"))

    assert isinstance(result, Failure)
    assert isinstance(result.error, WorkflowNotFoundError)
    assert result.kind is ErrorKind.NOT_FOUND


@pytest.mark.asyncio
async def test_declared_type_mismatch_is_rejected(engine):
    result = await engine.execute("echo", EchoInput("hi"), EchoInput, str)

    assert isinstance(result.error, WorkflowTypeError)
    assert "Expected: EchoInput -> EchoOutput" in result.message
    assert result.kind is ErrorKind.VALIDATION


@pytest.mark.asyncio
async def test_wrong_input_instance_is_rejected(engine):
    result = await engine.execute("echo", {"value": "hi"})

    assert isinstance(result.error, WorkflowTypeError)


def test_duplicate_registration_raises(engine):
    with pytest.raises(ValueError):
        engine.register(EchoWorkflow(), EchoInput, EchoOutput)


def test_list_workflows_sorted(engine):
    engine.register(CrashingWorkflow(), EchoInput, EchoOutput)

    names = [info.name for info in engine.list_workflows()]

    assert names == ["crash", "echo"]
    assert engine.list_workflows()[1].input_type == "EchoInput"


@pytest.mark.asyncio
async def test_timeout_returns_failure_and_unwinds(engine, recorder):
    slow = SlowWorkflow()
    engine.register(slow, EchoInput, EchoOutput)

    result = await engine.execute("slow", EchoInput("x"), options=WorkflowOptions(timeout_seconds=0.05))

    assert isinstance(result.error, WorkflowTimeoutError)
    assert result.kind is ErrorKind.TIMEOUT
    assert slow.undone == ["reserved"]
    [record] = recorder.by_workflow("slow")
    assert record.status is ExecutionStatus.TIMED_OUT


@pytest.mark.asyncio
async def test_escaping_exception_becomes_failure(engine):
    engine.register(CrashingWorkflow(), EchoInput, EchoOutput)

    result = await engine.execute("crash", EchoInput("x"))

    assert isinstance(result, Failure)
    assert result.kind is ErrorKind.INTERNAL
    assert describe_failure(result) == {"kind": "internal", "message": "unexpected"}


@pytest.mark.asyncio
async def test_non_result_return_becomes_failure(engine):
    engine.register(NotAResultWorkflow(), EchoInput, EchoOutput)

    result = await engine.execute("not-a-result", EchoInput("x"))

    assert isinstance(result.error, TypeError)


@pytest.mark.asyncio
async def test_lifecycle_events_carry_correlation_id(engine, bus):
    events: list[Event] = []

    async def collect(event: Event) -> None:
        events.append(event)

    bus.subscribe("*", collect)

    await engine.execute("echo", EchoInput("hi"), options=WorkflowOptions(correlation_id="corr-42"))

    assert [e.name for e in events] == ["workflow.started", "workflow.finished"]
    assert {e.metadata.correlation_id for e in events} == {"corr-42"}
    assert events[1].payload["status"] == "completed"
    assert events[0].metadata.execution_id == events[1].metadata.execution_id


@pytest.mark.asyncio
async def test_recorder_failure_does_not_fail_workflow(bus):
    class BrokenRecorder:
        async def record_started(self, record):
            raise RuntimeError("db down")

        async def record_finished(self, record):
            raise RuntimeError("db down")

    engine = WorkflowEngine(event_bus=bus, execution_recorder=BrokenRecorder())
    engine.register(EchoWorkflow(), EchoInput, EchoOutput)

    result = await engine.execute("echo", EchoInput("ok"))

    assert isinstance(result, Success)
