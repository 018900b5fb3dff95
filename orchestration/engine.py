"""Workflow engine - registry, dispatch by name, timeout, idempotency."""

import asyncio
import time
from dataclasses import dataclass, replace
from datetime import timedelta
from typing import Any
from uuid import uuid4

from pydantic import TypeAdapter

from core.domain.enums.execution_status import ExecutionStatus
from core.settings.sections import WorkflowSettings
from shopflow_sdk.logging import get_logger
from shopflow_sdk.utils.datetime import utc_now

from .bus import EventBusProtocol, InMemoryEventBus
from .errors import (
    CachedWorkflowFailure,
    ErrorKind,
    WorkflowInProgressError,
    WorkflowNotFoundError,
    WorkflowTimeoutError,
    WorkflowTypeError,
    classify_error,
)
from .events import Event, EventMetadata
from .executions import ExecutionRecord, ExecutionRecorder, InMemoryExecutionRecorder
from .idempotency import IdempotencyRecord, IdempotencyStore, InMemoryIdempotencyStore
from .models import Failure, Success, WorkflowContext, WorkflowOptions, WorkflowResult
from .workflow import Workflow


@dataclass
class WorkflowRegistration:
    """A registered workflow and its declared types."""

    workflow: Workflow
    input_type: type
    output_type: type


@dataclass
class WorkflowInfo:
    """Summary of a registered workflow."""

    name: str
    input_type: str
    output_type: str


class WorkflowEngine:
    """Entry point that dispatches workflows by name.

    ``execute`` never raises: unknown names, type mismatches, timeouts and
    escaping exceptions all come back as ``Failure``. The engine does not
    add compensation of its own except to unwind what a timed-out or
    crashed workflow left on its context.
    """

    def __init__(
        self,
        settings: WorkflowSettings | None = None,
        event_bus: EventBusProtocol | None = None,
        execution_recorder: ExecutionRecorder | None = None,
        idempotency_store: IdempotencyStore | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            settings: WorkflowSettings (timeouts, idempotency TTL)
            event_bus: Bus for workflow.started / workflow.finished events
            execution_recorder: Sink for run records
            idempotency_store: Store consulted by execute_idempotent
        """
        self._settings = settings or WorkflowSettings()
        self._event_bus = event_bus or InMemoryEventBus()
        self._recorder = execution_recorder or InMemoryExecutionRecorder()
        self._idempotency_store = idempotency_store or InMemoryIdempotencyStore()
        self._workflows: dict[str, WorkflowRegistration] = {}
        self._logger = get_logger("orchestration.engine")

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def register(self, workflow: Workflow, input_type: type, output_type: type) -> None:
        if workflow.name in self._workflows:
            raise ValueError(f"Workflow already registered: {workflow.name}")
        self._workflows[workflow.name] = WorkflowRegistration(workflow, input_type, output_type)
        self._logger.info(
            "workflow_registered",
            extra={
                "workflow_name": workflow.name,
                "input_type": input_type.__name__,
                "output_type": output_type.__name__,
            },
        )

    def list_workflows(self) -> list[WorkflowInfo]:
        return [
            WorkflowInfo(
                name=name,
                input_type=reg.input_type.__name__,
                output_type=reg.output_type.__name__,
            )
            for name, reg in sorted(self._workflows.items())
        ]

    def _resolve(
        self,
        workflow_name: str,
        input_: Any,
        input_type: type | None,
        output_type: type | None,
    ) -> WorkflowRegistration:
        registration = self._workflows.get(workflow_name)
        if registration is None:
            raise WorkflowNotFoundError(f"Workflow not found: {workflow_name}")

        if (input_type is not None and input_type is not registration.input_type) or (
            output_type is not None and output_type is not registration.output_type
        ):
            raise WorkflowTypeError(
                f"Type mismatch for workflow '{workflow_name}'. "
                f"Expected: {registration.input_type.__name__} -> {registration.output_type.__name__}, "
                f"but got: {getattr(input_type, '__name__', '?')} -> {getattr(output_type, '__name__', '?')}"
            )
        if not isinstance(input_, registration.input_type):
            raise WorkflowTypeError(
                f"Workflow '{workflow_name}' expects {registration.input_type.__name__}, "
                f"got {type(input_).__name__}"
            )
        return registration

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(
        self,
        workflow_name: str,
        input_: Any,
        input_type: type | None = None,
        output_type: type | None = None,
        context: WorkflowContext | None = None,
        options: WorkflowOptions | None = None,
    ) -> WorkflowResult:
        """Execute a registered workflow by name.

        Args:
            workflow_name: Registry key
            input_: Workflow input
            input_type: Optional expected input type (checked against registration)
            output_type: Optional expected output type (checked against registration)
            context: Optional pre-built context
            options: WorkflowOptions (correlation id, timeout)

        Returns:
            Success or Failure, never raises
        """
        try:
            registration = self._resolve(workflow_name, input_, input_type, output_type)
        except (WorkflowNotFoundError, WorkflowTypeError) as exc:
            self._logger.warning(
                "workflow_dispatch_failed",
                extra={"workflow_name": workflow_name, "error": str(exc)},
            )
            return Failure(exc)

        return await self.execute_workflow(registration.workflow, input_, context, options)

    async def execute_workflow(
        self,
        workflow: Workflow,
        input_: Any,
        context: WorkflowContext | None = None,
        options: WorkflowOptions | None = None,
    ) -> WorkflowResult:
        """Execute a workflow instance with timeout and run tracking."""
        options = options or WorkflowOptions()
        context = context or WorkflowContext()
        try:
            context.bind_correlation_id(options.correlation_id)
        except ValueError as exc:
            return Failure(WorkflowTypeError(str(exc)))

        context.execution_id = str(uuid4())
        context.workflow_name = workflow.name
        for key, value in options.metadata.items():
            context.add_metadata(key, value)

        timeout = options.timeout_seconds or self._settings.default_timeout_seconds
        record = ExecutionRecord(
            execution_id=context.execution_id,
            workflow_name=workflow.name,
            correlation_id=context.correlation_id,
            status=ExecutionStatus.RUNNING,
            started_at=utc_now(),
            timeout_seconds=timeout,
            parent_execution_id=options.parent_execution_id,
            idempotency_key=options.idempotency_key,
        )
        log_fields = {
            "workflow_name": workflow.name,
            "execution_id": context.execution_id,
            "correlation_id": context.correlation_id,
        }

        self._logger.info("workflow_starting", extra={**log_fields, "timeout_seconds": timeout})
        await self._record(self._recorder.record_started, record)
        await self._publish("workflow.started", context, {"workflow_name": workflow.name})

        started = time.monotonic()
        status = ExecutionStatus.FAILED
        failed_compensations: list[str] = []
        try:
            if self._settings.enforce_timeout:
                result = await asyncio.wait_for(workflow.execute(input_, context), timeout)
            else:
                result = await workflow.execute(input_, context)
                if time.monotonic() - started > timeout:
                    self._logger.warning("workflow_deadline_exceeded", extra=log_fields)

            if not isinstance(result, WorkflowResult):
                result = Failure(
                    TypeError(f"Workflow {workflow.name} returned {type(result).__name__}")
                )
            status = ExecutionStatus.COMPLETED if result.is_success() else ExecutionStatus.FAILED
        except asyncio.TimeoutError:
            status = ExecutionStatus.TIMED_OUT
            failed_compensations = await context.run_compensations()
            result = Failure(
                WorkflowTimeoutError(
                    f"Workflow {workflow.name} timed out after {timeout}s "
                    f"(execution: {context.execution_id})"
                )
            )
        except Exception as exc:
            self._logger.error("workflow_crashed", extra=log_fields, exc_info=True)
            failed_compensations = await context.run_compensations()
            result = Failure(exc)

        duration_ms = int((time.monotonic() - started) * 1000)
        finished = replace(
            record,
            status=status,
            finished_at=utc_now(),
            failed_compensations=failed_compensations or None,
        )
        if isinstance(result, Failure):
            finished.error_kind = result.kind.value
            finished.error_message = result.message
            self._logger.warning(
                "workflow_failed",
                extra={
                    **log_fields,
                    "error_kind": result.kind.value,
                    "error": result.message,
                    "duration_ms": duration_ms,
                },
            )
        else:
            self._logger.info("workflow_completed", extra={**log_fields, "duration_ms": duration_ms})

        await self._record(self._recorder.record_finished, finished)
        await self._publish(
            "workflow.finished",
            context,
            {
                "workflow_name": workflow.name,
                "status": status.value,
                "executed_steps": context.executed_steps,
                "duration_ms": duration_ms,
            },
        )
        return result

    async def execute_idempotent(
        self,
        workflow_name: str,
        input_: Any,
        idempotency_key: str,
        context: WorkflowContext | None = None,
        options: WorkflowOptions | None = None,
    ) -> WorkflowResult:
        """Execute a workflow at most once per idempotency key.

        A completed key replays its cached output; a key that failed for a
        deterministic reason (validation, not found) replays the failure; a
        key still running fails with WorkflowInProgressError. Transient
        failures release the key so the caller may retry.
        """
        options = replace(options or WorkflowOptions(), idempotency_key=idempotency_key)
        try:
            registration = self._resolve(workflow_name, input_, None, None)
        except (WorkflowNotFoundError, WorkflowTypeError) as exc:
            return Failure(exc)

        adapter = TypeAdapter(registration.output_type)
        store = self._idempotency_store
        try:
            existing = await store.get(workflow_name, idempotency_key)
            if existing is not None:
                return self._replay(existing, adapter)

            expires_at = utc_now() + timedelta(hours=self._settings.idempotency_ttl_hours)
            if not await store.claim(workflow_name, idempotency_key, expires_at):
                existing = await store.get(workflow_name, idempotency_key)
                if existing is not None:
                    return self._replay(existing, adapter)
                return Failure(
                    WorkflowInProgressError(f"Idempotency key {idempotency_key} is being processed")
                )
        except Exception as exc:
            self._logger.error(
                "idempotency_store_failed",
                extra={"workflow_name": workflow_name, "idempotency_key": idempotency_key},
                exc_info=True,
            )
            return Failure(exc)

        result = await self.execute_workflow(registration.workflow, input_, context, options)

        try:
            if isinstance(result, Success):
                await store.complete(
                    workflow_name, idempotency_key, adapter.dump_python(result.data, mode="json")
                )
            elif isinstance(result, Failure) and result.kind.is_deterministic:
                await store.fail(workflow_name, idempotency_key, result.kind.value, result.message)
            else:
                await store.release(workflow_name, idempotency_key)
        except Exception:
            self._logger.error(
                "idempotency_store_update_failed",
                extra={"workflow_name": workflow_name, "idempotency_key": idempotency_key},
                exc_info=True,
            )
        return result

    def _replay(self, record: IdempotencyRecord, adapter: TypeAdapter) -> WorkflowResult:
        self._logger.info(
            "idempotent_replay",
            extra={
                "workflow_name": record.workflow_name,
                "idempotency_key": record.key,
                "status": record.status.value,
            },
        )
        if record.status is ExecutionStatus.COMPLETED:
            return Success(adapter.validate_python(record.output))
        if record.status is ExecutionStatus.RUNNING:
            return Failure(
                WorkflowInProgressError(f"Idempotency key {record.key} is being processed")
            )
        kind = ErrorKind(record.error_kind or ErrorKind.INTERNAL.value)
        return Failure(CachedWorkflowFailure(record.error_message or "Workflow failed", kind))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _record(self, method, record: ExecutionRecord) -> None:
        try:
            await method(record)
        except Exception:
            self._logger.error(
                "execution_record_failed",
                extra={"execution_id": record.execution_id, "workflow_name": record.workflow_name},
                exc_info=True,
            )

    async def _publish(self, name: str, context: WorkflowContext, payload: dict[str, object]) -> None:
        metadata = EventMetadata(
            execution_id=context.execution_id,
            correlation_id=context.correlation_id,
            workflow_name=context.workflow_name,
            timestamp=utc_now(),
        )
        try:
            await self._event_bus.publish(Event(name=name, payload=payload, metadata=metadata))
        except Exception:
            self._logger.error("lifecycle_event_failed", extra={"event_name": name}, exc_info=True)


def describe_failure(result: WorkflowResult) -> dict[str, Any] | None:
    """Flatten a Failure into a JSON-friendly dict (None for Success)."""
    if not isinstance(result, Failure):
        return None
    return {"kind": classify_error(result.error).value, "message": result.message}
