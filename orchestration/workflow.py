"""Workflow definitions - RetryPolicy, Step, create_step, Workflow."""

import asyncio
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from shopflow_sdk.logging import get_logger

from .errors import ValidationError
from .models import StepResponse, WorkflowContext, WorkflowResult

In = TypeVar("In")
Out = TypeVar("Out")

StepExecute = Callable[[In, WorkflowContext], Awaitable[StepResponse[Out]]]
StepCompensate = Callable[[In, Out, WorkflowContext], Awaitable[None]]

logger = get_logger("orchestration.step")


@dataclass
class RetryPolicy:
    """Retry policy for a single step.

    Defaults to one attempt: a step that mutates state should only be
    retried when its execute action is itself idempotent.
    """

    max_attempts: int = 1
    backoff_seconds: float = 0.0
    retry_on: tuple[type[BaseException], ...] = (Exception,)
    no_retry_on: tuple[type[BaseException], ...] = (ValidationError,)

    def should_retry(self, error: BaseException, attempt: int) -> bool:
        if attempt >= self.max_attempts:
            return False
        if isinstance(error, self.no_retry_on):
            return False
        return isinstance(error, self.retry_on)


class Step(Generic[In, Out]):
    """A named unit of work with an optional compensation."""

    def __init__(
        self,
        name: str,
        execute: StepExecute,
        compensate: StepCompensate | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.name = name
        self._execute = execute
        self._compensate = compensate
        self.retry_policy = retry_policy or RetryPolicy()

    @property
    def has_compensation(self) -> bool:
        return self._compensate is not None

    async def invoke(self, input_: In, context: WorkflowContext) -> StepResponse[Out]:
        """Run the step and register its compensation on success.

        Raises:
            Exception: The last error once the retry policy is exhausted
        """
        started = time.monotonic()
        log_fields = {
            "step_name": self.name,
            "correlation_id": context.correlation_id,
            "execution_id": context.execution_id,
        }
        logger.info("step_starting", extra=log_fields)

        attempt = 0
        while True:
            attempt += 1
            try:
                response = await self._execute(input_, context)
                break
            except Exception as exc:
                if not self.retry_policy.should_retry(exc, attempt):
                    duration_ms = int((time.monotonic() - started) * 1000)
                    logger.warning(
                        "step_failed",
                        extra={
                            **log_fields,
                            "attempts": attempt,
                            "duration_ms": duration_ms,
                            "error": str(exc),
                        },
                    )
                    raise
                logger.warning(
                    "step_attempt_failed",
                    extra={**log_fields, "attempt": attempt, "error": str(exc)},
                )
                if self.retry_policy.backoff_seconds > 0:
                    await asyncio.sleep(self.retry_policy.backoff_seconds)

        context.record_step(self.name)
        if self._compensate is not None:
            compensate = self._compensate

            async def _undo() -> None:
                await compensate(input_, response.data, context)

            context.push_compensation(self.name, _undo)

        duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "step_completed",
            extra={**log_fields, "attempts": attempt, "duration_ms": duration_ms},
        )
        return response

    async def compensate(self, input_: In, output: Out, context: WorkflowContext) -> None:
        """Run the compensation directly, outside the context stack."""
        if self._compensate is not None:
            await self._compensate(input_, output, context)


def create_step(
    name: str,
    execute: StepExecute,
    compensate: StepCompensate | None = None,
    retry_policy: RetryPolicy | None = None,
) -> Step:
    """Build a Step from plain async callables.

    Args:
        name: Step name, unique within its workflow
        execute: ``async (input, context) -> StepResponse``
        compensate: ``async (input, output, context) -> None``; receives the
            same input execute received
        retry_policy: Optional retry policy (one attempt by default)
    """
    return Step(name=name, execute=execute, compensate=compensate, retry_policy=retry_policy)


class Workflow(ABC, Generic[In, Out]):
    """One business operation composed of explicitly wired steps.

    Implementations catch step failures, call
    ``context.run_compensations()`` and return ``WorkflowResult.failure``.
    """

    name: str

    @abstractmethod
    async def execute(self, input_: In, context: WorkflowContext) -> WorkflowResult[Out]:
        ...
