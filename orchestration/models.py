"""Orchestration models - WorkflowContext, StepResponse, WorkflowResult, WorkflowOptions."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar
from uuid import uuid4

from shopflow_sdk.logging import get_logger

from .errors import ErrorKind, classify_error

T = TypeVar("T")

Compensation = Callable[[], Awaitable[None]]

logger = get_logger("orchestration.context")


class WorkflowContext:
    """Mutable state threaded through every step of one workflow run.

    Steps exchange data through ``metadata`` and register their undo
    actions on the compensation stack. A context belongs to exactly one
    run and is never shared between concurrent runs.
    """

    def __init__(self, correlation_id: str | None = None) -> None:
        self._correlation_id = correlation_id
        self.execution_id: str | None = None
        self.workflow_name: str | None = None
        self.metadata: dict[str, Any] = {}
        self._executed_steps: list[str] = []
        self._compensations: list[tuple[str, Compensation]] = []

    @property
    def correlation_id(self) -> str:
        if self._correlation_id is None:
            self._correlation_id = str(uuid4())
        return self._correlation_id

    def bind_correlation_id(self, correlation_id: str | None) -> None:
        """Set the correlation id if it has not been fixed yet."""
        if correlation_id is None:
            return
        if self._correlation_id is not None and self._correlation_id != correlation_id:
            raise ValueError(
                f"Correlation id already set to {self._correlation_id}, got {correlation_id}"
            )
        self._correlation_id = correlation_id

    def add_metadata(self, key: str, value: Any) -> None:
        self.metadata[key] = value

    def get_metadata(self, key: str, expected_type: type[T] | None = None) -> T | Any:
        """Read a value written by an earlier step.

        Raises:
            KeyError: No step wrote ``key``
            TypeError: The stored value is not an ``expected_type``
        """
        value = self.metadata[key]
        if expected_type is not None and not isinstance(value, expected_type):
            raise TypeError(
                f"Metadata '{key}' is {type(value).__name__}, expected {expected_type.__name__}"
            )
        return value

    def record_step(self, step_name: str) -> None:
        self._executed_steps.append(step_name)

    @property
    def executed_steps(self) -> list[str]:
        return list(self._executed_steps)

    def push_compensation(self, step_name: str, compensation: Compensation) -> None:
        self._compensations.append((step_name, compensation))

    @property
    def pending_compensations(self) -> list[str]:
        return [name for name, _ in self._compensations]

    async def run_compensations(self) -> list[str]:
        """Unwind registered compensations in reverse completion order.

        Each compensation is popped before it runs, so it is invoked at most
        once. Failures are logged and collected, never raised.

        Returns:
            Names of the compensations that failed
        """
        failed: list[str] = []
        while self._compensations:
            step_name, compensation = self._compensations.pop()
            try:
                await compensation()
                logger.info(
                    "compensation_succeeded",
                    extra={
                        "step_name": step_name,
                        "correlation_id": self.correlation_id,
                        "execution_id": self.execution_id,
                    },
                )
            except Exception:
                failed.append(step_name)
                logger.error(
                    "compensation_failed",
                    extra={
                        "step_name": step_name,
                        "correlation_id": self.correlation_id,
                        "execution_id": self.execution_id,
                    },
                    exc_info=True,
                )
        return failed


@dataclass
class StepResponse(Generic[T]):
    """Output of one step; its compensation receives ``data``."""

    data: T

    @classmethod
    def of(cls, data: T) -> "StepResponse[T]":
        return cls(data=data)


class WorkflowResult(Generic[T]):
    """Tagged union returned by every workflow run: Success or Failure."""

    def is_success(self) -> bool:
        return isinstance(self, Success)

    def is_failure(self) -> bool:
        return isinstance(self, Failure)

    def get_or_none(self) -> T | None:
        return self.data if isinstance(self, Success) else None

    def get_or_raise(self) -> T:
        if isinstance(self, Failure):
            raise self.error
        return self.data  # type: ignore[attr-defined]

    @staticmethod
    def success(data: T) -> "Success[T]":
        return Success(data)

    @staticmethod
    def failure(error: BaseException) -> "Failure":
        return Failure(error)


@dataclass
class Success(WorkflowResult[T]):
    data: T


@dataclass
class Failure(WorkflowResult[Any]):
    error: BaseException

    @property
    def kind(self) -> ErrorKind:
        return classify_error(self.error)

    @property
    def message(self) -> str:
        return str(self.error) or type(self.error).__name__


@dataclass
class WorkflowOptions:
    """Per-invocation options."""

    correlation_id: str | None = None
    timeout_seconds: float | None = None
    idempotency_key: str | None = None
    parent_execution_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
