"""Orchestration layer - saga workflows with compensation and eventing."""

from .bus import EventBusProtocol, InMemoryEventBus
from .engine import WorkflowEngine, WorkflowInfo, describe_failure
from .errors import (
    CachedWorkflowFailure,
    ConcurrencyConflictError,
    ErrorKind,
    ExternalProviderError,
    NotFoundError,
    ValidationError,
    WorkflowError,
    WorkflowInProgressError,
    WorkflowNotFoundError,
    WorkflowTimeoutError,
    WorkflowTypeError,
    classify_error,
)
from .events import Event, EventMetadata
from .executions import ExecutionRecord, ExecutionRecorder, InMemoryExecutionRecorder
from .idempotency import IdempotencyRecord, IdempotencyStore, InMemoryIdempotencyStore
from .models import Failure, StepResponse, Success, WorkflowContext, WorkflowOptions, WorkflowResult
from .workflow import RetryPolicy, Step, Workflow, create_step

__all__ = [
    "CachedWorkflowFailure",
    "ConcurrencyConflictError",
    "ErrorKind",
    "Event",
    "EventBusProtocol",
    "EventMetadata",
    "ExecutionRecord",
    "ExecutionRecorder",
    "ExternalProviderError",
    "Failure",
    "IdempotencyRecord",
    "IdempotencyStore",
    "InMemoryEventBus",
    "InMemoryExecutionRecorder",
    "InMemoryIdempotencyStore",
    "NotFoundError",
    "RetryPolicy",
    "Step",
    "StepResponse",
    "Success",
    "ValidationError",
    "Workflow",
    "WorkflowContext",
    "WorkflowEngine",
    "WorkflowError",
    "WorkflowInProgressError",
    "WorkflowInfo",
    "WorkflowNotFoundError",
    "WorkflowOptions",
    "WorkflowResult",
    "WorkflowTimeoutError",
    "WorkflowTypeError",
    "classify_error",
    "create_step",
    "describe_failure",
]
