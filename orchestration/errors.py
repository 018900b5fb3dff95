"""Workflow error taxonomy - ErrorKind, exception hierarchy, classify_error."""

import asyncio
from enum import Enum


class ErrorKind(str, Enum):
    """Closed set of failure categories surfaced to callers."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    EXTERNAL_PROVIDER = "external_provider"
    TIMEOUT = "timeout"
    INTERNAL = "internal"

    @property
    def is_deterministic(self) -> bool:
        """Whether re-running the same request would fail the same way."""
        return self in (ErrorKind.VALIDATION, ErrorKind.NOT_FOUND)


class WorkflowError(Exception):
    """Base class for errors raised inside workflows and steps."""

    kind: ErrorKind = ErrorKind.INTERNAL


class ValidationError(WorkflowError):
    """Precondition or input validation failed (never retried)."""

    kind = ErrorKind.VALIDATION


class NotFoundError(WorkflowError):
    """A referenced aggregate does not exist."""

    kind = ErrorKind.NOT_FOUND


class ConcurrencyConflictError(WorkflowError):
    """Optimistic lock lost - the caller must restart from prepare."""

    kind = ErrorKind.CONFLICT


class ExternalProviderError(WorkflowError):
    """A non-transactional third party call failed."""

    kind = ErrorKind.EXTERNAL_PROVIDER

    def __init__(self, message: str, provider: str | None = None) -> None:
        super().__init__(message)
        self.provider = provider


class WorkflowTimeoutError(WorkflowError):
    """Workflow exceeded its deadline."""

    kind = ErrorKind.TIMEOUT


class WorkflowNotFoundError(NotFoundError):
    """No workflow registered under the requested name."""


class WorkflowTypeError(ValidationError):
    """Declared input/output types do not match the registration."""


class WorkflowInProgressError(WorkflowError):
    """A run holding the same idempotency key has not finished yet."""

    kind = ErrorKind.CONFLICT


class CachedWorkflowFailure(WorkflowError):
    """Replay of a failure recorded under an idempotency key."""

    def __init__(self, message: str, kind: ErrorKind) -> None:
        super().__init__(message)
        self.kind = kind


def classify_error(error: BaseException) -> ErrorKind:
    """Map any exception onto an ErrorKind."""
    if isinstance(error, WorkflowError):
        return error.kind
    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return ErrorKind.TIMEOUT
    return ErrorKind.INTERNAL
