"""SQL-backed engine collaborators."""
from .execution_recorder import SqlAlchemyExecutionRecorder
from .idempotency_store import SqlAlchemyIdempotencyStore

__all__ = ["SqlAlchemyExecutionRecorder", "SqlAlchemyIdempotencyStore"]
