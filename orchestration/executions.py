"""Execution tracking - ExecutionRecord, ExecutionRecorder, InMemoryExecutionRecorder."""

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from core.domain.enums.execution_status import ExecutionStatus


@dataclass
class ExecutionRecord:
    """One workflow run as seen by the engine."""

    execution_id: str
    workflow_name: str
    correlation_id: str
    status: ExecutionStatus
    started_at: datetime
    timeout_seconds: float | None = None
    parent_execution_id: str | None = None
    idempotency_key: str | None = None
    finished_at: datetime | None = None
    error_kind: str | None = None
    error_message: str | None = None
    failed_compensations: list[str] | None = None


class ExecutionRecorder(Protocol):
    """Persists run records for auditing and operations dashboards."""

    async def record_started(self, record: ExecutionRecord) -> None:
        ...

    async def record_finished(self, record: ExecutionRecord) -> None:
        ...


class InMemoryExecutionRecorder(ExecutionRecorder):
    """Keeps run records in a dict, keyed by execution id."""

    def __init__(self) -> None:
        self.records: dict[str, ExecutionRecord] = {}

    async def record_started(self, record: ExecutionRecord) -> None:
        self.records[record.execution_id] = record

    async def record_finished(self, record: ExecutionRecord) -> None:
        self.records[record.execution_id] = record

    def by_workflow(self, workflow_name: str) -> list[ExecutionRecord]:
        return [r for r in self.records.values() if r.workflow_name == workflow_name]
