"""Idempotency store - IdempotencyRecord, IdempotencyStore, InMemoryIdempotencyStore."""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from shopflow_sdk.utils.datetime import utc_now

from core.domain.enums.execution_status import ExecutionStatus


@dataclass
class IdempotencyRecord:
    """State of one (workflow, key) pair.

    ``output`` holds the JSON-compatible dump of the workflow output; the
    engine turns it back into the registered output type.
    """

    workflow_name: str
    key: str
    status: ExecutionStatus
    expires_at: datetime
    output: Any = None
    error_kind: str | None = None
    error_message: str | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        return (now or utc_now()) >= self.expires_at


class IdempotencyStore(Protocol):
    """Storage for idempotency keys.

    ``claim`` must be atomic: of two concurrent claims for the same pair,
    exactly one returns True.
    """

    async def get(self, workflow_name: str, key: str) -> IdempotencyRecord | None:
        ...

    async def claim(self, workflow_name: str, key: str, expires_at: datetime) -> bool:
        ...

    async def complete(self, workflow_name: str, key: str, output: Any) -> None:
        ...

    async def fail(self, workflow_name: str, key: str, error_kind: str, error_message: str) -> None:
        ...

    async def release(self, workflow_name: str, key: str) -> None:
        ...


class InMemoryIdempotencyStore(IdempotencyStore):
    """Process-local store guarded by an asyncio lock."""

    def __init__(self) -> None:
        self._records: dict[tuple[str, str], IdempotencyRecord] = {}
        self._lock = asyncio.Lock()

    async def get(self, workflow_name: str, key: str) -> IdempotencyRecord | None:
        record = self._records.get((workflow_name, key))
        if record is None or record.is_expired():
            return None
        return record

    async def claim(self, workflow_name: str, key: str, expires_at: datetime) -> bool:
        async with self._lock:
            existing = self._records.get((workflow_name, key))
            if existing is not None and not existing.is_expired():
                return False
            self._records[(workflow_name, key)] = IdempotencyRecord(
                workflow_name=workflow_name,
                key=key,
                status=ExecutionStatus.RUNNING,
                expires_at=expires_at,
            )
            return True

    async def complete(self, workflow_name: str, key: str, output: Any) -> None:
        record = self._records[(workflow_name, key)]
        record.status = ExecutionStatus.COMPLETED
        record.output = output

    async def fail(self, workflow_name: str, key: str, error_kind: str, error_message: str) -> None:
        record = self._records[(workflow_name, key)]
        record.status = ExecutionStatus.FAILED
        record.error_kind = error_kind
        record.error_message = error_message

    async def release(self, workflow_name: str, key: str) -> None:
        self._records.pop((workflow_name, key), None)

    async def purge_expired(self) -> int:
        now = utc_now()
        expired = [k for k, r in self._records.items() if r.is_expired(now)]
        for k in expired:
            del self._records[k]
        return len(expired)
