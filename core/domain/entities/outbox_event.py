"""
Outbox event entity.

Rows are written in the same transaction as the state change they describe
and published later by the outbox publisher (at-least-once delivery).
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Optional
import uuid

from shopflow_sdk.utils.datetime import utc_now

from ..enums import OutboxStatus

MAX_ATTEMPTS = 10
MAX_BACKOFF_SECONDS = 512


@dataclass
class OutboxEvent:
    """A domain event waiting to be published."""

    aggregate_type: str
    aggregate_id: str
    event_type: str
    payload: Dict[str, Any]
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    status: OutboxStatus = OutboxStatus.PENDING
    attempts: int = 0
    next_attempt_at: datetime = field(default_factory=utc_now)
    last_error: Optional[str] = None
    published_at: Optional[datetime] = None
    correlation_id: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)
    version: int = 0

    def mark_published(self) -> None:
        self.status = OutboxStatus.PUBLISHED
        self.published_at = utc_now()

    def mark_failed(
        self,
        error: str,
        max_attempts: int = MAX_ATTEMPTS,
        max_backoff_seconds: int = MAX_BACKOFF_SECONDS,
    ) -> None:
        """
        Record a failed publish attempt.

        Backoff doubles per attempt (1s, 2s, 4s, ...) up to
        ``max_backoff_seconds``; after ``max_attempts`` the row is FAILED
        and no longer picked up.
        """
        self.attempts += 1
        self.last_error = error
        if self.attempts >= max_attempts:
            self.status = OutboxStatus.FAILED
            return
        backoff = min(2 ** (self.attempts - 1), max_backoff_seconds)
        self.next_attempt_at = utc_now() + timedelta(seconds=backoff)

    def can_retry(self, max_attempts: int = MAX_ATTEMPTS) -> bool:
        return self.status == OutboxStatus.PENDING and self.attempts < max_attempts
