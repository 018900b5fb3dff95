"""
Outbox Status Enum.
"""
from enum import Enum


class OutboxStatus(str, Enum):
    """Delivery state of an outbox row."""

    PENDING = "pending"
    PUBLISHED = "published"
    FAILED = "failed"
