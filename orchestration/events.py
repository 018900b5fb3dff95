"""Orchestration events - Event, EventMetadata."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class EventMetadata:
    """Metadata for an orchestration event."""

    execution_id: str | None
    correlation_id: str | None
    workflow_name: str | None
    timestamp: datetime


@dataclass
class Event:
    """Event published on the orchestration bus."""

    name: str
    payload: dict[str, object]
    metadata: EventMetadata
