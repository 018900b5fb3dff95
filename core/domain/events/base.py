"""
Base Domain Event.

All domain events inherit from this base class. Events are recorded by
aggregates and written to the outbox in the same transaction as the state
change they describe.
"""
from dataclasses import asdict, dataclass, field, fields, is_dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict
import uuid

from shopflow_sdk.utils.datetime import utc_now


@dataclass
class DomainEvent:
    """
    Base class for all domain events.

    ``event_type`` is the class name and ``aggregate_type`` the first word
    of it, lower-cased (``ShipmentCreated`` -> ``shipment``).
    """

    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    event_type: str = field(init=False)
    aggregate_id: str = field(default="")
    aggregate_type: str = field(init=False)
    occurred_at: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        """Set event type and aggregate type from class name."""
        object.__setattr__(self, "event_type", self.__class__.__name__)
        object.__setattr__(self, "aggregate_type", self._get_aggregate_type())

    def _get_aggregate_type(self) -> str:
        event_name = self.__class__.__name__
        if event_name.endswith("Event"):
            event_name = event_name[:-5]

        for i, char in enumerate(event_name):
            if i > 0 and char.isupper():
                return event_name[:i].lower()
        return event_name.lower()

    def to_payload(self) -> Dict[str, Any]:
        """
        JSON-compatible body of the event.

        Returns:
            Event-specific fields plus ``event_id`` and ``occurred_at``
        """
        payload: Dict[str, Any] = {
            "event_id": self.event_id,
            "occurred_at": self.occurred_at.isoformat(),
        }
        for f in fields(self):
            if f.name in ("event_id", "event_type", "aggregate_id", "aggregate_type", "occurred_at"):
                continue
            payload[f.name] = _serialize(getattr(self, f.name))
        return payload


def _serialize(value: Any) -> Any:
    if isinstance(value, Decimal):
        # Decimal as string keeps the amount exact in JSON
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value) and not isinstance(value, type):
        return _serialize(asdict(value))
    if isinstance(value, (list, tuple)):
        return [_serialize(v) for v in value]
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    return value

