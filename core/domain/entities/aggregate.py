"""
Aggregate root base.

CRITICAL: domain entities import nothing from sqlalchemy, pydantic or
fastapi. Repositories map ORM rows to these dataclasses.
"""
from dataclasses import dataclass, field
from typing import List

from ..events.base import DomainEvent


@dataclass
class AggregateRoot:
    """
    Collects domain events recorded by state transitions.

    ``version`` is the optimistic-lock counter loaded from storage; the
    repository compares it on save and bumps it on success.
    """

    _domain_events: List[DomainEvent] = field(default_factory=list, init=False, repr=False, compare=False)

    def _record_event(self, event: DomainEvent) -> None:
        self._domain_events.append(event)

    def get_domain_events(self) -> List[DomainEvent]:
        return list(self._domain_events)

    def pull_domain_events(self) -> List[DomainEvent]:
        """Return recorded events and clear the buffer."""
        events, self._domain_events = self._domain_events, []
        return events
