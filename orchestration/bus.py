"""Event bus - EventBusProtocol and InMemoryEventBus."""

from collections.abc import Awaitable, Callable
from typing import Protocol

from shopflow_sdk.logging import get_logger

from .events import Event

EventHandler = Callable[[Event], Awaitable[None]]


class EventBusProtocol(Protocol):
    """Protocol for event bus implementations."""

    async def publish(self, event: Event) -> None:
        """Publish an event.

        Args:
            event: Event to publish
        """
        ...

    def subscribe(self, event_name: str, handler: EventHandler) -> None:
        """Subscribe a handler to an event name.

        Args:
            event_name: Event name to subscribe to, ``"*"`` for every event
            handler: Async handler function
        """
        ...


class InMemoryEventBus(EventBusProtocol):
    """In-memory event bus implementation."""

    def __init__(self, raise_errors: bool = False) -> None:
        """Initialize in-memory event bus.

        Args:
            raise_errors: Re-raise handler errors instead of logging them
        """
        self._handlers: dict[str, list[EventHandler]] = {}
        self._raise_errors = raise_errors
        self._logger = get_logger("orchestration.event_bus")

    def subscribe(self, event_name: str, handler: EventHandler) -> None:
        self._handlers.setdefault(event_name, []).append(handler)

    async def publish(self, event: Event) -> None:
        """Publish an event to all subscribed handlers.

        Args:
            event: Event to publish
        """
        handlers = self._handlers.get(event.name, []) + self._handlers.get("*", [])
        if not handlers:
            return

        self._logger.info(
            "publishing_event",
            extra={
                "event_name": event.name,
                "correlation_id": event.metadata.correlation_id,
                "handler_count": len(handlers),
            },
        )

        for handler in handlers:
            try:
                await handler(event)
            except Exception as exc:
                if self._raise_errors:
                    raise
                self._logger.error(
                    "handler_error",
                    extra={"event_name": event.name, "handler": str(handler), "error": str(exc)},
                    exc_info=True,
                )
