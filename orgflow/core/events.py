"""In-process change notification hook.

Services publish a ChangeEvent after every committed mutation. Collaborators
(UI push layers, caches, audit exporters) subscribe a handler; the core never
depends on any particular delivery mechanism and a failing handler never
affects the mutation that produced the event.
"""

import inspect
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


class ChangeEvent(BaseModel):
    """A committed change to a task, user or rating."""

    type: str = Field(..., description="Event type, e.g. 'task.updated' or 'user.terminated'")
    entity_id: str = Field(..., description="ID of the changed document")
    payload: dict[str, Any] = Field(default_factory=dict, description="Event-specific data")
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


EventHandler = Callable[[ChangeEvent], Awaitable[None] | None]


class EventBus:
    """Fan-out of change events to subscribed handlers."""

    def __init__(self) -> None:
        self._handlers: list[EventHandler] = []

    def subscribe(self, handler: EventHandler) -> None:
        """Register a handler (sync or async) for every published event."""
        if handler not in self._handlers:
            self._handlers.append(handler)

    def unsubscribe(self, handler: EventHandler) -> None:
        """Remove a previously registered handler."""
        if handler in self._handlers:
            self._handlers.remove(handler)

    async def publish(self, event: ChangeEvent) -> None:
        """Deliver an event to all handlers, logging handler failures."""
        for handler in list(self._handlers):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.warning(
                    "Event handler failed",
                    extra={"event_type": event.type, "entity_id": event.entity_id, "error": str(e)},
                )


# Global event bus instance
event_bus = EventBus()


async def emit(event_type: str, entity_id: str, **payload: Any) -> None:
    """Publish a change event on the global bus."""
    await event_bus.publish(ChangeEvent(type=event_type, entity_id=entity_id, payload=payload))
