"""ProjectionHandler base class — event type -> coroutine mapping."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, TypeAlias

from .ports import WILDCARD

if TYPE_CHECKING:
    from rebuild_core.ports.event_store import StoredEvent

AsyncEventHandler: TypeAlias = Callable[["StoredEvent"], Awaitable[None]]


class ProjectionHandler:
    """Base class that dispatches events to registered async handlers."""

    def __init__(self, name: str | None = None) -> None:
        self.name = name or type(self).__name__
        self._event_handlers: dict[str, AsyncEventHandler] = {}

    @property
    def handles(self) -> set[str]:
        """Return registered event types handled by this projection."""
        return set(self._event_handlers.keys())

    def add_handler(self, event_type: str, handler: AsyncEventHandler) -> None:
        """Register an async handler for a specific event type (or ``"*"``)."""
        self._event_handlers[event_type] = handler

    async def handle(self, event: StoredEvent) -> None:
        """Resolve and execute the mapped async handler for an event."""
        handler = self._event_handlers.get(event.event_type)
        if handler is None:
            handler = self._event_handlers.get(WILDCARD)
        if handler is None:
            return
        await handler(event)
