"""Protocols for the replay engine."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from rebuild_core.ports.event_store import StoredEvent

WILDCARD = "*"


@runtime_checkable
class IProjectionHandler(Protocol):
    """Protocol for a single projection handler: handle(event)
    and declares which event types it handles (``"*"`` for all)."""

    handles: set[str]

    async def handle(self, event: StoredEvent) -> None:
        """Process one event (update the handler's own projection tables)."""
        ...


@runtime_checkable
class ICheckpointStore(Protocol):
    """Protocol for persisting how far a replay progressed."""

    async def get_position(self, pipeline_name: str) -> int | None:
        """Return last dispatched position; None if never run."""
        ...

    async def save_position(self, pipeline_name: str, position: int) -> None:
        """Persist position."""
        ...


@runtime_checkable
class IProjectionRegistry(Protocol):
    """Maps event types to handlers; supports multiple handlers per event."""

    def get_handlers(self, event_type: str) -> list[IProjectionHandler]:
        """Return handlers for this event type, in registration order."""
        ...

    def register(self, handler: IProjectionHandler) -> None:
        """Register a handler (its .handles defines event types)."""
        ...
