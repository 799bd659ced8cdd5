"""IEventSource protocol + StoredEvent dataclass."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable
from uuid import uuid4


@dataclass(frozen=True)
class StoredEvent:
    """Persistent representation of one event in the log.

    - ``source_id``/``sequence_number``: identity of the event inside its
      event source (aggregate stream).
    - ``position``: global delivery order assigned by the store. ``None``
      until the store has persisted the event.
    """

    source_id: str = ""
    sequence_number: int = 0
    event_type: str = ""
    payload: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: str = field(default_factory=lambda: str(uuid4()))
    position: int | None = None

    @property
    def key(self) -> tuple[str, int]:
        """Unique identity ``(source_id, sequence_number)``."""
        return (self.source_id, self.sequence_number)


@runtime_checkable
class IEventSource(Protocol):
    """Ordered, forward-only, paginated read over the event log.

    An empty page means "caught up for now", never "finished forever".
    """

    async def get_events_after(
        self, position: int, limit: int = 1000
    ) -> list[StoredEvent]:
        """Return events after a given position for cursor-based pagination.

        Args:
            position: The last consumed position (exclusive). ``0`` reads
                from the beginning of the log.
            limit: Maximum number of events to return.

        Returns:
            Stored events in position order, up to ``limit`` events.
        """
        ...

    async def count_events(self) -> int:
        """Return the number of events currently in the log."""
        ...
