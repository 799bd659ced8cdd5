"""InMemoryEventStore — list-backed fake for unit tests."""

from __future__ import annotations

import dataclasses

from rebuild_core.ports.event_store import IEventSource, StoredEvent


class InMemoryEventStore(IEventSource):
    """In-memory implementation of ``IEventSource``.

    Stores events in a flat list. Positions start at 1 and follow append
    order, so ``get_events_after(0)`` reads from the beginning.
    """

    def __init__(self) -> None:
        self._events: list[StoredEvent] = []
        self._keys: set[tuple[str, int]] = set()

    async def append(self, stored_event: StoredEvent) -> StoredEvent:
        return self._append_internal(stored_event)

    async def append_batch(self, events: list[StoredEvent]) -> list[StoredEvent]:
        return [self._append_internal(e) for e in events]

    def _append_internal(self, stored_event: StoredEvent) -> StoredEvent:
        if stored_event.key in self._keys:
            raise ValueError(
                f"Duplicate event {stored_event.source_id}#"
                f"{stored_event.sequence_number}"
            )
        event_with_position = dataclasses.replace(
            stored_event, position=len(self._events) + 1
        )
        self._events.append(event_with_position)
        self._keys.add(stored_event.key)
        return event_with_position

    async def get_events_after(
        self, position: int, limit: int = 1000
    ) -> list[StoredEvent]:
        """Return events after a given position (exclusive), up to limit."""
        start = max(position, 0)
        return list(self._events[start : start + limit])

    async def count_events(self) -> int:
        return len(self._events)

    # ── Test helpers ─────────────────────────────────────────────

    def clear(self) -> None:
        self._events.clear()
        self._keys.clear()

    def __len__(self) -> int:
        return len(self._events)
