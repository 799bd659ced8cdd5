"""Tests for InMemoryEventStore."""

from __future__ import annotations

import pytest

from rebuild_core.adapters.memory.event_store import InMemoryEventStore
from rebuild_core.ports.event_store import IEventSource, StoredEvent


def _event(source_id: str, seq: int, event_type: str = "ItemAdded") -> StoredEvent:
    return StoredEvent(
        source_id=source_id,
        sequence_number=seq,
        event_type=event_type,
        payload={"n": seq},
    )


@pytest.mark.asyncio
class TestInMemoryEventStore:
    """Test InMemoryEventStore storage and paging."""

    @pytest.fixture
    def store(self) -> InMemoryEventStore:
        """Create fresh event store for each test."""
        return InMemoryEventStore()

    async def test_satisfies_event_source_protocol(
        self, store: InMemoryEventStore
    ) -> None:
        assert isinstance(store, IEventSource)

    async def test_append_assigns_positions_from_one(
        self, store: InMemoryEventStore
    ) -> None:
        first = await store.append(_event("a", 1))
        second = await store.append(_event("b", 1))

        assert first.position == 1
        assert second.position == 2
        assert await store.count_events() == 2

    async def test_get_events_after_pages_in_order(
        self, store: InMemoryEventStore
    ) -> None:
        await store.append_batch([_event("a", i) for i in range(1, 6)])

        page1 = await store.get_events_after(0, limit=2)
        page2 = await store.get_events_after(page1[-1].position or 0, limit=2)
        page3 = await store.get_events_after(page2[-1].position or 0, limit=2)
        tail = await store.get_events_after(page3[-1].position or 0, limit=2)

        assert [e.sequence_number for e in page1 + page2 + page3] == [1, 2, 3, 4, 5]
        assert tail == []

    async def test_duplicate_key_rejected(self, store: InMemoryEventStore) -> None:
        await store.append(_event("a", 1))

        with pytest.raises(ValueError, match="Duplicate event"):
            await store.append(_event("a", 1))

    async def test_clear_resets_store(self, store: InMemoryEventStore) -> None:
        await store.append(_event("a", 1))
        store.clear()

        assert len(store) == 0
        assert await store.get_events_after(0) == []


def test_stored_event_key() -> None:
    event = _event("order-1", 7)
    assert event.key == ("order-1", 7)
