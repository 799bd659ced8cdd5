"""Tests for InMemoryCheckpointStore."""

from __future__ import annotations

import pytest

from rebuild_replay.checkpoint import InMemoryCheckpointStore
from rebuild_replay.ports import ICheckpointStore


@pytest.mark.asyncio
async def test_get_and_save() -> None:
    store = InMemoryCheckpointStore()
    assert isinstance(store, ICheckpointStore)
    assert await store.get_position("p") is None

    await store.save_position("p", 10)
    assert await store.get_position("p") == 10

    await store.save_position("p", 12)
    assert await store.get_position("p") == 12


@pytest.mark.asyncio
async def test_clear() -> None:
    store = InMemoryCheckpointStore()
    await store.save_position("p", 3)
    store.clear()
    assert await store.get_position("p") is None
