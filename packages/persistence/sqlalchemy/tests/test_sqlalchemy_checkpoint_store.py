"""Tests for SQLAlchemyCheckpointStore."""

from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from rebuild_core.primitives.exceptions import CheckpointError
from rebuild_persistence_sqlalchemy import Base, SQLAlchemyCheckpointStore


@pytest.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/state.db")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def store(engine):
    return SQLAlchemyCheckpointStore(async_sessionmaker(engine, expire_on_commit=False))


@pytest.mark.asyncio
async def test_get_none_when_never_saved(store):
    assert await store.get_position("rebuild") is None


@pytest.mark.asyncio
async def test_save_and_get(store):
    await store.save_position("rebuild", 14)
    assert await store.get_position("rebuild") == 14


@pytest.mark.asyncio
async def test_save_overwrites(store):
    await store.save_position("rebuild", 5)
    await store.save_position("rebuild", 9)
    assert await store.get_position("rebuild") == 9


@pytest.mark.asyncio
async def test_pipelines_are_independent(store):
    await store.save_position("a", 1)
    await store.save_position("b", 2)
    assert await store.get_position("a") == 1
    assert await store.get_position("b") == 2


@pytest.mark.asyncio
async def test_missing_table_raises_checkpoint_error(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/bare.db")
    try:
        store = SQLAlchemyCheckpointStore(async_sessionmaker(eng))
        with pytest.raises(CheckpointError):
            await store.get_position("rebuild")
        with pytest.raises(CheckpointError):
            await store.save_position("rebuild", 1)
    finally:
        await eng.dispose()
