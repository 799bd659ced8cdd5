"""Shared fixtures: a small cart read model and a seeded production event log."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

import pytest
from sqlalchemy import Column, Integer, MetaData, String, Table, text
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from rebuild_core.ports.event_store import StoredEvent
from rebuild_orchestration import RebuildConfig
from rebuild_persistence_sqlalchemy import (
    MetadataSchemaMigrator,
    SQLAlchemyCheckpointStore,
    SQLAlchemyEventStore,
    event_log_schema,
)
from rebuild_replay import ProjectionHandler, ProjectionRegistry

CART_SIZES = {"cart-a": 5, "cart-b": 2, "cart-c": 7}
PRODUCTION_SCHEMA_VERSION = "1"
REBUILD_SCHEMA_VERSION = "2"


def read_model_metadata() -> MetaData:
    metadata = MetaData()
    Table(
        "carts",
        metadata,
        Column("cart_id", String, primary_key=True),
        Column("item_count", Integer, nullable=False),
        Column("quantity", Integer, nullable=False),
    )
    Table(
        "cart_activity",
        metadata,
        Column("position", Integer, primary_key=True, autoincrement=False),
        Column("cart_id", String, nullable=False),
        Column("event_type", String, nullable=False),
    )
    return metadata


class CartProjection(ProjectionHandler):
    """Item count and quantity per cart."""

    def __init__(self, engine: AsyncEngine) -> None:
        super().__init__(name="carts")
        self._engine = engine
        self.add_handler("CartOpened", self._on_opened)
        self.add_handler("ItemAdded", self._on_added)
        self.add_handler("ItemRemoved", self._on_removed)

    async def _on_opened(self, event: StoredEvent) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(
                text(
                    "INSERT INTO carts (cart_id, item_count, quantity) "
                    "VALUES (:cart_id, 0, 0)"
                ),
                {"cart_id": event.source_id},
            )

    async def _on_added(self, event: StoredEvent) -> None:
        await self._adjust(event.source_id, 1, int(event.payload["qty"]))

    async def _on_removed(self, event: StoredEvent) -> None:
        await self._adjust(event.source_id, -1, -int(event.payload["qty"]))

    async def _adjust(self, cart_id: str, items: int, qty: int) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(
                text(
                    "UPDATE carts SET item_count = item_count + :items, "
                    "quantity = quantity + :qty WHERE cart_id = :cart_id"
                ),
                {"cart_id": cart_id, "items": items, "qty": qty},
            )


class ActivityLog(ProjectionHandler):
    """One row per event, whatever its type."""

    def __init__(self, engine: AsyncEngine) -> None:
        super().__init__(name="cart_activity")
        self._engine = engine
        self.add_handler("*", self._record)

    async def _record(self, event: StoredEvent) -> None:
        async with self._engine.begin() as conn:
            await conn.execute(
                text(
                    "INSERT INTO cart_activity (position, cart_id, event_type) "
                    "VALUES (:position, :cart_id, :event_type)"
                ),
                {
                    "position": event.position,
                    "cart_id": event.source_id,
                    "event_type": event.event_type,
                },
            )


def build_registry(engine: AsyncEngine) -> ProjectionRegistry:
    registry = ProjectionRegistry()
    registry.register(CartProjection(engine))
    registry.register(ActivityLog(engine))
    return registry


def cart_events() -> list[StoredEvent]:
    """Three carts with 5, 2 and 7 events, interleaved round-robin."""
    events: list[StoredEvent] = []
    next_seq = dict.fromkeys(CART_SIZES, 0)
    while any(next_seq[c] < size for c, size in CART_SIZES.items()):
        for cart, size in CART_SIZES.items():
            if next_seq[cart] >= size:
                continue
            next_seq[cart] += 1
            seq = next_seq[cart]
            if seq == 1:
                event_type = "CartOpened"
            elif seq % 4 == 0:
                event_type = "ItemRemoved"
            else:
                event_type = "ItemAdded"
            events.append(
                StoredEvent(
                    source_id=cart,
                    sequence_number=seq,
                    event_type=event_type,
                    payload={"qty": seq},
                )
            )
    return events


def expected_carts(events: list[StoredEvent]) -> set[tuple[str, int, int]]:
    """Cart rows a from-scratch replay of *events* must produce."""
    carts: dict[str, list[int]] = {}
    for event in events:
        if event.event_type == "CartOpened":
            carts[event.source_id] = [0, 0]
        elif event.event_type == "ItemAdded":
            carts[event.source_id][0] += 1
            carts[event.source_id][1] += event.payload["qty"]
        elif event.event_type == "ItemRemoved":
            carts[event.source_id][0] -= 1
            carts[event.source_id][1] -= event.payload["qty"]
    return {(cart, items, qty) for cart, (items, qty) in carts.items()}


async def fetch_rows(url: str, sql: str) -> set[tuple[Any, ...]]:
    engine = create_async_engine(url)
    try:
        async with engine.connect() as conn:
            result = await conn.execute(text(sql))
            return {tuple(row) for row in result.fetchall()}
    finally:
        await engine.dispose()


async def seed_production(
    urls: dict[str, str],
    *,
    production_read_model_ddl: list[str] | None = None,
    stale_cart: bool = True,
) -> list[StoredEvent]:
    """Fill the production event log and give production a stale read model."""
    event_log = create_async_engine(urls["production_event_log_url"])
    read_model = create_async_engine(urls["production_read_model_url"])
    try:
        await event_log_schema().prepare(event_log)
        session_factory = async_sessionmaker(event_log, expire_on_commit=False)
        appended = await SQLAlchemyEventStore(session_factory).append_batch(
            cart_events()
        )
        # Production's own replay checkpoint must never be staged.
        await SQLAlchemyCheckpointStore(session_factory).save_position("rebuild", 999)

        if production_read_model_ddl is None:
            await MetadataSchemaMigrator(
                read_model_metadata(), PRODUCTION_SCHEMA_VERSION
            ).prepare(read_model)
        else:
            async with read_model.begin() as conn:
                for ddl in production_read_model_ddl:
                    await conn.execute(text(ddl))
        if stale_cart:
            async with read_model.begin() as conn:
                await conn.execute(
                    text(
                        "INSERT INTO carts (cart_id, item_count, quantity) "
                        "VALUES ('cart-zombie', 3, 30)"
                    )
                )
    finally:
        await event_log.dispose()
        await read_model.dispose()
    return appended


@pytest.fixture
def store_urls(tmp_path) -> dict[str, str]:
    return {
        name: f"sqlite+aiosqlite:///{tmp_path}/{name.removesuffix('_url')}.db"
        for name in (
            "production_event_log_url",
            "rebuild_event_log_url",
            "rebuild_read_model_url",
            "production_read_model_url",
        )
    }


@pytest.fixture
def rebuild_config(store_urls) -> RebuildConfig:
    return RebuildConfig(
        **store_urls,
        idle_window_seconds=0.2,
        poll_interval_seconds=0.02,
        fetch_batch_size=4,
        buffer_capacity=8,
        copy_chunk_size=5,
    )


@pytest.fixture
def read_model_schema() -> MetadataSchemaMigrator:
    return MetadataSchemaMigrator(read_model_metadata(), REBUILD_SCHEMA_VERSION)


@pytest.fixture
def registry_factory() -> Callable[[AsyncEngine], ProjectionRegistry]:
    return build_registry


@pytest.fixture
def seed() -> Callable[..., Awaitable[list[StoredEvent]]]:
    return seed_production


@pytest.fixture
def rows() -> Callable[[str, str], Awaitable[set[tuple[Any, ...]]]]:
    return fetch_rows


@pytest.fixture
def expected() -> Callable[[list[StoredEvent]], set[tuple[str, int, int]]]:
    return expected_carts
