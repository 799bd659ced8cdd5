"""
SQLAlchemy implementation of the event source the replay reads from.

Each page is read in its own short-lived session, so a long replay never
holds a read transaction open on the event store.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from rebuild_core.ports.event_store import IEventSource, StoredEvent
from rebuild_core.primitives.exceptions import EventStoreError

from .models import EventModel, EventSourceModel

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


class SQLAlchemyEventStore(IEventSource):
    """
    Event store implementation using SQLAlchemy.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def append(self, stored_event: StoredEvent) -> StoredEvent:
        """Append a single event; returns it with its assigned position."""
        (appended,) = await self.append_batch([stored_event])
        return appended

    async def append_batch(self, events: list[StoredEvent]) -> list[StoredEvent]:
        """
        Append multiple events atomically, bumping each event source's version.

        Position is assigned by the database in insertion order.
        """
        if not events:
            return []
        async with self._session_factory() as session, session.begin():
            models = [
                EventModel(
                    event_id=event.event_id,
                    source_id=event.source_id,
                    sequence_number=event.sequence_number,
                    event_type=event.event_type,
                    payload=event.payload,
                    occurred_at=event.occurred_at,
                )
                for event in events
            ]
            for model in models:
                session.add(model)
                await session.flush()
            await self._bump_sources(session, events)
            return [self._to_dataclass(m) for m in models]

    async def _bump_sources(
        self, session: AsyncSession, events: list[StoredEvent]
    ) -> None:
        latest: dict[str, int] = {}
        for event in events:
            latest[event.source_id] = max(
                latest.get(event.source_id, 0), event.sequence_number
            )
        for source_id, version in latest.items():
            source = await session.get(EventSourceModel, source_id)
            if source is None:
                session.add(EventSourceModel(source_id=source_id, version=version))
            elif version > source.version:
                source.version = version

    async def get_events_after(
        self, position: int, limit: int = 1000
    ) -> list[StoredEvent]:
        """
        Return events after a given position for cursor-based pagination.
        """
        stmt = (
            select(EventModel)
            .where(EventModel.position > position)
            .order_by(EventModel.position)
            .limit(limit)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                models = result.scalars().all()
        except SQLAlchemyError as e:
            raise EventStoreError(
                f"Failed to read events after position {position}: {e}"
            ) from e
        return [self._to_dataclass(m) for m in models]

    async def count_events(self) -> int:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(func.count()).select_from(EventModel)
                )
                return int(result.scalar_one())
        except SQLAlchemyError as e:
            raise EventStoreError(f"Failed to count events: {e}") from e

    def _to_dataclass(self, model: EventModel) -> StoredEvent:
        return StoredEvent(
            source_id=model.source_id,
            sequence_number=model.sequence_number,
            event_type=model.event_type,
            payload=model.payload,
            occurred_at=model.occurred_at,
            event_id=model.event_id,
            position=model.position,
        )
