"""SQLAlchemy replay checkpoint store over the ``pipeline_state`` table."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from rebuild_core.primitives.exceptions import CheckpointError

from .models import PIPELINE_STATE_TABLE

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


class SQLAlchemyCheckpointStore:
    """
    Stores replay positions in a table (default ``pipeline_state``) with
    columns ``pipeline_name`` (PK) and ``position``.

    Satisfies the replay engine's ``ICheckpointStore`` protocol structurally.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        table_name: str = PIPELINE_STATE_TABLE,
    ) -> None:
        self._session_factory = session_factory
        self._table = table_name

    async def get_position(self, pipeline_name: str) -> int | None:
        try:
            async with self._session_factory() as session:
                r = await session.execute(
                    text(
                        f"SELECT position FROM {self._table} "
                        "WHERE pipeline_name = :name"
                    ),
                    {"name": pipeline_name},
                )
                row = r.fetchone()
        except SQLAlchemyError as e:
            raise CheckpointError(f"Failed to read checkpoint: {e}") from e
        return int(row[0]) if row else None

    async def save_position(self, pipeline_name: str, position: int) -> None:
        try:
            async with self._session_factory() as session:
                await session.execute(
                    text(
                        f"""
                        INSERT INTO {self._table} (pipeline_name, position)
                        VALUES (:name, :position)
                        ON CONFLICT (pipeline_name) DO UPDATE SET position = :position
                        """
                    ),
                    {"name": pipeline_name, "position": position},
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise CheckpointError(f"Failed to save checkpoint: {e}") from e

