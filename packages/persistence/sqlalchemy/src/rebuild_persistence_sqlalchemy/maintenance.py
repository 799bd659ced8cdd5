"""Table housekeeping used between rebuild phases."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import delete, inspect, table
from sqlalchemy.exc import SQLAlchemyError

from rebuild_core.primitives.exceptions import PersistenceError

from .copy import count_rows

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy.engine import Connection
    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)


async def clear_tables(
    engine: AsyncEngine, table_names: Iterable[str]
) -> dict[str, int]:
    """Delete every row of each table in one transaction.

    Returns the number of rows removed per table. Either all tables are
    cleared or none are.
    """
    names = list(table_names)
    cleared: dict[str, int] = {}
    try:
        async with engine.begin() as conn:
            for name in names:
                before = await count_rows(conn, name)
                await conn.execute(delete(table(name)))
                cleared[name] = before
    except SQLAlchemyError as e:
        raise PersistenceError(f"Failed to clear tables {names}: {e}") from e
    for name, count in cleared.items():
        logger.info("Cleared %d rows from %s", count, name)
    return cleared


async def missing_tables(engine: AsyncEngine, table_names: Iterable[str]) -> list[str]:
    """Names from *table_names* that do not exist in *engine*'s database."""
    names = list(table_names)

    def _missing(sync_conn: Connection) -> list[str]:
        inspector = inspect(sync_conn)
        return [name for name in names if not inspector.has_table(name)]

    try:
        async with engine.connect() as conn:
            return await conn.run_sync(_missing)
    except SQLAlchemyError as e:
        raise PersistenceError(f"Failed to inspect tables {names}: {e}") from e
