"""Async engine factory for the four stores a rebuild touches."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine


def create_store_engine(url: str, **kwargs: Any) -> AsyncEngine:
    """Create an :class:`AsyncEngine` for *url*.

    SQLite connections get foreign keys enabled on every new connection so
    that constraint violations behave as they would on a server database.
    """
    engine = create_async_engine(url, **kwargs)
    if make_url(url).get_backend_name() == "sqlite":
        setup_sqlite_engine(engine)
    return engine


def setup_sqlite_engine(engine: AsyncEngine) -> None:
    """Register a connect listener on the sync engine behind *engine*."""
    listen_engine = getattr(engine, "sync_engine", engine)

    @event.listens_for(listen_engine, "connect")
    def _enable_foreign_keys(dbapi_conn: Any, _connection_record: Any) -> None:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
