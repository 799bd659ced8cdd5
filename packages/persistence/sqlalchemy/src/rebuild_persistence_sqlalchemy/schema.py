"""
Schema preparation for the stores a rebuild creates.

:class:`MetadataSchemaMigrator` brings a store up to a declared
``MetaData`` and records the schema version in its own bookkeeping table.
Bookkeeping tables are reported separately so they are never promoted.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import Column, MetaData, String, Table, delete, insert, select
from sqlalchemy.exc import SQLAlchemyError

from rebuild_core.ports.schema import ISchemaMigrator
from rebuild_core.primitives.exceptions import SchemaPreparationFailure

from .core.models import Base

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncEngine

logger = logging.getLogger(__name__)

EVENT_LOG_SCHEMA_VERSION = "1"
EVENT_LOG_VERSION_TABLE = "event_log_schema_version"


class MetadataSchemaMigrator(ISchemaMigrator):
    """Creates every table in *metadata* plus a one-row version table."""

    def __init__(
        self,
        metadata: MetaData,
        version: str,
        *,
        version_table: str = "schema_version",
        extra_bookkeeping: Iterable[str] = (),
    ) -> None:
        if version_table in metadata.tables:
            raise ValueError(
                f"version table {version_table!r} clashes with a metadata table"
            )
        self._metadata = metadata
        self.version = version
        self._version_table = Table(
            version_table,
            MetaData(),
            Column("version", String, primary_key=True),
        )
        self._bookkeeping = {version_table, *extra_bookkeeping}

    async def prepare(self, store: AsyncEngine) -> None:
        """Create the declared tables and record :attr:`version`.

        A store recorded at a different version has its declared tables
        dropped and recreated, so old table shapes never survive an upgrade.
        """
        try:
            async with store.begin() as conn:
                await conn.run_sync(self._version_table.create, checkfirst=True)
                result = await conn.execute(select(self._version_table.c.version))
                recorded = result.scalars().first()
                if recorded is not None and recorded != self.version:
                    logger.info(
                        "Store is at schema version %s; recreating tables for %s",
                        recorded,
                        self.version,
                    )
                    await conn.run_sync(self._metadata.drop_all)
                await conn.run_sync(self._metadata.create_all)
                await conn.execute(delete(self._version_table))
                await conn.execute(
                    insert(self._version_table).values(version=self.version)
                )
        except SQLAlchemyError as e:
            raise SchemaPreparationFailure(
                f"Failed to prepare schema version {self.version}: {e}"
            ) from e
        logger.info(
            "Prepared schema version %s (%d tables)",
            self.version,
            len(self._metadata.tables),
        )

    def table_names(self) -> list[str]:
        """All tables this migrator manages, bookkeeping included,
        in dependency order."""
        names = [t.name for t in self._metadata.sorted_tables]
        names.append(self._version_table.name)
        return names

    def bookkeeping_tables(self) -> set[str]:
        return set(self._bookkeeping)


def event_log_schema(version: str = EVENT_LOG_SCHEMA_VERSION) -> MetadataSchemaMigrator:
    """Migrator for the event-log tables of :mod:`.core.models`."""
    return MetadataSchemaMigrator(
        Base.metadata, version, version_table=EVENT_LOG_VERSION_TABLE
    )
