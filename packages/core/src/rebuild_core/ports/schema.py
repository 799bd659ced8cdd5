"""ISchemaMigrator — boundary to the read-model schema owner."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class ISchemaMigrator(Protocol):
    """Creates or updates a store's schema from an explicit, versioned definition.

    The rebuild only relies on "these tables exist with this shape"; it never
    enumerates whatever happens to be in the database catalog.
    """

    version: str

    async def prepare(self, store: Any) -> None:
        """Bring *store* to this schema version (create missing tables)."""
        ...

    def table_names(self) -> list[str]:
        """Every table owned by this schema, in dependency order."""
        ...

    def bookkeeping_tables(self) -> set[str]:
        """Internal tables (migration history) that must never be promoted."""
        ...
