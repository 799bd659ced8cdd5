"""
TableCopyEngine — transactional, verified bulk copy of whole tables.

Rows are treated as opaque tuples: the column list comes from the source
cursor (``SELECT *``) and the target insert is built from those names alone.
Every write to the target happens in a single transaction, so a table copy
is all-or-nothing. Copies of different tables are independent transactions.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import column, delete, func, insert, literal_column, select, table
from sqlalchemy.exc import SQLAlchemyError

from rebuild_core.primitives.exceptions import CopyFailure, RollbackFailure

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from sqlalchemy.ext.asyncio import (
        AsyncConnection,
        AsyncEngine,
        AsyncResult,
        AsyncTransaction,
    )

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CopyResult:
    """Row accounting for one table copy.

    ``rows_copied`` is derived from target counts; ``rows_streamed`` is what
    was read from the source. A successful copy always has them equal.
    """

    table_name: str
    rows_before: int
    rows_deleted: int
    rows_copied: int
    rows_after: int
    rows_streamed: int = 0
    duration_seconds: float = 0.0


async def count_rows(conn: AsyncConnection, table_name: str) -> int:
    result = await conn.execute(select(func.count()).select_from(table(table_name)))
    return int(result.scalar_one())


class TableCopyEngine:
    """Copies named tables from a source store into a target store."""

    def __init__(self, *, chunk_size: int = 1000) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._chunk_size = chunk_size

    async def copy_table(
        self,
        source: AsyncEngine,
        target: AsyncEngine,
        table_name: str,
        *,
        delete_existing: bool,
    ) -> CopyResult:
        """Copy every row of *table_name* from *source* into *target*.

        With ``delete_existing`` the target's rows are deleted first, inside
        the same transaction. Any failure rolls the target back and raises
        :class:`CopyFailure`; if the rollback fails too,
        :class:`RollbackFailure` carries both errors.
        """
        started = time.monotonic()
        logger.info(
            "Copying table %s (delete_existing=%s)", table_name, delete_existing
        )
        async with source.connect() as source_conn:
            try:
                rows = await source_conn.stream(
                    select(literal_column("*")).select_from(table(table_name))
                )
            except SQLAlchemyError as e:
                raise CopyFailure(table_name, f"cannot read source table: {e}") from e

            async with target.connect() as target_conn:
                transaction = await target_conn.begin()
                try:
                    result = await self._copy_in_transaction(
                        target_conn, rows, table_name, delete_existing
                    )
                    await transaction.commit()
                except Exception as e:  # noqa: BLE001
                    await self._rollback(transaction, table_name, e)
                    if isinstance(e, CopyFailure):
                        raise
                    raise CopyFailure(table_name, str(e)) from e

        result = dataclasses.replace(
            result, duration_seconds=time.monotonic() - started
        )
        logger.info(
            "Copied table %s: before=%d deleted=%d copied=%d after=%d (%.2fs)",
            table_name,
            result.rows_before,
            result.rows_deleted,
            result.rows_copied,
            result.rows_after,
            result.duration_seconds,
        )
        return result

    async def copy_tables(
        self,
        source: AsyncEngine,
        target: AsyncEngine,
        table_names: Iterable[str],
        *,
        delete_existing: bool,
    ) -> list[CopyResult]:
        """Copy tables one transaction each, stopping at the first failure.

        Tables copied before a failure stay committed.
        """
        return [
            await self.copy_table(
                source, target, name, delete_existing=delete_existing
            )
            for name in table_names
        ]

    async def _copy_in_transaction(
        self,
        conn: AsyncConnection,
        rows: AsyncResult[Any],
        table_name: str,
        delete_existing: bool,
    ) -> CopyResult:
        rows_before = await count_rows(conn, table_name)

        rows_deleted = 0
        if delete_existing:
            await conn.execute(delete(table(table_name)))
            rows_deleted = rows_before - await count_rows(conn, table_name)

        rows_streamed = await self._bulk_insert(conn, rows, table_name)

        rows_after = await count_rows(conn, table_name)
        rows_copied = rows_after - (rows_before - rows_deleted)
        if rows_copied != rows_streamed:
            raise CopyFailure(
                table_name,
                f"row accounting mismatch: read {rows_streamed} rows from source "
                f"but target grew by {rows_copied}",
            )
        return CopyResult(
            table_name=table_name,
            rows_before=rows_before,
            rows_deleted=rows_deleted,
            rows_copied=rows_copied,
            rows_after=rows_after,
            rows_streamed=rows_streamed,
        )

    async def _bulk_insert(
        self, conn: AsyncConnection, rows: AsyncResult[Any], table_name: str
    ) -> int:
        keys: Sequence[str] = list(rows.keys())
        target_table = table(table_name, *(column(k) for k in keys))
        stmt = insert(target_table)
        streamed = 0
        async for partition in rows.partitions(self._chunk_size):
            batch = [dict(zip(keys, row)) for row in partition]
            await conn.execute(stmt, batch)
            streamed += len(batch)
            logger.debug("Inserted %d rows into %s", streamed, table_name)
        return streamed

    async def _rollback(
        self, transaction: AsyncTransaction, table_name: str, error: Exception
    ) -> None:
        try:
            await transaction.rollback()
        except Exception as rollback_error:  # noqa: BLE001
            logger.error(
                "Rollback of table %s copy failed after %r: %s",
                table_name,
                error,
                rollback_error,
                exc_info=True,
            )
            raise RollbackFailure(table_name, error, rollback_error) from error
        logger.warning("Copy of table %s rolled back: %s", table_name, error)
