"""
RebuildOrchestrator — rebuild the read model from an isolated event-log copy.

Phases run strictly in sequence and none is retried:

1. ``PREPARE_EVENT_LOG``: create the event-log schema in the rebuild event
   store and empty it, checkpoint table included.
2. ``PREPARE_READ_MODEL``: let the schema collaborator prepare the rebuild
   read model, empty every non-bookkeeping table, and check production has
   every promotable table.
3. ``STAGE_EVENT_LOG``: copy event sources, events and snapshots from
   production into the rebuild event store.
4. ``REPLAY``: stream the staged log through the projection handlers until
   quiescence.
5. ``VERIFY``: compare dispatched events against staged event rows.
6. ``PROMOTE``: copy every promotable table into production, one
   transaction per table.

Production stores are only read before ``PROMOTE``. A failure there after at
least one table was promoted leaves production mixed and raises
:class:`PromotionFailure`.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sqlalchemy.ext.asyncio import async_sessionmaker

from rebuild_core.primitives.exceptions import (
    CopyFailure,
    PromotionFailure,
    RebuildError,
    ReplayVerificationError,
    SchemaPreparationFailure,
)
from rebuild_persistence_sqlalchemy import (
    EVENTS_TABLE,
    PIPELINE_STATE_TABLE,
    STAGED_TABLES,
    SQLAlchemyCheckpointStore,
    SQLAlchemyEventStore,
    TableCopyEngine,
    clear_tables,
    count_rows,
    create_store_engine,
    event_log_schema,
    missing_tables,
)
from rebuild_replay import ReplayPipeline

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.ext.asyncio import AsyncEngine

    from rebuild_core.ports.schema import ISchemaMigrator
    from rebuild_persistence_sqlalchemy import CopyResult
    from rebuild_replay import ReplayResult

    from .config import RebuildConfig

    RegistryFactory = Callable[[AsyncEngine], Any]
    EngineFactory = Callable[[str], AsyncEngine]

logger = logging.getLogger(__name__)


class RebuildPhase(str, enum.Enum):
    PREPARE_EVENT_LOG = "prepare_event_log"
    PREPARE_READ_MODEL = "prepare_read_model"
    STAGE_EVENT_LOG = "stage_event_log"
    REPLAY = "replay"
    VERIFY = "verify"
    PROMOTE = "promote"


@dataclass
class RebuildReport:
    """What each phase did. Filled in as the run progresses."""

    cleared_event_log: dict[str, int] = field(default_factory=dict)
    cleared_read_model: dict[str, int] = field(default_factory=dict)
    staged: list[CopyResult] = field(default_factory=list)
    replay: ReplayResult | None = None
    promoted: list[CopyResult] = field(default_factory=list)
    completed_phases: list[RebuildPhase] = field(default_factory=list)
    failed_phase: RebuildPhase | None = None

    @property
    def succeeded(self) -> bool:
        return (
            self.failed_phase is None
            and RebuildPhase.PROMOTE in self.completed_phases
        )

    def staged_rows(self, table_name: str) -> int:
        for result in self.staged:
            if result.table_name == table_name:
                return result.rows_copied
        return 0


@dataclass
class _Stores:
    production_event_log: AsyncEngine
    rebuild_event_log: AsyncEngine
    rebuild_read_model: AsyncEngine
    production_read_model: AsyncEngine

    def all(self) -> list[AsyncEngine]:
        return [
            self.production_event_log,
            self.rebuild_event_log,
            self.rebuild_read_model,
            self.production_read_model,
        ]


class RebuildOrchestrator:
    """Runs the rebuild phases against four explicitly configured stores.

    Args:
        config: URLs and tuning for this run.
        registry_factory: Called with the rebuild read-model engine; returns
            the projection registry (or an awaitable of it) whose handlers
            write into that engine.
        read_model_schema: Owner of the read-model schema. Its bookkeeping
            tables and ``config.excluded_tables`` are never promoted.
        engine_factory: Creates an engine from a URL.
    """

    def __init__(
        self,
        config: RebuildConfig,
        registry_factory: RegistryFactory,
        read_model_schema: ISchemaMigrator,
        *,
        engine_factory: EngineFactory = create_store_engine,
    ) -> None:
        self._config = config
        self._registry_factory = registry_factory
        self._schema = read_model_schema
        self._engine_factory = engine_factory
        self._copy_engine = TableCopyEngine(chunk_size=config.copy_chunk_size)
        self._report = RebuildReport()

    @property
    def report(self) -> RebuildReport:
        return self._report

    def rebuilt_tables(self) -> list[str]:
        """Read-model tables the handlers write, in dependency order."""
        skip = self._schema.bookkeeping_tables()
        return [name for name in self._schema.table_names() if name not in skip]

    def promotable_tables(self) -> list[str]:
        """Read-model tables copied into production, in dependency order."""
        return [
            name
            for name in self.rebuilt_tables()
            if name not in self._config.excluded_tables
        ]

    async def run(self) -> RebuildReport:
        self._report = RebuildReport()
        stores = _Stores(
            production_event_log=self._engine_factory(
                self._config.production_event_log_url
            ),
            rebuild_event_log=self._engine_factory(self._config.rebuild_event_log_url),
            rebuild_read_model=self._engine_factory(
                self._config.rebuild_read_model_url
            ),
            production_read_model=self._engine_factory(
                self._config.production_read_model_url
            ),
        )
        try:
            await self._run_phases(stores)
        finally:
            for engine in stores.all():
                await engine.dispose()
        return self._report

    async def _run_phases(self, stores: _Stores) -> None:
        promotable = self.promotable_tables()
        logger.info(
            "Rebuild %r started; promotable tables: %s",
            self._config.pipeline_name,
            promotable,
        )
        await self._phase(
            RebuildPhase.PREPARE_EVENT_LOG, self._prepare_event_log, stores
        )
        await self._phase(
            RebuildPhase.PREPARE_READ_MODEL,
            self._prepare_read_model,
            stores,
            promotable,
        )
        await self._phase(
            RebuildPhase.STAGE_EVENT_LOG, self._stage_event_log, stores
        )
        await self._phase(RebuildPhase.REPLAY, self._replay, stores)
        await self._phase(RebuildPhase.VERIFY, self._verify, stores)
        await self._phase(RebuildPhase.PROMOTE, self._promote, stores, promotable)
        logger.info(
            "Rebuild %r complete: %d events replayed, %d tables promoted",
            self._config.pipeline_name,
            self._report.replay.events_dispatched if self._report.replay else 0,
            len(self._report.promoted),
        )

    async def _phase(self, phase: RebuildPhase, step: Any, *args: Any) -> None:
        logger.info("Phase %s started", phase.value)
        try:
            await step(*args)
        except BaseException:
            self._report.failed_phase = phase
            logger.error("Phase %s failed", phase.value)
            raise
        self._report.completed_phases.append(phase)
        logger.info("Phase %s finished", phase.value)

    async def _prepare_event_log(self, stores: _Stores) -> None:
        schema = event_log_schema()
        await schema.prepare(stores.rebuild_event_log)
        # Checkpoint table too: a leftover position would skip events.
        self._report.cleared_event_log = await clear_tables(
            stores.rebuild_event_log, (*STAGED_TABLES, PIPELINE_STATE_TABLE)
        )

    async def _prepare_read_model(
        self, stores: _Stores, promotable: list[str]
    ) -> None:
        try:
            await self._schema.prepare(stores.rebuild_read_model)
        except RebuildError:
            raise
        except Exception as e:  # noqa: BLE001
            raise SchemaPreparationFailure(
                f"Read-model schema {self._schema.version} could not be prepared: {e}"
            ) from e

        # Excluded tables are rebuilt too, so they are reset with the rest.
        rebuilt = self.rebuilt_tables()
        absent = await missing_tables(stores.rebuild_read_model, rebuilt)
        if absent:
            raise SchemaPreparationFailure(
                f"Schema preparation did not create tables {absent} in the rebuild "
                "read model"
            )
        # Children before parents.
        self._report.cleared_read_model = await clear_tables(
            stores.rebuild_read_model, reversed(rebuilt)
        )
        async with stores.rebuild_read_model.connect() as conn:
            not_empty = [name for name in rebuilt if await count_rows(conn, name)]
        if not_empty:
            raise SchemaPreparationFailure(
                f"Rebuild read-model tables {not_empty} are not empty"
            )

        absent = await missing_tables(stores.production_read_model, promotable)
        if absent:
            raise SchemaPreparationFailure(
                f"Production read model is missing tables {absent}; migrate it to "
                f"schema {self._schema.version} before rebuilding"
            )

    async def _stage_event_log(self, stores: _Stores) -> None:
        self._report.staged = await self._copy_engine.copy_tables(
            stores.production_event_log,
            stores.rebuild_event_log,
            STAGED_TABLES,
            delete_existing=False,
        )

    async def _replay(self, stores: _Stores) -> None:
        registry: Any = self._registry_factory(stores.rebuild_read_model)
        if hasattr(registry, "__await__"):
            registry = await registry

        session_factory = async_sessionmaker(
            stores.rebuild_event_log, expire_on_commit=False
        )
        pipeline = ReplayPipeline(
            SQLAlchemyEventStore(session_factory),
            registry,
            SQLAlchemyCheckpointStore(session_factory),
            pipeline_name=self._config.pipeline_name,
            idle_window_seconds=self._config.idle_window_seconds,
            poll_interval_seconds=self._config.poll_interval_seconds,
            batch_size=self._config.fetch_batch_size,
            buffer_capacity=self._config.buffer_capacity,
        )
        self._report.replay = await pipeline.run()

    async def _verify(self, stores: _Stores) -> None:
        replay = self._report.replay
        dispatched = replay.events_dispatched if replay else 0
        if not self._config.verify_event_count:
            logger.info(
                "Event count verification disabled; %d events dispatched", dispatched
            )
            return
        expected = self._report.staged_rows(EVENTS_TABLE)
        if dispatched != expected:
            raise ReplayVerificationError(expected, dispatched)
        # The staged log itself must still hold exactly what was copied.
        stored = await SQLAlchemyEventStore(
            async_sessionmaker(stores.rebuild_event_log)
        ).count_events()
        if dispatched != stored:
            raise ReplayVerificationError(stored, dispatched)
        logger.info("Verified %d events dispatched of %d staged", dispatched, expected)

    async def _promote(self, stores: _Stores, promotable: list[str]) -> None:
        promoted: list[str] = []
        for index, name in enumerate(promotable):
            try:
                result = await self._copy_engine.copy_table(
                    stores.rebuild_read_model,
                    stores.production_read_model,
                    name,
                    delete_existing=True,
                )
            except CopyFailure as e:
                if not promoted and e.rolled_back:
                    # Nothing reached production.
                    raise
                failure = PromotionFailure(
                    failed_table=name,
                    promoted=promoted,
                    pending=promotable[index + 1 :],
                    error=e,
                )
                logger.critical(
                    "%s. Manual reconciliation of the production read model is "
                    "required.",
                    failure,
                )
                raise failure from e
            promoted.append(name)
            self._report.promoted.append(result)
