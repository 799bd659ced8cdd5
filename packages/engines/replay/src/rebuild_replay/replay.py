"""ReplayPipeline — rebuild projections by replaying the full event log."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from rebuild_core.primitives.exceptions import (
    ReplayCancelledError,
    StaleCheckpointError,
)

from .dispatcher import ProjectionDispatcher
from .quiescence import QuiescenceDetector
from .reader import BufferedEventReader, EndOfStream

if TYPE_CHECKING:
    from collections.abc import Callable

    from rebuild_core.ports.event_store import IEventSource

    from .ports import ICheckpointStore, IProjectionRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReplayResult:
    pipeline_name: str
    events_dispatched: int
    last_position: int
    started_at: datetime
    completed_at: datetime

    @property
    def duration_seconds(self) -> float:
        return (self.completed_at - self.started_at).total_seconds()


class ReplayPipeline:
    """Streams the event log through a buffered reader into the dispatcher
    until quiescence.

    One fetch task fills the reader, one dispatch task drains it, and the
    calling coroutine watches the quiescence detector. The pipeline refuses
    to start when its checkpoint already holds a position: a rebuild must
    replay everything from the start of the log.
    """

    def __init__(
        self,
        event_source: IEventSource,
        projection_registry: IProjectionRegistry,
        checkpoint_store: ICheckpointStore,
        *,
        pipeline_name: str = "rebuild",
        idle_window_seconds: float = 10.0,
        poll_interval_seconds: float = 0.5,
        batch_size: int = 500,
        buffer_capacity: int | None = None,
        progress_every: int = 1000,
        progress_callback: Callable[[int, int], Any] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._event_source = event_source
        self._projection_registry = projection_registry
        self._checkpoint_store = checkpoint_store
        self._pipeline_name = pipeline_name
        self._idle_window = idle_window_seconds
        self._poll_interval = poll_interval_seconds
        self._batch_size = batch_size
        self._buffer_capacity = buffer_capacity
        self._progress_every = progress_every
        self._progress_callback = progress_callback
        if progress_every <= 0:
            raise ValueError("progress_every must be positive")
        self._clock = clock
        self._stop_requested = asyncio.Event()
        self._started = False

    @property
    def pipeline_name(self) -> str:
        return self._pipeline_name

    async def stop(self) -> None:
        """Ask a running replay to stop; :meth:`run` raises
        :class:`ReplayCancelledError` unless it was already quiescent."""
        self._stop_requested.set()

    async def run(self) -> ReplayResult:
        if self._started:
            raise RuntimeError("ReplayPipeline instances are single-use")
        self._started = True

        existing = await self._checkpoint_store.get_position(self._pipeline_name)
        if existing is not None:
            raise StaleCheckpointError(self._pipeline_name, existing)

        reader = BufferedEventReader(
            self._event_source,
            batch_size=self._batch_size,
            capacity=self._buffer_capacity,
            poll_interval_seconds=self._poll_interval,
        )
        dispatcher = ProjectionDispatcher(self._projection_registry, clock=self._clock)
        detector = QuiescenceDetector(dispatcher, self._idle_window)

        started_at = datetime.now(timezone.utc)
        logger.info(
            "Replay %r started (idle window %.2fs, batch size %d)",
            self._pipeline_name,
            self._idle_window,
            self._batch_size,
        )
        await reader.start()
        detector.start()
        dispatch_task = asyncio.create_task(
            self._dispatch_loop(reader, dispatcher), name="replay-dispatch"
        )
        try:
            await self._await_completion(detector, dispatch_task)
        except BaseException:
            await reader.stop()
            await self._join_quietly(dispatch_task)
            raise
        await reader.stop()
        # Drains anything fetched after quiescence; dispatch errors propagate.
        await dispatch_task

        last_position = dispatcher.last_position or 0
        await self._checkpoint_store.save_position(self._pipeline_name, last_position)

        if self._stop_requested.is_set() and not detector.is_complete():
            logger.warning(
                "Replay %r stopped before quiescence after %d events",
                self._pipeline_name,
                dispatcher.dispatched_count,
            )
            raise ReplayCancelledError(
                f"Replay {self._pipeline_name!r} stopped after "
                f"{dispatcher.dispatched_count} events at position {last_position}"
            )

        result = ReplayResult(
            pipeline_name=self._pipeline_name,
            events_dispatched=dispatcher.dispatched_count,
            last_position=last_position,
            started_at=started_at,
            completed_at=datetime.now(timezone.utc),
        )
        logger.info(
            "Replay %r complete: %d events dispatched, last position %d",
            self._pipeline_name,
            result.events_dispatched,
            result.last_position,
        )
        return result

    async def _await_completion(
        self, detector: QuiescenceDetector, dispatch_task: asyncio.Task[None]
    ) -> None:
        """Poll until quiescent, stopped, or the dispatch task dies."""
        while True:
            done, _ = await asyncio.wait({dispatch_task}, timeout=self._poll_interval)
            if done:
                # Re-raises HandlerFailure / ReplayOrderError / EventStoreError.
                dispatch_task.result()
                return
            if self._stop_requested.is_set() or detector.is_complete():
                return

    async def _join_quietly(self, dispatch_task: asyncio.Task[None]) -> None:
        if dispatch_task.done():
            return
        dispatch_task.cancel()
        # The caller is already unwinding with the primary error.
        with contextlib.suppress(asyncio.CancelledError):
            await dispatch_task

    async def _dispatch_loop(
        self, reader: BufferedEventReader, dispatcher: ProjectionDispatcher
    ) -> None:
        while not self._stop_requested.is_set():
            event = await reader.next()
            if isinstance(event, EndOfStream):
                return
            await dispatcher.dispatch(event)
            if dispatcher.dispatched_count % self._progress_every == 0:
                await self._report_progress(dispatcher)

    async def _report_progress(self, dispatcher: ProjectionDispatcher) -> None:
        """Report progress to callback if provided, handling both sync and async."""
        logger.info(
            "Replay %r progress: %d events dispatched, position %s",
            self._pipeline_name,
            dispatcher.dispatched_count,
            dispatcher.last_position,
        )
        if not self._progress_callback:
            return
        result = self._progress_callback(
            dispatcher.dispatched_count, dispatcher.last_position or 0
        )
        if hasattr(result, "__await__"):
            await result
