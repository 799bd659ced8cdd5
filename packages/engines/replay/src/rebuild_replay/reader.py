"""BufferedEventReader — bounded look-ahead over an ordered event source.

A background fetch task keeps a FIFO queue topped up with pages from the
event source while the dispatch side drains it one event at a time, so the
source's per-call latency stays off the dispatch path. The queue is bounded:
when dispatch falls behind, the fetch task blocks instead of buffering the
whole log in memory.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING, Final

from rebuild_core.ports.background_worker import IBackgroundWorker
from rebuild_core.primitives.exceptions import EventStoreError

if TYPE_CHECKING:
    from rebuild_core.ports.event_store import IEventSource, StoredEvent

logger = logging.getLogger(__name__)


class EndOfStream:
    """Sentinel returned by :meth:`BufferedEventReader.next` once the reader
    is stopped and its buffer is drained."""

    _instance: EndOfStream | None = None

    def __new__(cls) -> EndOfStream:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "END_OF_STREAM"


END_OF_STREAM: Final = EndOfStream()


class BufferedEventReader(IBackgroundWorker):
    """Wraps an ``IEventSource`` with a bounded, ordered read-ahead buffer.

    The fetch task requests pages of up to ``batch_size`` events whenever
    the buffer holds fewer than ``batch_size`` events. An empty page means
    the source is caught up for now; the task waits ``poll_interval_seconds``
    and asks again, since more events may still arrive. Only :meth:`stop`
    ends the stream.
    """

    def __init__(
        self,
        event_source: IEventSource,
        *,
        batch_size: int = 500,
        capacity: int | None = None,
        poll_interval_seconds: float = 0.5,
        start_position: int = 0,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        capacity = capacity if capacity is not None else batch_size * 2
        if capacity < batch_size:
            raise ValueError("capacity must be at least batch_size")
        self._source = event_source
        self._batch_size = batch_size
        self._poll_interval = poll_interval_seconds
        self._position = start_position
        self._queue: asyncio.Queue[StoredEvent] = asyncio.Queue(maxsize=capacity)
        self._below_threshold = asyncio.Event()
        self._closed = asyncio.Event()
        self._error: BaseException | None = None
        self._task: asyncio.Task[None] | None = None
        self._fetched = 0

    @property
    def position(self) -> int:
        """Position of the last event pulled from the source."""
        return self._position

    @property
    def fetched_count(self) -> int:
        return self._fetched

    @property
    def buffered(self) -> int:
        return self._queue.qsize()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    async def start(self) -> None:
        if self._task is not None:
            raise RuntimeError("BufferedEventReader already started")
        if self._closed.is_set():
            raise RuntimeError("BufferedEventReader cannot be restarted")
        self._task = asyncio.create_task(self._run(), name="buffered-event-reader")

    async def stop(self) -> None:
        """Stop fetching. Buffered events can still be read, then
        :meth:`next` returns ``END_OF_STREAM``."""
        self._closed.set()
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def next(self) -> StoredEvent | EndOfStream:
        """Return the next event in source order.

        Never suspends while the buffer is non-empty. With an empty buffer it
        suspends until the fetch task delivers an event or the reader is
        stopped. A fetch failure is raised here once the buffer is drained.
        """
        while True:
            if not self._queue.empty():
                return self._take()
            if self._closed.is_set():
                if self._error is not None:
                    raise EventStoreError(
                        f"Reading events after position {self._position} failed: "
                        f"{self._error}"
                    ) from self._error
                return END_OF_STREAM

            get_task = asyncio.ensure_future(self._queue.get())
            closed_task = asyncio.ensure_future(self._closed.wait())
            done, pending = await asyncio.wait(
                {get_task, closed_task}, return_when=asyncio.FIRST_COMPLETED
            )
            for task in pending:
                task.cancel()
            if get_task in done:
                self._signal_if_below_threshold()
                return get_task.result()

    def _take(self) -> StoredEvent:
        event = self._queue.get_nowait()
        self._signal_if_below_threshold()
        return event

    def _signal_if_below_threshold(self) -> None:
        if self._queue.qsize() < self._batch_size:
            self._below_threshold.set()

    async def _run(self) -> None:
        """Fetch loop: top the buffer up from the source until stopped."""
        try:
            while not self._closed.is_set():
                if self._queue.qsize() >= self._batch_size:
                    self._below_threshold.clear()
                    await self._below_threshold.wait()
                    continue

                batch = await self._source.get_events_after(
                    self._position, self._batch_size
                )
                if not batch:
                    await self._wait_for_more()
                    continue

                logger.debug(
                    "Fetched %d events after position %d", len(batch), self._position
                )
                for event in batch:
                    if event.position is None:
                        raise EventStoreError(
                            f"Event {event.event_id} from source has no position"
                        )
                    await self._queue.put(event)
                    self._position = event.position
                    self._fetched += 1
        except asyncio.CancelledError:
            raise
        except Exception as e:  # noqa: BLE001
            logger.error(
                "Event fetch failed after position %d: %s",
                self._position,
                e,
                exc_info=True,
            )
            self._error = e
            self._closed.set()

    async def _wait_for_more(self) -> None:
        """Caught up: wait one poll interval, or less if stopped meanwhile."""
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._closed.wait(), timeout=self._poll_interval)
