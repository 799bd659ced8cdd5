"""QuiescenceDetector — declares a replay complete after an idle window.

The event log carries no end-of-stream marker, so "done" means no event has
been dispatched for ``idle_window_seconds``. The idle window is measured from
:meth:`QuiescenceDetector.start` until the first dispatch, then from the most
recent dispatch. A dispatch that is still running never counts as idle.
"""

from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

    from .dispatcher import ProjectionDispatcher

logger = logging.getLogger(__name__)


class QuiescenceState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETE = "complete"


class QuiescenceDetector:
    """Idle -> Running -> Complete. Complete is final."""

    def __init__(
        self,
        dispatcher: ProjectionDispatcher,
        idle_window_seconds: float,
        *,
        clock: Callable[[], float] | None = None,
    ) -> None:
        if idle_window_seconds <= 0:
            raise ValueError("idle_window_seconds must be positive")
        self._dispatcher = dispatcher
        self._idle_window = idle_window_seconds
        self._clock = clock or dispatcher.clock
        self._state = QuiescenceState.IDLE
        self._started_at: float | None = None

    @property
    def state(self) -> QuiescenceState:
        return self._state

    @property
    def idle_window_seconds(self) -> float:
        return self._idle_window

    def start(self) -> None:
        if self._state is not QuiescenceState.IDLE:
            raise RuntimeError(f"QuiescenceDetector already {self._state.value}")
        self._started_at = self._clock()
        self._state = QuiescenceState.RUNNING

    def idle_for(self) -> float:
        """Seconds since the last dispatch (or since start)."""
        if self._started_at is None:
            return 0.0
        last = self._dispatcher.last_dispatched_at
        reference = self._started_at if last is None else max(last, self._started_at)
        return self._clock() - reference

    def is_complete(self) -> bool:
        if self._state is QuiescenceState.COMPLETE:
            return True
        if self._state is QuiescenceState.IDLE or self._dispatcher.in_flight:
            return False
        idle = self.idle_for()
        if idle < self._idle_window:
            return False
        self._state = QuiescenceState.COMPLETE
        logger.info(
            "Replay quiescent: no dispatch for %.2fs (window %.2fs), "
            "%d events dispatched",
            idle,
            self._idle_window,
            self._dispatcher.dispatched_count,
        )
        return True
