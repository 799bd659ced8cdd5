"""ProjectionDispatcher — synchronous, ordered fan-out of events to handlers."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from rebuild_core.primitives.exceptions import HandlerFailure, ReplayOrderError

if TYPE_CHECKING:
    from collections.abc import Callable

    from rebuild_core.ports.event_store import StoredEvent

    from .ports import IProjectionRegistry

logger = logging.getLogger(__name__)


class ProjectionDispatcher:
    """Invokes every handler registered for an event's type, in registration
    order, one at a time, then stamps ``last_dispatched_at``.

    A failing handler stops dispatch with :class:`HandlerFailure`; the event
    is neither skipped nor retried. Events must arrive in strictly increasing
    position order.
    """

    def __init__(
        self,
        projection_registry: IProjectionRegistry,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._projection_registry = projection_registry
        self.clock = clock
        self.last_dispatched_at: float | None = None
        self.last_position: int | None = None
        self.dispatched_count = 0
        self._in_flight = False

    @property
    def in_flight(self) -> bool:
        """True while handlers are running for an event."""
        return self._in_flight

    async def dispatch(self, event: StoredEvent) -> None:
        self._check_order(event)
        handlers = self._projection_registry.get_handlers(event.event_type)
        self._in_flight = True
        try:
            for handler in handlers:
                try:
                    await handler.handle(event)
                except Exception as e:
                    logger.error(
                        "Handler %s failed for event %s (%s) at position %s: %s",
                        getattr(handler, "name", type(handler).__name__),
                        event.event_id,
                        event.event_type,
                        event.position,
                        e,
                        exc_info=True,
                    )
                    raise HandlerFailure(event, handler, e) from e
        finally:
            self._in_flight = False

        self.last_dispatched_at = self.clock()
        self.dispatched_count += 1
        if event.position is not None:
            self.last_position = event.position

    def _check_order(self, event: StoredEvent) -> None:
        if event.position is None or self.last_position is None:
            return
        if event.position <= self.last_position:
            raise ReplayOrderError(event.position, self.last_position)
