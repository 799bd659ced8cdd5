"""IBackgroundWorker — one-shot lifecycle for the replay's fetch task."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class IBackgroundWorker(Protocol):
    """
    A task that runs beside the caller between ``start`` and ``stop``.

    Workers are single-use: a stopped worker is never restarted, and
    ``stop`` must be safe to call on a worker whose task already ended
    on its own (for example after a read failure).

    Implemented by: ``BufferedEventReader``.
    """

    async def start(self) -> None:
        """Spawn the task. Raises ``RuntimeError`` if already started."""
        ...

    async def stop(self) -> None:
        """Signal the task to finish and wait until it has."""
        ...
