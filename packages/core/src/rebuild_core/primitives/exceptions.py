"""Exception hierarchy for the read-model rebuild toolkit."""

from __future__ import annotations

from typing import Any


class RebuildError(Exception):
    """Root exception for the entire rebuild toolkit."""


class ConfigurationError(RebuildError):
    """Raised when rebuild settings are missing or contradictory."""


class InfrastructureError(RebuildError):
    """Base class for all infrastructure-related errors."""


class PersistenceError(InfrastructureError):
    """Base class for all persistence-related errors."""


class EventStoreError(InfrastructureError):
    """Raised when reading from the event log fails."""


class CheckpointError(PersistenceError):
    """Raised when checkpoint read/write fails."""


class StaleCheckpointError(CheckpointError):
    """A replay found an existing checkpoint and refused to resume from it.

    A rebuild must replay the whole log; resuming would skip events.
    """

    def __init__(self, pipeline_name: str, position: int) -> None:
        self.pipeline_name = pipeline_name
        self.position = position
        super().__init__(
            f"Checkpoint for pipeline {pipeline_name!r} already at position "
            f"{position}; clear it before starting a full replay"
        )


class CopyFailure(PersistenceError):
    """A table copy failed and the target transaction was rolled back.

    ``rolled_back`` is False only on the :class:`RollbackFailure` subclass.
    """

    rolled_back: bool = True

    def __init__(self, table_name: str, reason: str) -> None:
        self.table_name = table_name
        self.reason = reason
        super().__init__(f"Copy of table {table_name!r} failed: {reason}")


class RollbackFailure(CopyFailure):
    """The copy failed and the rollback attempt failed too.

    Both errors are kept: ``original_error`` caused the copy to abort,
    ``rollback_error`` is what the rollback raised. The target table state is
    whatever the store left behind when the connection went away.
    """

    rolled_back = False

    def __init__(
        self,
        table_name: str,
        original_error: BaseException,
        rollback_error: BaseException,
    ) -> None:
        self.original_error = original_error
        self.rollback_error = rollback_error
        super().__init__(
            table_name,
            f"{original_error!r}; rollback also failed: {rollback_error!r}",
        )


class SchemaPreparationFailure(RebuildError):
    """The rebuild read model was not ready before replay started."""


class HandlerError(RebuildError):
    """Base class for projection handler errors (registration, execution)."""


class HandlerRegistrationError(HandlerError):
    """Raised when a projection handler cannot be registered."""


class HandlerFailure(HandlerError):
    """A projection handler raised while handling an event.

    The dispatch loop stops on this error; the event is never skipped.
    """

    def __init__(self, event: Any, handler: Any, error: BaseException) -> None:
        self.event = event
        self.handler = handler
        self.error = error
        handler_name = getattr(handler, "name", None) or type(handler).__name__
        super().__init__(
            f"Handler {handler_name} failed on {getattr(event, 'event_type', '?')} "
            f"at position {getattr(event, 'position', None)}: {error}"
        )


class ReplayError(RebuildError):
    """Base class for replay pipeline errors."""


class ReplayOrderError(ReplayError):
    """An event arrived out of global order (duplicate or rewind)."""

    def __init__(self, position: int | None, last_position: int) -> None:
        self.position = position
        self.last_position = last_position
        super().__init__(
            f"Event at position {position} received after position {last_position}"
        )


class ReplayVerificationError(ReplayError):
    """The replay dispatched a different number of events than were staged."""

    def __init__(self, expected: int, dispatched: int) -> None:
        self.expected = expected
        self.dispatched = dispatched
        super().__init__(
            f"Replay dispatched {dispatched} events but {expected} were staged"
        )


class ReplayCancelledError(ReplayError):
    """The replay was stopped explicitly before quiescence was reached."""


class PromotionFailure(RebuildError):
    """Promotion into production failed part-way.

    Each table is promoted in its own transaction, so the tables in
    ``promoted`` already hold rebuilt data while ``pending`` still hold the
    previous generation. Manual reconciliation is required.
    """

    def __init__(
        self,
        failed_table: str,
        promoted: list[str],
        pending: list[str],
        error: BaseException,
    ) -> None:
        self.failed_table = failed_table
        self.promoted = list(promoted)
        self.pending = list(pending)
        self.error = error
        super().__init__(
            f"Promotion failed on table {failed_table!r} after promoting "
            f"{len(self.promoted)} table(s); production read model is MIXED "
            f"(promoted={self.promoted}, not promoted={self.pending}): {error}"
        )
