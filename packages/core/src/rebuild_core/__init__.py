"""rebuild-core — Foundation package for the read-model rebuild toolkit.

Zero infrastructure dependencies: the event record, the ports the engines
talk to, the exception hierarchy and an in-memory event store for tests.
"""

from __future__ import annotations

# ── Adapters ────────────────────────────────────────────────────
from .adapters.memory import InMemoryEventStore

# ── Ports ────────────────────────────────────────────────────────
from .ports import (
    IBackgroundWorker,
    IEventSource,
    ISchemaMigrator,
    StoredEvent,
)

# ── Primitives ───────────────────────────────────────────────────
from .primitives import (
    CheckpointError,
    ConfigurationError,
    CopyFailure,
    EventStoreError,
    HandlerError,
    HandlerFailure,
    HandlerRegistrationError,
    InfrastructureError,
    PersistenceError,
    PromotionFailure,
    RebuildError,
    ReplayCancelledError,
    ReplayError,
    ReplayOrderError,
    ReplayVerificationError,
    RollbackFailure,
    SchemaPreparationFailure,
    StaleCheckpointError,
)

__all__ = [
    "CheckpointError",
    "ConfigurationError",
    "CopyFailure",
    "EventStoreError",
    "HandlerError",
    "HandlerFailure",
    "HandlerRegistrationError",
    "IBackgroundWorker",
    "IEventSource",
    "ISchemaMigrator",
    "InMemoryEventStore",
    "InfrastructureError",
    "PersistenceError",
    "PromotionFailure",
    "RebuildError",
    "ReplayCancelledError",
    "ReplayError",
    "ReplayOrderError",
    "ReplayVerificationError",
    "RollbackFailure",
    "SchemaPreparationFailure",
    "StaleCheckpointError",
    "StoredEvent",
]
