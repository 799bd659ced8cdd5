"""Primitives: the exception hierarchy."""

from __future__ import annotations

from .exceptions import (
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
]
