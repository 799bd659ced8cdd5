"""SQLAlchemy persistence for read-model rebuilds.

Event-log schema and event store, replay checkpoint store, the
transactional table copy engine and schema preparation helpers.
"""

from __future__ import annotations

from .copy import CopyResult, TableCopyEngine, count_rows
from .core.checkpoint import SQLAlchemyCheckpointStore
from .core.event_store import SQLAlchemyEventStore
from .core.models import (
    EVENT_SOURCES_TABLE,
    EVENTS_TABLE,
    PIPELINE_STATE_TABLE,
    SNAPSHOTS_TABLE,
    STAGED_TABLES,
    Base,
    EventModel,
    EventSourceModel,
    PipelineStateModel,
    SnapshotModel,
)
from .engine import create_store_engine
from .maintenance import clear_tables, missing_tables
from .schema import EVENT_LOG_SCHEMA_VERSION, MetadataSchemaMigrator, event_log_schema

__all__ = [
    # Event log
    "Base",
    "EventModel",
    "EventSourceModel",
    "SnapshotModel",
    "PipelineStateModel",
    "EVENT_SOURCES_TABLE",
    "EVENTS_TABLE",
    "SNAPSHOTS_TABLE",
    "PIPELINE_STATE_TABLE",
    "STAGED_TABLES",
    "SQLAlchemyEventStore",
    "SQLAlchemyCheckpointStore",
    # Copy
    "CopyResult",
    "TableCopyEngine",
    "count_rows",
    "clear_tables",
    "missing_tables",
    # Schema
    "EVENT_LOG_SCHEMA_VERSION",
    "MetadataSchemaMigrator",
    "event_log_schema",
    "create_store_engine",
]
