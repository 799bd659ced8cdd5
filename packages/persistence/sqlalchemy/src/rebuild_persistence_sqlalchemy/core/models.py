"""
Declarative models for the event log: the four tables a rebuild stages.

``events.position`` is the global delivery order. It is copied verbatim when
the log is staged into a rebuild store, so positions in the copy match the
production log.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import BigInteger, Integer, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .types import JSONType, UTCDateTime

EVENT_SOURCES_TABLE = "event_sources"
EVENTS_TABLE = "events"
SNAPSHOTS_TABLE = "snapshots"
PIPELINE_STATE_TABLE = "pipeline_state"

# Staged into the rebuild store. The checkpoint table is deliberately absent.
STAGED_TABLES: tuple[str, ...] = (EVENT_SOURCES_TABLE, EVENTS_TABLE, SNAPSHOTS_TABLE)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Declarative base for the event-log schema."""


class EventSourceModel(Base):
    """One aggregate stream. ``version`` is its highest sequence number."""

    __tablename__ = EVENT_SOURCES_TABLE

    source_id: Mapped[str] = mapped_column(String, primary_key=True)
    source_type: Mapped[str] = mapped_column(String, default="")
    version: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=_utcnow)


class EventModel(Base):
    """Append-only event record, totally ordered by ``position``."""

    __tablename__ = EVENTS_TABLE

    position: Mapped[int] = mapped_column(
        Integer().with_variant(BigInteger, "postgresql"),
        primary_key=True,
        autoincrement=True,
    )
    event_id: Mapped[str] = mapped_column(String, unique=True)
    source_id: Mapped[str] = mapped_column(String, index=True)
    sequence_number: Mapped[int] = mapped_column(Integer)
    event_type: Mapped[str] = mapped_column(String, index=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSONType)
    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime, index=True)

    __table_args__ = (
        UniqueConstraint("source_id", "sequence_number", name="uq_events_source_seq"),
    )


class SnapshotModel(Base):
    """Point-in-time state of an event source. Never required for correctness."""

    __tablename__ = SNAPSHOTS_TABLE

    source_id: Mapped[str] = mapped_column(String, primary_key=True)
    version: Mapped[int] = mapped_column(Integer, primary_key=True)
    state: Mapped[dict[str, Any]] = mapped_column(JSONType)
    taken_at: Mapped[datetime] = mapped_column(UTCDateTime, default=_utcnow)


class PipelineStateModel(Base):
    """Replay checkpoint: last dispatched position per pipeline."""

    __tablename__ = PIPELINE_STATE_TABLE

    pipeline_name: Mapped[str] = mapped_column(String, primary_key=True)
    position: Mapped[int] = mapped_column(
        Integer().with_variant(BigInteger, "postgresql")
    )
