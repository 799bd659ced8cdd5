"""Event replay engine — buffered reader, ordered dispatch, quiescence."""

from __future__ import annotations

from .checkpoint import InMemoryCheckpointStore
from .dispatcher import ProjectionDispatcher
from .handler import ProjectionHandler
from .ports import WILDCARD, ICheckpointStore, IProjectionHandler, IProjectionRegistry
from .quiescence import QuiescenceDetector, QuiescenceState
from .reader import END_OF_STREAM, BufferedEventReader, EndOfStream
from .registry import ProjectionRegistry
from .replay import ReplayPipeline, ReplayResult

__all__ = [
    "END_OF_STREAM",
    "BufferedEventReader",
    "EndOfStream",
    "ICheckpointStore",
    "IProjectionHandler",
    "IProjectionRegistry",
    "InMemoryCheckpointStore",
    "ProjectionDispatcher",
    "ProjectionHandler",
    "ProjectionRegistry",
    "QuiescenceDetector",
    "QuiescenceState",
    "ReplayPipeline",
    "ReplayResult",
    "WILDCARD",
]
