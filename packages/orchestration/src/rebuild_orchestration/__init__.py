"""Wiring for read-model rebuilds: configuration, orchestration and CLI."""

from __future__ import annotations

from .config import RebuildConfig
from .orchestrator import RebuildOrchestrator, RebuildPhase, RebuildReport

__all__ = [
    "RebuildConfig",
    "RebuildOrchestrator",
    "RebuildPhase",
    "RebuildReport",
]
