"""RebuildConfig — every setting a rebuild run needs, passed explicitly.

Values come from keyword arguments first and ``READMODEL_REBUILD_*``
environment variables second. The four store URLs are required; the rebuild
URLs must point somewhere other than production.
"""

from __future__ import annotations

from typing import Any

from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from rebuild_core.primitives.exceptions import ConfigurationError

ENV_PREFIX = "READMODEL_REBUILD_"


class RebuildConfig(BaseSettings):
    """Immutable settings for one rebuild run."""

    model_config = SettingsConfigDict(frozen=True, env_prefix=ENV_PREFIX)

    production_event_log_url: str = Field(
        ..., description="Authoritative event log, read during staging"
    )
    rebuild_event_log_url: str = Field(
        ..., description="Isolated copy of the event log the replay reads"
    )
    rebuild_read_model_url: str = Field(
        ..., description="Isolated read model the handlers write into"
    )
    production_read_model_url: str = Field(
        ..., description="Live read model, written only during promotion"
    )

    idle_window_seconds: float = Field(default=10.0, gt=0)
    poll_interval_seconds: float = Field(default=0.5, gt=0)
    fetch_batch_size: int = Field(default=500, gt=0)
    buffer_capacity: int = Field(default=2000, gt=0)
    copy_chunk_size: int = Field(default=1000, gt=0)
    verify_event_count: bool = True
    excluded_tables: frozenset[str] = Field(
        default_factory=frozenset,
        description="Read-model tables that are rebuilt but never promoted",
    )
    pipeline_name: str = Field(default="rebuild", min_length=1)

    @model_validator(mode="after")
    def _check_consistency(self) -> RebuildConfig:
        if self.poll_interval_seconds > self.idle_window_seconds:
            raise ValueError(
                "poll_interval_seconds must not exceed idle_window_seconds"
            )
        if self.buffer_capacity < self.fetch_batch_size:
            raise ValueError("buffer_capacity must be at least fetch_batch_size")
        production = {self.production_event_log_url, self.production_read_model_url}
        for name in ("rebuild_event_log_url", "rebuild_read_model_url"):
            if getattr(self, name) in production:
                raise ValueError(f"{name} must not point at a production store")
        return self

    @classmethod
    def from_env(cls, prefix: str = ENV_PREFIX, **overrides: Any) -> RebuildConfig:
        """Build a config from *overrides* with environment fallback.

        ``None`` overrides are ignored so callers can pass optional CLI
        flags straight through.
        """
        values = {k: v for k, v in overrides.items() if v is not None}
        try:
            return cls(_env_prefix=prefix, **values)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid rebuild configuration: {e}") from e
