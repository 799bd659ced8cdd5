"""Tests for RebuildConfig."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from rebuild_core.primitives.exceptions import ConfigurationError
from rebuild_orchestration import RebuildConfig

URLS = {
    "production_event_log_url": "sqlite+aiosqlite:///prod_events.db",
    "rebuild_event_log_url": "sqlite+aiosqlite:///rebuild_events.db",
    "rebuild_read_model_url": "sqlite+aiosqlite:///rebuild_rm.db",
    "production_read_model_url": "sqlite+aiosqlite:///prod_rm.db",
}


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (*URLS, "idle_window_seconds", "excluded_tables"):
        monkeypatch.delenv(f"READMODEL_REBUILD_{name.upper()}", raising=False)


def test_defaults():
    config = RebuildConfig(**URLS)

    assert config.idle_window_seconds == 10.0
    assert config.poll_interval_seconds == 0.5
    assert config.fetch_batch_size == 500
    assert config.buffer_capacity == 2000
    assert config.copy_chunk_size == 1000
    assert config.verify_event_count is True
    assert config.excluded_tables == frozenset()
    assert config.pipeline_name == "rebuild"


def test_is_frozen():
    config = RebuildConfig(**URLS)
    with pytest.raises(ValidationError):
        config.idle_window_seconds = 1.0


def test_poll_interval_cannot_exceed_idle_window():
    with pytest.raises(ValidationError, match="poll_interval_seconds"):
        RebuildConfig(**URLS, idle_window_seconds=1.0, poll_interval_seconds=2.0)


def test_buffer_must_hold_a_fetch_batch():
    with pytest.raises(ValidationError, match="buffer_capacity"):
        RebuildConfig(**URLS, fetch_batch_size=100, buffer_capacity=50)


def test_idle_window_must_be_positive():
    with pytest.raises(ValidationError):
        RebuildConfig(**URLS, idle_window_seconds=0)


@pytest.mark.parametrize(
    ("field", "value"),
    [
        ("rebuild_event_log_url", URLS["production_event_log_url"]),
        ("rebuild_read_model_url", URLS["production_read_model_url"]),
        ("rebuild_read_model_url", URLS["production_event_log_url"]),
    ],
)
def test_rebuild_stores_must_be_isolated(field, value):
    with pytest.raises(ValidationError, match="production store"):
        RebuildConfig(**{**URLS, field: value})


def test_from_env_reads_prefixed_variables(monkeypatch):
    for name, url in URLS.items():
        monkeypatch.setenv(f"READMODEL_REBUILD_{name.upper()}", url)
    monkeypatch.setenv("READMODEL_REBUILD_IDLE_WINDOW_SECONDS", "2.5")
    monkeypatch.setenv("READMODEL_REBUILD_EXCLUDED_TABLES", '["audit"]')

    config = RebuildConfig.from_env()

    assert config.production_event_log_url == URLS["production_event_log_url"]
    assert config.idle_window_seconds == 2.5
    assert config.excluded_tables == frozenset({"audit"})


def test_from_env_overrides_win_and_none_is_ignored(monkeypatch):
    for name, url in URLS.items():
        monkeypatch.setenv(f"READMODEL_REBUILD_{name.upper()}", url)
    monkeypatch.setenv("READMODEL_REBUILD_IDLE_WINDOW_SECONDS", "2.5")

    config = RebuildConfig.from_env(idle_window_seconds=4.0, fetch_batch_size=None)

    assert config.idle_window_seconds == 4.0
    assert config.fetch_batch_size == 500


def test_from_env_custom_prefix(monkeypatch):
    for name, url in URLS.items():
        monkeypatch.setenv(f"OPS_{name.upper()}", url)

    config = RebuildConfig.from_env(prefix="OPS_")

    assert config.rebuild_read_model_url == URLS["rebuild_read_model_url"]


def test_from_env_missing_urls_raise_configuration_error():
    with pytest.raises(ConfigurationError, match="production_event_log_url"):
        RebuildConfig.from_env()
