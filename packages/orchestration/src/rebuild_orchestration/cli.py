"""``readmodel-rebuild`` — rebuild and promote the read model from the CLI.

Exit codes:
    0  rebuild promoted
    1  failed before promotion; production untouched
    2  promotion failed part-way; production read model needs reconciliation
"""

from __future__ import annotations

import argparse
import asyncio
import importlib
import logging
import sys
from typing import TYPE_CHECKING, Any

from rebuild_core.ports.schema import ISchemaMigrator
from rebuild_core.primitives.exceptions import (
    ConfigurationError,
    PromotionFailure,
    RebuildError,
)

from .config import ENV_PREFIX, RebuildConfig
from .orchestrator import RebuildOrchestrator

if TYPE_CHECKING:
    from collections.abc import Sequence

    from .orchestrator import RebuildReport

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_PARTIAL_PROMOTION = 2

_URL_ARGS = (
    ("production_event_log_url", "production event log"),
    ("rebuild_event_log_url", "isolated rebuild event log"),
    ("rebuild_read_model_url", "isolated rebuild read model"),
    ("production_read_model_url", "production read model"),
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="readmodel-rebuild",
        description=(
            "Replay a copy of the event log into an isolated read model and "
            "promote it into production table by table."
        ),
        epilog=f"Any option may also be set as a {ENV_PREFIX}* environment variable.",
    )
    for dest, label in _URL_ARGS:
        parser.add_argument(dest, nargs="?", help=f"SQLAlchemy URL of the {label}")
    parser.add_argument(
        "--handlers",
        required=True,
        metavar="MODULE:FACTORY",
        help="callable taking the rebuild read-model engine, returning a registry",
    )
    parser.add_argument(
        "--schema",
        required=True,
        metavar="MODULE:ATTRIBUTE",
        help="read-model schema migrator, or a callable returning one",
    )
    parser.add_argument("--idle-window", type=float, dest="idle_window_seconds")
    parser.add_argument("--poll-interval", type=float, dest="poll_interval_seconds")
    parser.add_argument("--fetch-batch-size", type=int)
    parser.add_argument("--buffer-capacity", type=int)
    parser.add_argument("--copy-chunk-size", type=int)
    parser.add_argument(
        "--no-verify-count",
        action="store_false",
        dest="verify_event_count",
        default=None,
        help="skip comparing dispatched events against staged events",
    )
    parser.add_argument(
        "--exclude-table",
        action="append",
        dest="excluded_tables",
        metavar="TABLE",
        help="rebuild but never promote TABLE (repeatable)",
    )
    parser.add_argument("--pipeline-name")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
    )
    return parser


def load_object(path: str) -> Any:
    """Resolve ``package.module:attribute``."""
    module_name, sep, attribute = path.partition(":")
    if not sep or not module_name or not attribute:
        raise ConfigurationError(f"Expected MODULE:ATTRIBUTE, got {path!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigurationError(f"Cannot import {module_name!r}: {e}") from e
    obj: Any = module
    for part in attribute.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError as e:
            raise ConfigurationError(f"{path!r} does not exist") from e
    return obj


def load_schema(path: str) -> ISchemaMigrator:
    schema = load_object(path)
    if not isinstance(schema, ISchemaMigrator) and callable(schema):
        schema = schema()
    if not isinstance(schema, ISchemaMigrator):
        raise ConfigurationError(f"{path!r} is not a schema migrator")
    return schema


def config_from_args(args: argparse.Namespace) -> RebuildConfig:
    fields = set(RebuildConfig.model_fields)
    overrides = {k: v for k, v in vars(args).items() if k in fields}
    return RebuildConfig.from_env(**overrides)


def _log_report(report: RebuildReport) -> None:
    for result in report.staged:
        logger.info("staged   %-30s %8d rows", result.table_name, result.rows_copied)
    if report.replay is not None:
        logger.info(
            "replayed %d events up to position %d in %.1fs",
            report.replay.events_dispatched,
            report.replay.last_position,
            report.replay.duration_seconds,
        )
    for result in report.promoted:
        logger.info(
            "promoted %-30s %8d rows (replaced %d)",
            result.table_name,
            result.rows_copied,
            result.rows_deleted,
        )


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )

    try:
        config = config_from_args(args)
        registry_factory = load_object(args.handlers)
        schema = load_schema(args.schema)
    except ConfigurationError as e:
        logger.error("%s", e)
        return EXIT_FAILED

    orchestrator = RebuildOrchestrator(config, registry_factory, schema)
    try:
        report = asyncio.run(orchestrator.run())
    except PromotionFailure:
        # Already logged at CRITICAL by the orchestrator.
        _log_report(orchestrator.report)
        return EXIT_PARTIAL_PROMOTION
    except RebuildError as e:
        failed = orchestrator.report.failed_phase
        logger.error(
            "Rebuild failed in phase %s; production was not modified: %s",
            failed.value if failed else "setup",
            e,
        )
        return EXIT_FAILED

    _log_report(report)
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
