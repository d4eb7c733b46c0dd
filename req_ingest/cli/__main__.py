from __future__ import annotations

import argparse
import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import psycopg2
import yaml
from dotenv import load_dotenv

from req_ingest.config.loader import DEFAULT_CONFIG_PATH, ConfigError, IngestConfig, default_config, load_config
from req_ingest.db.postgres import PostgresRequirementStore, connect
from req_ingest.db.store import InMemoryRequirementStore, RequirementStore
from req_ingest.logging.error_log import ErrorLogBuffer
from req_ingest.logging.init import log_summary, setup_logging
from req_ingest.models.field_catalog import SKIP, Lookups
from req_ingest.services.batch_commit import CommitBatchError
from req_ingest.services.progress import ProgressTracker
from req_ingest.services.summary import SUMMARY_PREFIX, render_commit_summary, render_validation_summary
from req_ingest.services.wizard import ImportWizard, WizardStep, WizardTransitionError
from req_ingest.sources.reader import SourceDecodeError

"""CLI entrypoint: import a spreadsheet or CSV of requirements.

Flow: load .env and config → decode source → pick sheet → infer mapping
(+ --map overrides) → validate → commit in batches → SUMMARY lines.

Exit codes: 0 success, 2 partial (row errors or per-batch errors),
1 fatal (config, decode, mapping or commit failure).
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Spreadsheet/CSV -> requirements bulk importer")
    p.add_argument("source", help="Path to a .csv, .xlsx or .xls file")
    p.add_argument("--container", help="Evaluation project id the requirements belong to")
    p.add_argument("--sheet", help="Sheet to import (default: first sheet)")
    p.add_argument(
        "--map",
        action="append",
        default=[],
        metavar="COL=FIELD",
        help="Override the inferred mapping; COL is a 1-based column number or header text",
    )
    p.add_argument("--no-skip-header", action="store_true", help="Treat the first row as data")
    p.add_argument("--lookups", help="YAML/JSON file with categories and stakeholder_areas")
    p.add_argument("--config", help=f"Config file (default: {DEFAULT_CONFIG_PATH})")
    p.add_argument("--dry-run", action="store_true", help="Validate only; do not write")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    return p.parse_args(argv)


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env with python-dotenv; its values win over the process environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _load_cli_config(args: argparse.Namespace) -> IngestConfig:
    if args.config:
        return load_config(Path(args.config))
    if DEFAULT_CONFIG_PATH.exists():
        return load_config(DEFAULT_CONFIG_PATH)
    return default_config()


def _load_lookups(path: str | None) -> Lookups:
    if not path:
        return Lookups()
    try:
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"lookups: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"lookups root must be a mapping: {path}")
    try:
        return Lookups.from_dicts(data.get("categories"), data.get("stakeholder_areas"))
    except (KeyError, TypeError) as e:
        raise ConfigError(f"lookups entries need id and name: {e}") from e


def _resolve_column(token: str, headers: list[Any]) -> int:
    if token.isdigit():
        column = int(token) - 1
        if column < 0:
            raise ValueError(f"column numbers start at 1: {token}")
        return column
    wanted = token.strip().lower()
    for index, header in enumerate(headers):
        if header is not None and str(header).strip().lower() == wanted:
            return index
    raise ValueError(f"no column with header {token!r}")


def _apply_map_overrides(wizard: ImportWizard, overrides: list[str]) -> None:
    for item in overrides:
        column_spec, sep, field = item.partition("=")
        if not sep or not column_spec or not field:
            raise ValueError(f"--map expects COL=FIELD: {item!r}")
        column = _resolve_column(column_spec, wizard.headers)
        if field.strip() == SKIP:
            wizard.clear_column(column)
        else:
            wizard.assign_column(column, field.strip())


@contextmanager
def _open_store(cfg: IngestConfig, logger: logging.Logger) -> Iterator[tuple[RequirementStore, str]]:
    """Yield (store, mode); falls back to the in-memory store without a database.

    DISABLE_DB_CONNECT=1 forces mock mode.
    """
    if os.getenv("DISABLE_DB_CONNECT") == "1":
        logger.debug("DB connect disabled via DISABLE_DB_CONNECT=1 -> mock mode")
        yield InMemoryRequirementStore(), "mock"
        return

    try:
        conn = connect(cfg.database.resolve_dsn())
    except psycopg2.Error as e:
        if os.getenv("SUPPRESS_DB_WARNING") == "1":
            logger.debug(f"DB connection failed (suppressed warn) -> fallback to mock mode: {e}")
        else:
            logger.info(f"DB connection failed -> fallback to mock mode: {e}")
        yield InMemoryRequirementStore(), "mock"
        return

    try:
        yield PostgresRequirementStore(conn, table=cfg.table), "live"
    finally:
        conn.close()


def _flush_errors(error_log: ErrorLogBuffer, logger: logging.Logger) -> None:
    path = error_log.flush()
    if path is not None:
        logger.info(f"error log written: {path}")


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # argv=[] must not fall back to sys.argv (pytest flags would leak in)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)

    if args.debug:
        for h in logger.handlers:
            h.setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
        logger.debug("debug mode enabled")

    try:
        cfg = _load_cli_config(args)
        lookups = _load_lookups(args.lookups)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    error_log = ErrorLogBuffer(Path(cfg.logs_dir))
    wizard = ImportWizard(lookups, batch_size=cfg.batch_size, error_log=error_log)
    source = Path(args.source)

    try:
        wizard.load_file(source)
        if wizard.step == WizardStep.SHEET_SELECTION:
            sheet = args.sheet or next(iter(wizard.sheets))
            wizard.select_sheet(sheet)
        elif args.sheet and args.sheet != wizard.selected_sheet:
            raise WizardTransitionError(f"unknown sheet: {args.sheet!r}")
        _apply_map_overrides(wizard, args.map)
        wizard.set_skip_header(not args.no_skip_header)
        validation = wizard.validate()
    except SourceDecodeError as e:
        logger.error(f"source: {e}")
        _flush_errors(error_log, logger)
        return EXIT_FATAL
    except (WizardTransitionError, ValueError) as e:
        logger.error(f"mapping: {e}")
        return EXIT_FATAL

    logger.info(f"source={source.name} sheet={wizard.selected_sheet} mapping={wizard.mapping.as_dict()}")
    for warning in validation.warnings:
        logger.debug(f"row {warning.row_number}: {'; '.join(warning.messages)}")
    log_summary(
        render_validation_summary(source.name, wizard.selected_sheet or "", validation)[len(SUMMARY_PREFIX):]
    )
    partial = validation.error_count > 0

    if args.dry_run or not wizard.can_commit:
        if not wizard.can_commit:
            logger.info("nothing to import: no valid records")
        _flush_errors(error_log, logger)
        return EXIT_PARTIAL_FAILURE if partial else EXIT_SUCCESS_ALL

    if not args.container:
        logger.error("--container is required to import")
        return EXIT_FATAL

    with _open_store(cfg, logger) as (store, db_mode):
        with ProgressTracker(validation.valid_count) as tracker:
            try:
                result = wizard.commit(store, args.container, progress_callback=tracker)
            except CommitBatchError as e:
                logger.error(f"commit: {e}")
                log_summary(render_commit_summary(e.partial, mode=db_mode)[len(SUMMARY_PREFIX):])
                _flush_errors(error_log, logger)
                return EXIT_FATAL

    logger.info(f"mode={db_mode} created={result.created}")
    for err in result.errors:
        logger.warning(f"bulk create: {err}")
    log_summary(render_commit_summary(result, mode=db_mode)[len(SUMMARY_PREFIX):])
    _flush_errors(error_log, logger)

    if partial or result.errors:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
