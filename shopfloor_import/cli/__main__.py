from __future__ import annotations

import argparse
import dataclasses
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from shopfloor_import.config.loader import DEFAULT_CONFIG_PATH, ConfigError, load_config
from shopfloor_import.db.memory import MemoryStore
from shopfloor_import.db.store import PersistenceError, PostgresStore, Store, connect
from shopfloor_import.excel.reader import FileFormatError, read_path
from shopfloor_import.logging.init import log_summary, setup_logging
from shopfloor_import.models.config_models import ImportConfig, RowFilter
from shopfloor_import.models.field_schema import get_field_set
from shopfloor_import.services.mapping import MappingError
from shopfloor_import.services.orchestrator import ProcessingError, process_all, scan_upload_files
from shopfloor_import.services.pipeline import backfill, resolve_mapping
from shopfloor_import.services.summary import render_summary_line

"""CLI entrypoint.

Flow:
- load .env (overrides the process environment) and the YAML config
- open the PostgreSQL store, or an in-memory store for --dry-run or when the
  database cannot be reached
- import every upload file of ``source_directory`` and print the SUMMARY line

Exit codes: 0 all files imported, 2 at least one file failed, 1 fatal
(config, directory, database bootstrap).
"""

EXIT_SUCCESS_ALL = 0
EXIT_FATAL = 1
EXIT_PARTIAL_FAILURE = 2


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env with python-dotenv; its values win over the environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="shopfloor-import",
        description="Import shop-floor CSV/XLSX exports into machine hours and scrap tables",
    )
    p.add_argument("--config", type=Path, default=DEFAULT_CONFIG_PATH, help="YAML config file")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument(
        "--inspect-data",
        action="store_true",
        help="Print headers, preview rows and the detected mapping per file, then exit",
    )
    p.add_argument("--dry-run", action="store_true", help="Run against an in-memory store")
    p.add_argument(
        "--include-invalid",
        action="store_true",
        help="Aggregate flagged rows too (row_filter=all)",
    )
    p.add_argument(
        "--backfill",
        action="store_true",
        help="Re-aggregate archived rows with the latest saved mapping instead of importing files",
    )
    p.add_argument("--init-db", action="store_true", help="Create the tables, then exit")
    return p.parse_args(argv)


def _inspect_data(cfg: ImportConfig) -> int:
    try:
        files = scan_upload_files(Path(cfg.source_directory))
    except ProcessingError as e:
        print(f"inspect: {e}")
        return EXIT_FATAL
    if not files:
        print("inspect: no upload files")
        return EXIT_SUCCESS_ALL
    fields = get_field_set(cfg.field_set)
    for f in files:
        print(f"FILE: {f.name}")
        try:
            table = read_path(f)
        except FileFormatError as e:
            print(f"  read_error: {e}")
            continue
        columns = ", ".join(f"{letter}={header!r}" for letter, header in zip(table.column_letters, table.headers))
        print(f"  columns: {columns}")
        for row in table.preview_rows:
            print("  row:", [v.isoformat() if hasattr(v, "isoformat") else v for v in row])
        mapping = resolve_mapping(table, fields, cfg.mapping)
        print(f"  mapping: {mapping.to_names(list(table.headers))}")
    return EXIT_SUCCESS_ALL


def _run(cfg: ImportConfig, store: Store, args: argparse.Namespace, logger: logging.Logger) -> int:
    if args.backfill:
        try:
            result = backfill(store, cfg.options)
        except MappingError as e:
            logger.error(f"backfill: {e}")
            return EXIT_FATAL
        except PersistenceError as e:
            logger.error(f"backfill: {e}")
            return EXIT_PARTIAL_FAILURE
        log_summary(f"backfill rows={result.rows_processed} hours_records={result.hours_records}")
        return EXIT_SUCCESS_ALL

    try:
        result = process_all(cfg, store)
    except ProcessingError as e:
        logger.error(f"processing: {e}")
        return EXIT_FATAL

    total_files = result.success_files + result.failed_files
    # log_summary adds the SUMMARY label itself
    log_summary(render_summary_line(total_files, result).removeprefix("SUMMARY "))
    if result.failed_files > 0:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # None only: an explicit [] must not pick up the test runner's argv
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
        cfg = load_config(args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL
    if args.include_invalid:
        cfg = dataclasses.replace(cfg, options=dataclasses.replace(cfg.options, row_filter=RowFilter.ALL))

    if args.inspect_data:
        return _inspect_data(cfg)

    if args.init_db:
        try:
            conn = connect(cfg.database, cfg.timeouts)
            try:
                with conn.cursor() as cur:
                    PostgresStore(cur, cfg.user_id).create_schema()
            finally:
                conn.close()
        except Exception as e:
            logger.error(f"init-db: {e}")
            return EXIT_FATAL
        logger.info("schema created")
        return EXIT_SUCCESS_ALL

    if not args.backfill:
        directory = Path(cfg.source_directory)
        if not directory.exists():
            logger.error(f"directory not found: {directory}")
            return EXIT_FATAL
        logger.info(f"Processing files from: {directory}")

    if args.dry_run or os.getenv("DISABLE_DB_CONNECT") == "1":
        logger.info("mode=dry-run (in-memory store)")
        return _run(cfg, MemoryStore(cfg.user_id), args, logger)

    # connection settings: DATABASE_URL / PGDSN, then PG* (both may come from .env), then config
    try:
        conn = connect(cfg.database, cfg.timeouts)
    except Exception as db_e:
        logger.info(f"DB connection failed -> in-memory store: {db_e}")
        return _run(cfg, MemoryStore(cfg.user_id), args, logger)
    try:
        logger.info("mode=live")
        with conn.cursor() as cur:
            return _run(cfg, PostgresStore(cur, cfg.user_id), args, logger)
    finally:
        conn.close()


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
