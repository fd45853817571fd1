from __future__ import annotations

import logging
import time
from datetime import UTC, datetime
from pathlib import Path

from ..db.store import PersistenceError, Store
from ..excel.reader import SUPPORTED_EXTENSIONS, FileFormatError, read_path
from ..logging.error_log import ErrorLogBuffer, ErrorRecord
from ..models.config_models import ImportConfig
from ..models.field_schema import get_field_set
from ..models.processing_result import FileStat, ProcessingResult
from .mapping import MappingError
from .pipeline import run_import
from .progress import ProgressTracker

"""Directory run: every upload file in ``source_directory`` is imported.

Files are processed one after another; a failing file is recorded in the
error log and the run continues with the next one.
"""

__all__ = [
    "ProcessingError",
    "process_all",
    "process_file",
    "scan_upload_files",
]

logger = logging.getLogger(__name__)


class ProcessingError(Exception):
    """Fatal for the whole run (directory missing or unreadable, bad field set)."""


def scan_upload_files(directory: Path) -> list[Path]:
    """Upload files in ``directory`` (non-recursive, sorted by name).

    Office lock files (``~$...``) are ignored.
    """
    if not directory.exists():
        raise ProcessingError(f"Directory not found: {directory}")
    if not directory.is_dir():
        raise ProcessingError(f"Path is not a directory: {directory}")
    try:
        return sorted(
            p
            for p in directory.iterdir()
            if p.is_file()
            and not p.name.startswith("~$")
            and p.suffix.lower().lstrip(".") in SUPPORTED_EXTENSIONS
        )
    except OSError as e:
        raise ProcessingError(f"Error reading directory {directory}: {e}") from e


def _failed(file_path: Path, started: float, error: str, **counts: int) -> FileStat:
    return FileStat(
        file_name=file_path.name,
        status="failed",
        total_rows=counts.get("total_rows", 0),
        valid_rows=counts.get("valid_rows", 0),
        invalid_rows=counts.get("invalid_rows", 0),
        hours_records=counts.get("hours_records", 0),
        scrap_records=counts.get("scrap_records", 0),
        new_machines=counts.get("new_machines", 0),
        elapsed_seconds=time.perf_counter() - started,
        error=error,
    )


def process_file(file_path: Path, config: ImportConfig, store: Store, error_log: ErrorLogBuffer) -> FileStat:
    """Import one file; never raises for per-file problems."""
    started = time.perf_counter()
    fields = get_field_set(config.field_set)
    try:
        table = read_path(file_path)
    except FileFormatError as e:
        logger.error("%s: %s", file_path.name, e)
        error_log.append(ErrorRecord.create(file_path.name, -1, "FORMAT_ERROR", str(e)))
        return _failed(file_path, started, str(e))

    try:
        outcome = run_import(
            table,
            store,
            fields,
            config.options,
            configured_mapping=config.mapping,
            mapping_name=config.mapping_name,
            error_log=error_log,
        )
    except MappingError as e:
        for message in e.errors:
            logger.error("%s: %s", file_path.name, message)
        return _failed(file_path, started, str(e), total_rows=len(table.rows))
    except PersistenceError as e:
        partial = e.result
        logger.error("%s: %s", file_path.name, e)
        if partial is None:
            return _failed(file_path, started, str(e), total_rows=len(table.rows))
        return _failed(
            file_path,
            started,
            str(e),
            total_rows=len(table.rows),
            hours_records=partial.hours_records,
            scrap_records=partial.scrap_records,
            new_machines=partial.new_machines,
        )
    except Exception as e:
        logger.exception("%s: unexpected failure", file_path.name)
        error_log.append(ErrorRecord.create(file_path.name, -1, "PROCESSING_ERROR", str(e)))
        return _failed(file_path, started, str(e), total_rows=len(table.rows))

    summary = outcome.summary
    result = outcome.result
    if result.skipped:
        logger.info("%s: skipped %s", file_path.name, dict(sorted(result.skipped.items())))
    logger.info(
        "%s: rows=%d valid=%d invalid=%d hours_records=%d scrap_records=%d new_machines=%d",
        file_path.name,
        summary.total_rows,
        summary.valid_rows,
        summary.invalid_rows,
        result.hours_records,
        result.scrap_records,
        result.new_machines,
    )
    return FileStat(
        file_name=file_path.name,
        status="success",
        total_rows=summary.total_rows,
        valid_rows=summary.valid_rows,
        invalid_rows=summary.invalid_rows,
        hours_records=result.hours_records,
        scrap_records=result.scrap_records,
        new_machines=result.new_machines,
        elapsed_seconds=time.perf_counter() - started,
    )


def process_all(config: ImportConfig, store: Store, error_log: ErrorLogBuffer | None = None) -> ProcessingResult:
    """Import every upload file of the configured directory.

    Raises:
        ProcessingError: the directory cannot be scanned or the field set is unknown
    """
    start_time = datetime.now(UTC)
    error_log = error_log if error_log is not None else ErrorLogBuffer()
    try:
        get_field_set(config.field_set)
    except ValueError as e:
        raise ProcessingError(str(e)) from e
    file_paths = scan_upload_files(Path(config.source_directory))

    file_stats: list[FileStat] = []
    with ProgressTracker(len(file_paths)) as progress:
        for file_path in file_paths:
            progress.start_file(file_path)
            stat = process_file(file_path, config, store, error_log)
            file_stats.append(stat)
            progress.set_postfix(
                success=sum(1 for s in file_stats if s.status == "success"),
                failed=sum(1 for s in file_stats if s.status != "success"),
                rows=sum(s.total_rows for s in file_stats),
            )
            progress.finish_file(success=stat.status == "success")

    log_path = error_log.flush()
    if log_path is not None:
        logger.info("error log written: %s", log_path)

    end_time = datetime.now(UTC)
    elapsed = (end_time - start_time).total_seconds()
    total_rows = sum(s.total_rows for s in file_stats if s.status == "success")
    return ProcessingResult(
        success_files=sum(1 for s in file_stats if s.status == "success"),
        failed_files=sum(1 for s in file_stats if s.status != "success"),
        total_rows=total_rows,
        invalid_rows=sum(s.invalid_rows for s in file_stats),
        hours_records=sum(s.hours_records for s in file_stats),
        scrap_records=sum(s.scrap_records for s in file_stats),
        new_machines=sum(s.new_machines for s in file_stats),
        start_time=start_time,
        end_time=end_time,
        elapsed_seconds=elapsed,
        throughput_rows_per_sec=total_rows / elapsed if elapsed > 0 else 0.0,
        file_stats=file_stats,
    )
