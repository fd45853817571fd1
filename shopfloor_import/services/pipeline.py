from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, replace
from typing import Any

from ..db.store import MAPPING_COLUMNS, PersistenceError, Store
from ..logging.error_log import ErrorLogBuffer
from ..models.aggregates import ImportResult
from ..models.column_mapping import ColumnMapping
from ..models.config_models import HoursRule, ImportOptions, ScrapWrite
from ..models.error_record import ErrorRecord
from ..models.field_schema import FieldSpec, field_types, required_keys
from ..models.raw_table import RawTable
from ..models.validated_row import ValidationSummary
from .aggregation import (
    aggregate_hours,
    aggregate_scrap,
    dedupe_rows,
    discover_machines,
    observed_machines,
)
from .mapping import (
    MappingError,
    apply_preferences,
    auto_detect,
    preferences_from_mapping,
    resolve_configured_mapping,
    validate_mapping,
)
from .validation import select_rows, summarize, validate_rows

"""Aggregation & upsert pipeline.

aggregate_and_persist runs three independent steps against the store, each in
its own transaction:

1. hours: sum per (machine, day), attach targets, upsert (replace on conflict)
2. scrap: per (order, machine, day) or per row, plain insert unless configured
3. discovery: register machines missing from machine_targets with target 0

A failing step does not stop the others and completed steps are not rolled
back. After all steps ran the first PersistenceError is re-raised with the
partial ImportResult attached as ``error.result``.
"""

__all__ = [
    "ALL_STEPS",
    "TableImport",
    "aggregate_and_persist",
    "backfill",
    "resolve_mapping",
    "run_import",
]

logger = logging.getLogger(__name__)

ALL_STEPS: tuple[str, ...] = ("hours", "scrap", "discovery")

SCRAP_INSERT_WARNING = (
    "scrap_write=insert: scrap rows are appended; importing the same file again adds its scrap a second time"
)


def _hours_step(records: list[Mapping[str, Any]], store: Store, options: ImportOptions, per_order: bool, result: ImportResult) -> None:
    targets = store.fetch_machine_targets()
    agg = aggregate_hours(
        records,
        rule=options.hours_rule,
        targets=targets,
        target_scale=options.target_scale,
        strict_names=options.strict_machine_names,
        per_order=per_order,
    )
    result.skipped.update({f"hours.{k}": v for k, v in agg.skipped.items()})
    result.hours_records = store.upsert_machine_hours(agg.aggregates)


def _scrap_step(records: list[Mapping[str, Any]], store: Store, options: ImportOptions, result: ImportResult) -> None:
    agg = aggregate_scrap(records, grouping=options.scrap_grouping, strict_names=options.strict_machine_names)
    result.skipped.update({f"scrap.{k}": v for k, v in agg.skipped.items()})
    if options.scrap_write is ScrapWrite.UPSERT:
        result.scrap_records = store.upsert_scrap(agg.aggregates)
    else:
        logger.warning(SCRAP_INSERT_WARNING)
        result.scrap_records = store.insert_scrap(agg.aggregates)


def _discovery_step(records: list[Mapping[str, Any]], store: Store, options: ImportOptions, result: ImportResult) -> None:
    observed = observed_machines(records, strict_names=options.strict_machine_names)
    new = discover_machines(observed, store.fetch_machine_targets())
    if new:
        logger.info("new machines: %s", ", ".join(m.machine_name for m in new))
    result.new_machines = store.insert_machine_targets(new)


def aggregate_and_persist(
    records: Iterable[Mapping[str, Any]],
    store: Store,
    options: ImportOptions | None = None,
    *,
    per_order: bool = False,
    steps: Sequence[str] = ALL_STEPS,
) -> ImportResult:
    """Aggregate field-keyed records and write them through ``store``.

    Rows that cannot be aggregated are counted in ``result.skipped`` and never
    raise. Raises PersistenceError (with ``.result``) if any step failed.
    """
    options = options or ImportOptions()
    rows = list(records)
    result = ImportResult(rows_processed=len(rows))
    first_error: PersistenceError | None = None

    for step in steps:
        try:
            with store.transaction(step):
                if step == "hours":
                    _hours_step(rows, store, options, per_order, result)
                elif step == "scrap":
                    _scrap_step(rows, store, options, result)
                elif step == "discovery":
                    _discovery_step(rows, store, options, result)
                else:
                    raise ValueError(f"unknown pipeline step: {step!r}")
        except PersistenceError as e:
            logger.error("step=%s failed: %s", e.step, e.message)
            result.errors.append(str(e))
            if first_error is None:
                first_error = e

    logger.debug(
        "persisted rows=%d hours=%d scrap=%d new_machines=%d skipped=%s",
        result.rows_processed,
        result.hours_records,
        result.scrap_records,
        result.new_machines,
        dict(result.skipped),
    )
    if first_error is not None:
        first_error.result = result
        raise first_error
    return result


def resolve_mapping(
    table: RawTable,
    fields: Sequence[FieldSpec],
    configured: Mapping[str, int | str] | None = None,
    preferences: Mapping[str, Any] | None = None,
) -> ColumnMapping:
    """Configured mapping if given, else auto-detection overlaid with preferences."""
    headers = list(table.headers)
    if configured:
        return resolve_configured_mapping(configured, headers)
    return apply_preferences(auto_detect(headers, fields), preferences, headers)


@dataclass
class TableImport:
    """Everything one file import produced."""
    mapping: ColumnMapping
    summary: ValidationSummary
    result: ImportResult


def _log_errors(error_log: ErrorLogBuffer | None, file_name: str, error_type: str, items: Iterable[tuple[int, str]]) -> None:
    if error_log is None:
        return
    error_log.extend([ErrorRecord.create(file_name, row, error_type, message) for row, message in items])


def run_import(
    table: RawTable,
    store: Store,
    fields: Sequence[FieldSpec],
    options: ImportOptions | None = None,
    *,
    configured_mapping: Mapping[str, int | str] | None = None,
    mapping_name: str = "Standard Mapping",
    error_log: ErrorLogBuffer | None = None,
) -> TableImport:
    """Map, validate, archive and aggregate one decoded file.

    Raises MappingError when required fields cannot be resolved and
    PersistenceError when a backend step failed (``.result`` holds what was
    written anyway).
    """
    options = options or ImportOptions()
    headers = list(table.headers)

    preferences = None if configured_mapping else store.load_preferences()
    mapping = resolve_mapping(table, fields, configured_mapping, preferences)
    check = validate_mapping(mapping, required_keys(tuple(fields)), table.width)
    for warning in check.warnings:
        logger.warning("%s: %s", table.file_name, warning)
    if not check.is_valid:
        _log_errors(error_log, table.file_name, "MAPPING_ERROR", ((-1, e) for e in check.errors))
        raise MappingError(check.errors)

    try:
        with store.transaction("mapping"):
            # archived records are keyed by record_keys, so duplicate headers keep their suffix
            mapping_id = store.save_column_mapping(mapping_name, mapping.to_names(table.record_keys()))
            if not configured_mapping:
                store.save_preferences(preferences_from_mapping(mapping, headers))
        archived = 0
        if options.archive_rows:
            with store.transaction("archive"):
                archived = store.archive_rows(mapping_id, table.file_name, table.records(json_safe=True))
    except PersistenceError as e:
        _log_errors(error_log, table.file_name, "PERSISTENCE_ERROR", [(-1, str(e))])
        raise

    validated = validate_rows(table.rows, mapping, field_types(tuple(fields)))
    summary = summarize(validated)
    _log_errors(
        error_log,
        table.file_name,
        "VALIDATION_ERROR",
        ((row.row_index, msg) for row in validated for msg in row.errors),
    )
    if summary.invalid_rows:
        logger.info(
            "%s: %d of %d rows flagged (row_filter=%s)",
            table.file_name,
            summary.invalid_rows,
            summary.total_rows,
            options.row_filter.value,
        )
        for line in summary.preview_errors():
            logger.warning("%s: %s", table.file_name, line)

    records = [row.values for row in select_rows(validated, options.row_filter)]
    try:
        result = aggregate_and_persist(records, store, options)
    except PersistenceError as e:
        partial = e.result
        if partial is not None:
            partial.mapping_id = mapping_id
            partial.archived_rows = archived
            for message in partial.errors:
                _log_errors(error_log, table.file_name, "PERSISTENCE_ERROR", [(-1, message)])
        raise
    result.mapping_id = mapping_id
    result.archived_rows = archived
    return TableImport(mapping=mapping, summary=summary, result=result)


def backfill(store: Store, options: ImportOptions | None = None) -> ImportResult:
    """Re-aggregate archived rows with the most recently saved mapping.

    Columns are resolved by header name over the archived records, duplicate
    rows are dropped by row identity, and hours are summed per order first.
    Only machine_hours is written.
    """
    options = options or ImportOptions()
    saved = store.latest_column_mapping()
    if saved is None:
        raise MappingError(["Keine gespeicherte Spaltenzuordnung gefunden"])

    mapping = ColumnMapping.by_name({key: saved.get(key) for key in MAPPING_COLUMNS})
    has_minutes = mapping.column_for("setup_time") is not None or mapping.column_for("production_time") is not None
    rule = HoursRule.SETUP_PLUS_PRODUCTION if has_minutes or mapping.column_for("hours") is None else HoursRule.DIRECT

    archived = store.fetch_archived_rows(saved["id"])
    unique = dedupe_rows(archived, mapping)
    logger.info(
        "backfill mapping=%s archived_rows=%d unique_rows=%d rule=%s",
        saved["id"],
        len(archived),
        len(unique),
        rule.value,
    )
    records = [mapping.project(row) for row in unique]
    result = aggregate_and_persist(
        records,
        store,
        replace(options, hours_rule=rule, strict_machine_names=True),
        per_order=True,
        steps=("hours",),
    )
    result.mapping_id = saved["id"]
    return result
