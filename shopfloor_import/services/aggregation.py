from __future__ import annotations

import logging
import re
from collections import Counter, defaultdict
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from ..excel.cells import date_key, parse_date, parse_number
from ..models.aggregates import DiscoveredMachine, MachineHoursAggregate, ScrapAggregate
from ..models.column_mapping import ColumnMapping
from ..models.config_models import HoursRule, ScrapGrouping

"""Aggregation of field-keyed records into per-machine/per-day figures.

Records are plain ``{field key: value}`` dicts: either the typed values of
validated rows or raw cells projected through a ColumnMapping. Every value
is re-coerced here, so both sources behave the same.

Skip conditions (no date, unknown machine, no hours, no positive scrap) are
counted per reason and never raise.
"""

__all__ = [
    "DEDUP_KEY_FIELDS",
    "EXCEL_ERROR_LITERALS",
    "UNKNOWN_LABEL",
    "HoursAggregation",
    "ScrapAggregation",
    "aggregate_hours",
    "aggregate_scrap",
    "dedupe_rows",
    "discover_machines",
    "observed_machines",
    "resolve_machine_name",
    "resolve_order_number",
    "row_hours",
    "row_identity",
]

logger = logging.getLogger(__name__)

# Display label for missing names; a cell literally holding it counts as missing too
UNKNOWN_LABEL = "Unbekannt"

EXCEL_ERROR_LITERALS: tuple[str, ...] = (
    "#NV", "#N/A", "#NAME?", "#DIV/0!", "#REF!", "#VALUE!", "#NUM!", "#NULL!",
)

_DIGITS_ONLY = re.compile(r"^\d+$")

# Composite identity when an export has no running number column; it covers
# the inputs of both hours rules so rows differing only in minutes stay apart
DEDUP_KEY_FIELDS: tuple[str, ...] = (
    "date",
    "hours",
    "setup_time",
    "production_time",
    "machine_name",
    "bab_number",
)
DEDUP_ID_COLUMN = "lfd_nr"


def resolve_machine_name(value: Any, *, strict: bool = False) -> str | None:
    """Trimmed machine name, or None when the machine is unknown.

    ``strict`` also rejects Excel error literals and purely numeric names,
    which show up in exports where the resource column holds formulas.
    """
    if value is None:
        return None
    name = str(value).strip()
    if not name or name == UNKNOWN_LABEL:
        return None
    if strict:
        upper = name.upper()
        if any(err in upper for err in EXCEL_ERROR_LITERALS):
            return None
        if _DIGITS_ONLY.match(name):
            return None
    return name


def resolve_order_number(record: Mapping[str, Any]) -> str:
    """Order/BAB identifier; missing ones are kept under UNKNOWN_LABEL."""
    for key in ("bab_number", "order_number"):
        value = record.get(key)
        if value is not None and str(value).strip():
            return str(value).strip()
    return UNKNOWN_LABEL


def row_hours(record: Mapping[str, Any], rule: HoursRule) -> float | None:
    if rule is HoursRule.DIRECT:
        hours = parse_number(record.get("hours"))
        return None if hours is None else float(hours)
    setup = parse_number(record.get("setup_time")) or 0
    production = parse_number(record.get("production_time")) or 0
    return (setup + production) / 60


@dataclass
class HoursAggregation:
    aggregates: list[MachineHoursAggregate] = field(default_factory=list)
    skipped: Counter[str] = field(default_factory=Counter)


@dataclass
class ScrapAggregation:
    aggregates: list[ScrapAggregate] = field(default_factory=list)
    skipped: Counter[str] = field(default_factory=Counter)


def aggregate_hours(
    records: Iterable[Mapping[str, Any]],
    *,
    rule: HoursRule,
    targets: Mapping[str, float] | None = None,
    target_scale: float = 1.0,
    strict_names: bool = False,
    per_order: bool = False,
) -> HoursAggregation:
    """Sum hours per (machine, day) and attach the machine's target.

    With ``per_order`` rows are first summed per (order, machine, day); rows
    without an order are skipped and order groups with a non-positive total
    are dropped before the per-day sum.

    The attached target is the registry's 14-day figure times
    ``target_scale``, the same for every day of a machine.
    """
    targets = targets or {}
    result = HoursAggregation()
    sums: dict[tuple[str, str], float] = defaultdict(float)
    order_sums: dict[tuple[str, str, str], float] = defaultdict(float)

    for rec in records:
        parsed = parse_date(rec.get("date"))
        if parsed is None:
            result.skipped["no_date"] += 1
            continue
        machine = resolve_machine_name(rec.get("machine_name"), strict=strict_names)
        if machine is None:
            result.skipped["unknown_machine"] += 1
            continue
        hours = row_hours(rec, rule)
        if hours is None:
            result.skipped["no_hours"] += 1
            continue
        day = date_key(parsed)
        if per_order:
            order = resolve_order_number(rec)
            if order == UNKNOWN_LABEL:
                result.skipped["no_order"] += 1
                continue
            order_sums[(order, machine, day)] += hours
        else:
            sums[(machine, day)] += hours

    for (order, machine, day), hours in order_sums.items():
        if hours <= 0:
            result.skipped["no_hours"] += 1
            continue
        sums[(machine, day)] += hours

    for (machine, day), hours in sums.items():
        target = float(targets.get(machine, 0) or 0) * target_scale
        result.aggregates.append(
            MachineHoursAggregate(machine_name=machine, date=day, hours_worked=hours, target_hours=target)
        )
    logger.debug(
        "hours aggregation rule=%s groups=%d skipped=%s",
        rule.value,
        len(result.aggregates),
        dict(result.skipped),
    )
    return result


def aggregate_scrap(
    records: Iterable[Mapping[str, Any]],
    *,
    grouping: ScrapGrouping = ScrapGrouping.GROUPED,
    strict_names: bool = False,
) -> ScrapAggregation:
    """Scrap per (order, machine, day), or one record per row.

    Unknown machines are excluded; unknown orders are kept under
    UNKNOWN_LABEL. Non-positive or unparseable amounts are excluded.
    """
    result = ScrapAggregation()
    sums: dict[tuple[str, str, str], float] = defaultdict(float)

    for rec in records:
        parsed = parse_date(rec.get("date"))
        if parsed is None:
            result.skipped["no_date"] += 1
            continue
        machine = resolve_machine_name(rec.get("machine_name"), strict=strict_names)
        if machine is None:
            result.skipped["unknown_machine"] += 1
            continue
        amount = parse_number(rec.get("scrap_amount"))
        if amount is None or amount <= 0:
            result.skipped["no_scrap"] += 1
            continue
        order = resolve_order_number(rec)
        day = date_key(parsed)
        if grouping is ScrapGrouping.PER_ROW:
            result.aggregates.append(
                ScrapAggregate(machine_name=machine, bab_number=order, scrap_date=day, scrap_amount=float(amount))
            )
        else:
            sums[(order, machine, day)] += amount

    for (order, machine, day), amount in sums.items():
        result.aggregates.append(
            ScrapAggregate(machine_name=machine, bab_number=order, scrap_date=day, scrap_amount=float(amount))
        )
    logger.debug(
        "scrap aggregation grouping=%s records=%d skipped=%s",
        grouping.value,
        len(result.aggregates),
        dict(result.skipped),
    )
    return result


def observed_machines(records: Iterable[Mapping[str, Any]], *, strict_names: bool = False) -> set[str]:
    names: set[str] = set()
    for rec in records:
        name = resolve_machine_name(rec.get("machine_name"), strict=strict_names)
        if name is not None:
            names.add(name)
    return names


def discover_machines(observed: Iterable[str], existing: Iterable[str]) -> list[DiscoveredMachine]:
    """Machines seen in the data but missing from the target registry (target 0)."""
    known = set(existing)
    return [DiscoveredMachine(machine_name=name) for name in sorted(set(observed) - known)]


def row_identity(
    row: Any,
    mapping: ColumnMapping,
    key_fields: Sequence[str] = DEDUP_KEY_FIELDS,
    id_column: str = DEDUP_ID_COLUMN,
) -> str:
    """Best-effort identity of a source row.

    Uses the running-number column when the row carries one, otherwise joins
    the mapped values of ``key_fields``. Different rows with identical values
    collapse, so this is a heuristic, not a unique key.
    """
    if isinstance(row, Mapping):
        running = row.get(id_column)
        if running not in (None, ""):
            return str(running)
    parts = []
    for key in key_fields:
        value = mapping.resolve(row, key)
        parts.append("" if value is None else str(value))
    return "_".join(parts)


def dedupe_rows(rows: Iterable[Any], mapping: ColumnMapping) -> list[Any]:
    """Keep the first row per ``row_identity``."""
    seen: set[str] = set()
    unique: list[Any] = []
    for row in rows:
        key = row_identity(row, mapping)
        if key in seen:
            continue
        seen.add(key)
        unique.append(row)
    return unique
