from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from ..excel.cells import is_blank, parse_date, parse_number
from ..models.column_mapping import ColumnMapping
from ..models.config_models import RowFilter
from ..models.field_schema import FieldType
from ..models.validated_row import ValidatedRow, ValidationSummary

"""Row validator.

Applies a column mapping and per-field types to every raw row. Problems are
collected as per-row messages; the batch itself never fails and always
yields exactly one ValidatedRow per input row.
"""

__all__ = [
    "HEADER_ROW_OFFSET",
    "select_rows",
    "summarize",
    "validate_rows",
]

# data row i (0-based) is sheet row i + 2 (row 1 holds the headers)
HEADER_ROW_OFFSET = 2


def _coerce(
    raw: Any, field_type: FieldType, key: str, row_number: int, errors: list[str]
) -> Any:
    if field_type is FieldType.NUMBER:
        number = parse_number(raw)
        if number is None and not is_blank(raw):
            errors.append(f'Zeile {row_number}, Feld "{key}": Ungültiger Zahlenwert "{raw}"')
        return number
    if field_type is FieldType.DATE:
        parsed = parse_date(raw)
        if parsed is None and not is_blank(raw):
            errors.append(f'Zeile {row_number}, Feld "{key}": Ungültiges Datum "{raw}"')
        return parsed
    return "" if raw is None else str(raw).strip()


def validate_rows(
    rows: Iterable[Sequence[Any] | Mapping[str, Any]],
    mapping: ColumnMapping,
    field_types: Mapping[str, FieldType],
) -> list[ValidatedRow]:
    """Validate every row against the mapped fields.

    Fields without a declared type are treated as strings.
    """
    validated: list[ValidatedRow] = []
    for i, row in enumerate(rows):
        row_number = i + HEADER_ROW_OFFSET
        errors: list[str] = []
        values: dict[str, Any] = {}
        for key in mapping.mapped_keys():
            raw = mapping.resolve(row, key)
            values[key] = _coerce(raw, field_types.get(key, FieldType.STRING), key, row_number, errors)
        validated.append(ValidatedRow(row_index=row_number, values=values, errors=tuple(errors)))
    return validated


def summarize(rows: Sequence[ValidatedRow]) -> ValidationSummary:
    errors: list[str] = []
    invalid = 0
    for row in rows:
        if row.errors:
            invalid += 1
            errors.extend(row.errors)
    return ValidationSummary(
        total_rows=len(rows),
        valid_rows=len(rows) - invalid,
        invalid_rows=invalid,
        errors=tuple(errors),
    )


def select_rows(rows: Iterable[ValidatedRow], row_filter: RowFilter) -> list[ValidatedRow]:
    """Rows handed to aggregation: valid ones only, or all including flagged ones."""
    if row_filter is RowFilter.ALL:
        return list(rows)
    return [r for r in rows if r.is_valid]
