from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

"""Business field schema for machine-operation exports.

Two field sets exist:

- ``production``: per-operation exports with setup and production minutes
  (hours are derived as ``(setup_time + production_time) / 60``).
- ``hours``: the downloadable template layout with a ready-made hours column.
"""

__all__ = [
    "FieldSpec",
    "FieldType",
    "FIELD_SETS",
    "HOURS_FIELDS",
    "PRODUCTION_FIELDS",
    "TEMPLATE_HEADERS",
    "field_types",
    "get_field_set",
    "required_keys",
]


class FieldType(Enum):
    NUMBER = "number"
    STRING = "string"
    DATE = "date"


@dataclass(frozen=True)
class FieldSpec:
    """One target field of the schema."""
    key: str  # stable identifier, also the column name in column_mappings
    label: str  # human name shown in mapping screens / messages
    required: bool
    type: FieldType


PRODUCTION_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("machine_name", "Maschinenname", True, FieldType.STRING),
    FieldSpec("date", "Datum", True, FieldType.DATE),
    FieldSpec("setup_time", "Rüstzeit (Minuten)", True, FieldType.NUMBER),
    FieldSpec("production_time", "Serienzeit (Minuten)", True, FieldType.NUMBER),
    FieldSpec("scrap_amount", "Ausschussmenge", True, FieldType.NUMBER),
    FieldSpec("bab_number", "Betriebsauftrag", True, FieldType.STRING),
    FieldSpec("order_number", "Auftragsnummer", True, FieldType.STRING),
    FieldSpec("afo_nummer", "AFO-Nummer", False, FieldType.STRING),
    FieldSpec("good_quantity", "Menge gut", False, FieldType.NUMBER),
)

HOURS_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("hours", "Stunden TEG", True, FieldType.NUMBER),
    FieldSpec("scrap_amount", "Ausschussmenge", True, FieldType.NUMBER),
    FieldSpec("date", "Datum", True, FieldType.DATE),
    FieldSpec("bab_number", "Auftragsnummer", True, FieldType.STRING),
    FieldSpec("machine_name", "Ressource", True, FieldType.STRING),
    FieldSpec("good_quantity", "Menge gut", False, FieldType.NUMBER),
)

FIELD_SETS: dict[str, tuple[FieldSpec, ...]] = {
    "production": PRODUCTION_FIELDS,
    "hours": HOURS_FIELDS,
}

# Column names of the downloadable import template
TEMPLATE_HEADERS: tuple[str, ...] = (
    "TEG [h]",
    "Ausschuss",
    "Datum",
    "Internes BA-Kürzel",
    "Ressource",
    "Menge gut",
)


def get_field_set(name: str) -> tuple[FieldSpec, ...]:
    try:
        return FIELD_SETS[name]
    except KeyError:
        raise ValueError(f"unknown field set: {name!r} (expected one of {sorted(FIELD_SETS)})") from None


def required_keys(fields: tuple[FieldSpec, ...]) -> list[str]:
    return [f.key for f in fields if f.required]


def field_types(fields: tuple[FieldSpec, ...]) -> dict[str, FieldType]:
    return {f.key: f.type for f in fields}
