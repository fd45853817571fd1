from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from ..models.column_mapping import UNMAPPED, ColumnMapping, is_mapped
from ..models.field_schema import FieldSpec

"""Column mapping resolver.

- auto_detect: keyword heuristics per field key (exact match first, then
  substring), over trimmed, lower-cased headers
- validate_mapping: required fields present and in range, duplicates warned
- apply_preferences / preferences_from_mapping: sticky header choices kept in
  ``user_preferences`` between uploads
"""

__all__ = [
    "FIELD_KEYWORDS",
    "PREFERENCE_FIELDS",
    "MappingError",
    "MappingValidation",
    "apply_preferences",
    "auto_detect",
    "detect_column",
    "preferences_from_mapping",
    "resolve_configured_mapping",
    "validate_mapping",
]

logger = logging.getLogger(__name__)

# Searched in list order; the first keyword with a matching header wins.
FIELD_KEYWORDS: dict[str, list[str]] = {
    "machine_name": ["maschine", "machine", "ressource", "resource"],
    "scrap_amount": ["ausschuss", "scrap", "ausschussmenge", "menge"],
    "date": ["datum", "date", "jahr/monat", "monat", "periode"],
    "bab_number": ["bab", "betriebsauftrag", "ba-kürzel", "ba", "work order", "auftrag"],
    "order_number": ["auftragsnummer", "order number", "order", "auftrag"],
    "setup_time": ["rüstzeit", "ruestzeit", "setup time", "rüsten"],
    "production_time": ["serienzeit", "zeit pro stück", "production time", "cycle time"],
    "good_quantity": ["menge gut", "gut", "good quantity", "quantity"],
    "afo_nummer": ["afo", "afo-nummer", "arbeitsfolge", "operation"],
    "hours": ["teg [h]", "teg", "stunden", "hours", "zeit"],
}

# user_preferences column -> field key
PREFERENCE_FIELDS: dict[str, str] = {
    "last_datum_column": "date",
    "last_stunden_teg_column": "hours",
    "last_schicht_column": "scrap_amount",
}


class MappingError(Exception):
    """Raised when a mapping cannot be used; carries every problem at once."""

    def __init__(self, errors: Sequence[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


@dataclass(frozen=True)
class MappingValidation:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def detect_column(headers: Sequence[str], keywords: Iterable[str]) -> int:
    """Index of the best header for ``keywords`` or UNMAPPED.

    Pass 1: exact (trimmed, case-insensitive) match, keyword order.
    Pass 2: substring match, keyword order.
    """
    normalized = [str(h).strip().lower() for h in headers]
    keyword_list = [k.lower() for k in keywords]

    for keyword in keyword_list:
        if keyword in normalized:
            return normalized.index(keyword)

    for keyword in keyword_list:
        for idx, header in enumerate(normalized):
            if keyword in header:
                return idx

    return UNMAPPED


def auto_detect(headers: Sequence[str], fields: Sequence[FieldSpec]) -> ColumnMapping:
    """Best-guess index mapping for every field; undetected fields stay unmapped."""
    columns: dict[str, int] = {}
    for spec in fields:
        idx = detect_column(headers, FIELD_KEYWORDS.get(spec.key, []))
        if idx != UNMAPPED:
            columns[spec.key] = idx
    logger.debug("auto-detected mapping=%s", columns)
    return ColumnMapping.by_index(columns)


def validate_mapping(
    mapping: ColumnMapping, required_keys: Iterable[str], column_count: int
) -> MappingValidation:
    """Check required fields and report duplicate column use.

    Warnings never block; ``is_valid`` is True iff there are no errors.
    """
    errors: list[str] = []
    warnings: list[str] = []

    for key in required_keys:
        ref = mapping.columns.get(key)
        if not is_mapped(ref):
            errors.append(f'Pflichtfeld "{key}" wurde nicht zugeordnet')
        elif not isinstance(ref, int) or isinstance(ref, bool) or not 0 <= ref < column_count:
            errors.append(f'Ungültiger Spaltenindex für "{key}"')

    used: set[Any] = set()
    for ref in mapping.columns.values():
        if not is_mapped(ref):
            continue
        if ref in used:
            warnings.append(f"Spalte {ref} wurde mehrfach zugeordnet")
        used.add(ref)

    return MappingValidation(is_valid=not errors, errors=errors, warnings=warnings)


def resolve_configured_mapping(
    configured: Mapping[str, int | str], headers: Sequence[str]
) -> ColumnMapping:
    """Index mapping from config entries (int = column index, str = header name)."""
    by_index = {k: v for k, v in configured.items() if isinstance(v, int)}
    by_name = {k: v for k, v in configured.items() if isinstance(v, str)}
    named = ColumnMapping.by_name(by_name).to_index(headers)
    columns: dict[str, int | str] = dict(named.columns)
    columns.update(by_index)
    return ColumnMapping(columns)


def apply_preferences(
    mapping: ColumnMapping, preferences: Mapping[str, Any] | None, headers: Sequence[str]
) -> ColumnMapping:
    """Overlay stored header choices that exist in ``headers``."""
    if not preferences:
        return mapping
    stripped = [str(h).strip() for h in headers]
    for pref_key, field_key in PREFERENCE_FIELDS.items():
        name = preferences.get(pref_key)
        if name and name in stripped:
            mapping = mapping.with_column(field_key, stripped.index(name))
    return mapping


def preferences_from_mapping(mapping: ColumnMapping, headers: Sequence[str]) -> dict[str, str | None]:
    names = mapping.to_names(headers)
    return {pref_key: names.get(field_key) for pref_key, field_key in PREFERENCE_FIELDS.items()}
