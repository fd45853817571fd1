from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Union

"""ColumnMapping: field key -> column reference, plus how to read a cell.

Two addressing schemes exist: zero-based column indices over positional rows
(the upload path) and header names over header-keyed records (saved mappings
applied to archived ``excel_data`` rows). Both are expressed as a resolver
``(row, ref) -> raw cell`` so validation and aggregation are written once.
"""

__all__ = [
    "UNMAPPED",
    "CellResolver",
    "ColumnMapping",
    "ColumnRef",
    "index_resolver",
    "is_mapped",
    "name_resolver",
]

ColumnRef = Union[int, str]
CellResolver = Callable[[Any, ColumnRef], Any]

# Explicit "no column chosen" index used by mapping screens
UNMAPPED = -1


def is_mapped(ref: ColumnRef | None) -> bool:
    return ref is not None and ref != UNMAPPED and ref != ""


def index_resolver(row: Sequence[Any], ref: ColumnRef) -> Any:
    """Read a positional row; missing cells read as None."""
    if not isinstance(ref, int) or isinstance(ref, bool):
        return None
    if 0 <= ref < len(row):
        return row[ref]
    return None


def name_resolver(row: Mapping[str, Any], ref: ColumnRef) -> Any:
    """Read a header-keyed record; missing keys read as None."""
    return row.get(str(ref))


@dataclass(frozen=True)
class ColumnMapping:
    """Frozen mapping of field keys to column references.

    Edits produce a new instance (``with_column``), so a mapping handed to
    validation can no longer change underneath it.
    """
    columns: dict[str, ColumnRef] = field(default_factory=dict)
    resolver: CellResolver = index_resolver

    @classmethod
    def by_index(cls, columns: Mapping[str, int | None]) -> ColumnMapping:
        return cls({k: v for k, v in columns.items() if v is not None}, index_resolver)

    @classmethod
    def by_name(cls, columns: Mapping[str, str | None]) -> ColumnMapping:
        return cls({k: v for k, v in columns.items() if v}, name_resolver)

    @property
    def is_name_based(self) -> bool:
        return self.resolver is name_resolver

    def column_for(self, key: str) -> ColumnRef | None:
        ref = self.columns.get(key)
        return ref if is_mapped(ref) else None

    def mapped_keys(self) -> list[str]:
        return [k for k, ref in self.columns.items() if is_mapped(ref)]

    def with_column(self, key: str, ref: ColumnRef | None) -> ColumnMapping:
        columns = dict(self.columns)
        if ref is None:
            columns.pop(key, None)
        else:
            columns[key] = ref
        return ColumnMapping(columns, self.resolver)

    def resolve(self, row: Any, key: str) -> Any:
        """Raw cell for ``key`` in ``row``; None when unmapped or missing."""
        ref = self.column_for(key)
        if ref is None:
            return None
        return self.resolver(row, ref)

    def project(self, row: Any) -> dict[str, Any]:
        """Field-keyed view of one row (all mapped keys)."""
        return {key: self.resolve(row, key) for key in self.mapped_keys()}

    def to_index(self, headers: Sequence[str]) -> ColumnMapping:
        """Translate a name-based mapping into indices over ``headers``.

        Names are matched after trimming; the first matching header wins and
        unknown names become ``UNMAPPED``.
        """
        if not self.is_name_based:
            return self
        stripped = [str(h).strip() for h in headers]
        columns: dict[str, ColumnRef] = {}
        for key, ref in self.columns.items():
            name = str(ref).strip()
            columns[key] = stripped.index(name) if name in stripped else UNMAPPED
        return ColumnMapping(columns, index_resolver)

    def to_names(self, headers: Sequence[str]) -> dict[str, str]:
        """Header names per mapped field (persisted ``column_mappings`` shape)."""
        if self.is_name_based:
            return {k: str(v) for k, v in self.columns.items() if is_mapped(v)}
        names: dict[str, str] = {}
        for key in self.mapped_keys():
            ref = self.columns[key]
            if isinstance(ref, int) and 0 <= ref < len(headers):
                names[key] = headers[ref]
        return names
