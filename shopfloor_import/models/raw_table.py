from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from ..excel.cells import column_letter

"""RawTable model: one decoded upload (header row + raw data rows).

Created once per uploaded file by the reader, immutable afterwards and
discarded once the import pipeline has consumed it.
"""

__all__ = [
    "PREVIEW_ROW_COUNT",
    "RawTable",
]

PREVIEW_ROW_COUNT = 5
EMPTY_HEADER = "__EMPTY"


@dataclass(frozen=True)
class RawTable:
    """Decoded tabular file.

    Every row has exactly ``len(headers)`` cells (padded with None or
    truncated by the reader). ``column_letters`` is positional (A, B, ...,
    AA) and independent of header content, so it stays valid with duplicate
    or empty headers.
    """
    file_name: str
    headers: tuple[str, ...]
    rows: tuple[tuple[Any, ...], ...]
    column_letters: tuple[str, ...] = field(default=())

    def __post_init__(self) -> None:
        if not self.column_letters:
            object.__setattr__(
                self, "column_letters", tuple(column_letter(i) for i in range(len(self.headers)))
            )

    @property
    def width(self) -> int:
        return len(self.headers)

    @property
    def preview_rows(self) -> tuple[tuple[Any, ...], ...]:
        return self.rows[:PREVIEW_ROW_COUNT]

    @property
    def all_rows(self) -> tuple[tuple[Any, ...], ...]:
        return self.rows

    def record_keys(self) -> list[str]:
        """Unique record keys per column.

        Empty headers become ``__EMPTY``, ``__EMPTY_1``, ...; repeated headers
        get ``_1``, ``_2`` suffixes so no cell is lost in header-keyed records.
        """
        keys: list[str] = []
        seen: dict[str, int] = {}
        for header in self.headers:
            base = header if header else EMPTY_HEADER
            count = seen.get(base, 0)
            key = base if count == 0 else f"{base}_{count}"
            while key in seen:
                count += 1
                key = f"{base}_{count}"
            seen[base] = count + 1
            seen.setdefault(key, 1)
            keys.append(key)
        return keys

    def records(self, *, json_safe: bool = False) -> list[dict[str, Any]]:
        """Rows as header-keyed dicts (the ``excel_data.row_data`` shape).

        With ``json_safe`` dates are rendered as ISO strings.
        """
        keys = self.record_keys()
        out: list[dict[str, Any]] = []
        for row in self.rows:
            rec: dict[str, Any] = {}
            for key, value in zip(keys, row):
                if value is None:
                    continue
                if json_safe and isinstance(value, (datetime, date)):
                    value = value.isoformat()
                rec[key] = value
            out.append(rec)
        return out
