from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import Any

import numpy as np
import pandas as pd

"""Cell value coercion for spreadsheet exports.

Pure functions turning a raw cell (str / int / float / datetime / None) into a
typed value. German exports are the main input, so numbers are read with
``.`` as thousands separator and ``,`` as decimal point.
"""

__all__ = [
    "EXCEL_EPOCH",
    "column_letter",
    "date_key",
    "is_blank",
    "normalize_cell",
    "parse_date",
    "parse_number",
]

# Excel serial 0 (keeps the 1900 leap-year offset of spreadsheet serials)
EXCEL_EPOCH = datetime(1899, 12, 30)

_WHITESPACE = re.compile(r"\s+")
_PLAIN_NUMBER = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")

# (pattern, year-first)
_DATE_PATTERNS: list[tuple[re.Pattern[str], bool]] = [
    (re.compile(r"^(\d{1,2})\.(\d{1,2})\.(\d{4})$"), False),  # DD.MM.YYYY
    (re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$"), True),  # YYYY-MM-DD
    (re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$"), False),  # DD/MM/YYYY
]


def column_letter(index: int) -> str:
    """Spreadsheet column label for a zero-based index (0 -> A, 26 -> AA)."""
    if index < 0:
        raise ValueError(f"column index must be >= 0: {index}")
    letter = ""
    while index >= 0:
        letter = chr(65 + index % 26) + letter
        index = index // 26 - 1
    return letter


def is_blank(value: Any) -> bool:
    """True for None and the empty string (whitespace is not blank)."""
    return value is None or (isinstance(value, str) and value == "")


def normalize_cell(value: Any) -> Any:
    """Convert a pandas/numpy cell into a plain Python value.

    NaN/NaT -> None, Timestamp -> datetime, numpy scalars -> Python scalars,
    integral floats -> int.
    """
    if value is None or value is pd.NaT:
        return None
    if isinstance(value, pd.Timestamp):
        return None if pd.isna(value) else value.to_pydatetime()
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float):
        if value != value:  # NaN
            return None
        if value.is_integer():
            return int(value)
    return value


def parse_number(value: Any) -> float | int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if isinstance(value, float) and value != value:
            return None
        return value
    if isinstance(value, (datetime, date)):
        return None

    s = str(value).strip()
    if not s:
        return None
    normalized = _WHITESPACE.sub("", s).replace(".", "").replace(",", ".")
    if not _PLAIN_NUMBER.match(normalized):
        return None
    return float(normalized)


def _from_parts(year: int, month: int, day: int) -> datetime | None:
    try:
        return datetime(year, month, day)
    except ValueError:
        return None


def parse_date(value: Any) -> datetime | None:
    """Coerce a cell into a datetime.

    Order: native date objects, Excel serial numbers (days since 1899-12-30),
    ``DD.MM.YYYY``, ``YYYY-MM-DD``, ``DD/MM/YYYY``, then a generic parse.
    """
    if value is None or value is pd.NaT or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, pd.Timestamp):
        return None if pd.isna(value) else value.to_pydatetime()
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)):
        if isinstance(value, float) and value != value:
            return None
        try:
            return EXCEL_EPOCH + timedelta(days=value)
        except OverflowError:
            return None

    s = str(value).strip()
    if not s:
        return None
    for pattern, year_first in _DATE_PATTERNS:
        m = pattern.match(s)
        if m is None:
            continue
        a, b, c = (int(g) for g in m.groups())
        parsed = _from_parts(a, b, c) if year_first else _from_parts(c, b, a)
        if parsed is not None:
            return parsed
        break  # impossible calendar day, e.g. 31.02.2024

    # pandas reads words like "now" and "today" as the current time
    if not any(ch.isdigit() for ch in s):
        return None
    try:
        ts = pd.Timestamp(s)
    except (ValueError, TypeError, OverflowError):
        return None
    if pd.isna(ts):
        return None
    return ts.to_pydatetime()


def date_key(value: datetime | date) -> str:
    """ISO day (YYYY-MM-DD) used as aggregation key."""
    return value.date().isoformat() if isinstance(value, datetime) else value.isoformat()
