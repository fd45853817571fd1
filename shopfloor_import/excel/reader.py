from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Any

import pandas as pd

from ..models.raw_table import RawTable
from .cells import is_blank, normalize_cell

"""Tabular file reader: uploaded CSV / XLSX / XLS -> RawTable.

CSV: non-empty lines, delimiter detected from the first line among
``; , \\t |``, double quotes toggle in-quote state, first line is the header.

Workbooks: first sheet only, first row is the header (trimmed, blank when
absent), fully blank data rows are dropped. Workbooks are decoded with pandas
(openpyxl for .xlsx, xlrd for .xls) without header inference so the header
row is handled here, like the CSV path.

The whole file is decoded at once; there is no streaming.
"""

__all__ = [
    "CSV_DELIMITERS",
    "SUPPORTED_EXTENSIONS",
    "EmptyFileError",
    "FileFormatError",
    "UnsupportedFormatError",
    "detect_delimiter",
    "parse_csv_line",
    "read_csv_text",
    "read_path",
    "read_table",
    "read_workbook",
]

logger = logging.getLogger(__name__)

# priority order: ';' wins ties
CSV_DELIMITERS: tuple[str, ...] = (";", ",", "\t", "|")
SUPPORTED_EXTENSIONS: frozenset[str] = frozenset({"csv", "xlsx", "xls"})


class FileFormatError(Exception):
    """Raised when an upload cannot be decoded into a table."""


class UnsupportedFormatError(FileFormatError):
    """Raised for extensions other than csv/xlsx/xls."""


class EmptyFileError(FileFormatError):
    """Raised when no data row follows the header."""


def _extension(file_name: str) -> str:
    return file_name.rsplit(".", 1)[-1].lower() if "." in file_name else ""


def detect_delimiter(line: str) -> str:
    """Pick the delimiter producing the most fields on ``line``.

    A later candidate only replaces the current one on a strictly greater
    field count, so ``;`` wins ties.
    """
    best = CSV_DELIMITERS[0]
    max_count = 0
    for delimiter in CSV_DELIMITERS:
        count = len(line.split(delimiter))
        if count > max_count:
            max_count = count
            best = delimiter
    return best


def parse_csv_line(line: str, delimiter: str) -> list[str]:
    """Split one CSV line; ``"`` toggles quoting and is not kept."""
    result: list[str] = []
    current: list[str] = []
    in_quotes = False
    for char in line:
        if char == '"':
            in_quotes = not in_quotes
        elif char == delimiter and not in_quotes:
            result.append("".join(current).strip())
            current = []
        else:
            current.append(char)
    result.append("".join(current).strip())
    return result


def _fit(row: list[Any], width: int) -> tuple[Any, ...]:
    if len(row) < width:
        row = row + [None] * (width - len(row))
    return tuple(row[:width])


def read_csv_text(text: str, file_name: str = "upload.csv") -> RawTable:
    lines = [line for line in text.split("\n") if line.strip()]
    if not lines:
        raise EmptyFileError("CSV-Datei ist leer")

    delimiter = detect_delimiter(lines[0])
    logger.debug("file=%s csv delimiter=%r lines=%d", file_name, delimiter, len(lines))

    parsed = [parse_csv_line(line, delimiter) for line in lines]
    headers = tuple(parsed[0])
    rows = tuple(_fit(list(r), len(headers)) for r in parsed[1:])
    if not rows:
        raise EmptyFileError("CSV-Datei enthält keine Datenzeilen")
    return RawTable(file_name=file_name, headers=headers, rows=rows)


def _decode_text(content: bytes) -> str:
    # utf-8-sig drops the BOM Excel writes into CSV exports
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        return content.decode("cp1252", errors="replace")


def read_workbook(content: bytes, file_name: str = "upload.xlsx") -> RawTable:
    try:
        xls = pd.ExcelFile(io.BytesIO(content))
        if not xls.sheet_names:
            raise EmptyFileError("Excel-Datei ist leer")
        first_sheet = xls.sheet_names[0]
        df = xls.parse(first_sheet, header=None, dtype=object)
    except FileFormatError:
        raise
    except Exception as e:
        raise FileFormatError(f"Fehler beim Lesen der Excel-Datei: {e}") from e

    if df.shape[0] == 0:
        raise EmptyFileError("Excel-Datei ist leer")

    raw_rows = [[normalize_cell(v) for v in r] for r in df.itertuples(index=False, name=None)]
    headers = tuple("" if h is None else str(h).strip() for h in raw_rows[0])
    rows = tuple(
        _fit(r, len(headers))
        for r in raw_rows[1:]
        if not all(is_blank(cell) for cell in r)
    )
    logger.debug(
        "file=%s sheet=%s columns=%d data_rows=%d", file_name, first_sheet, len(headers), len(rows)
    )
    if not rows:
        raise EmptyFileError("Excel-Datei enthält keine Datenzeilen")
    return RawTable(file_name=file_name, headers=headers, rows=rows)


def read_table(content: bytes, file_name: str) -> RawTable:
    """Decode an uploaded file into a RawTable.

    Raises:
        UnsupportedFormatError: extension is not csv/xlsx/xls
        EmptyFileError: no data rows after the header
        FileFormatError: unreadable binary
    """
    ext = _extension(file_name)
    if ext not in SUPPORTED_EXTENSIONS:
        raise UnsupportedFormatError(
            "Nicht unterstütztes Dateiformat. Bitte .xlsx, .xls oder .csv verwenden."
        )
    if ext == "csv":
        return read_csv_text(_decode_text(content), file_name)
    return read_workbook(content, file_name)


def read_path(path: Path) -> RawTable:
    """Convenience wrapper reading ``path`` from disk."""
    try:
        content = path.read_bytes()
    except OSError as e:
        raise FileFormatError(f"Fehler beim Lesen der Datei: {e}") from e
    return read_table(content, path.name)
