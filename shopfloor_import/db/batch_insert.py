from __future__ import annotations

import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from psycopg2.extras import execute_values

"""Batch INSERT / upsert helpers built on psycopg2.extras.execute_values.

Table and column names come from code (never from uploaded files) and are
quoted as identifiers; values always go through placeholders.
"""


class BatchInsertError(Exception):
    pass


@dataclass(frozen=True)
class BatchMetrics:
    """Timing of a single execute_values call."""
    batch_size: int
    elapsed_seconds: float
    start_time: float
    end_time: float


@dataclass(frozen=True)
class InsertResult:
    inserted_rows: int
    returned_values: list[tuple[Any, ...]] | None = None


def _quote(names: Sequence[str]) -> str:
    return ",".join(f'"{c}"' for c in names)


def _execute(
    cursor: Any,
    sql: str,
    rows_list: list[Sequence[Any]],
    page_size: int,
    metrics_callback: Callable[[BatchMetrics], None] | None,
    returning: bool,
) -> InsertResult:
    start_time = time.time()
    returned = None
    try:
        if returning:
            returned = execute_values(cursor, sql, rows_list, page_size=page_size, fetch=True)
        else:
            execute_values(cursor, sql, rows_list, page_size=page_size)
    except Exception as e:
        raise BatchInsertError(str(e)) from e
    finally:
        end_time = time.time()
        if metrics_callback is not None:
            metrics_callback(
                BatchMetrics(
                    batch_size=len(rows_list),
                    elapsed_seconds=end_time - start_time,
                    start_time=start_time,
                    end_time=end_time,
                )
            )
    return InsertResult(inserted_rows=len(rows_list), returned_values=returned)


def batch_insert(
    cursor: Any,
    table: str,
    columns: Sequence[str],
    rows: Iterable[Sequence[Any]],
    returning: str | None = None,
    page_size: int = 1000,
    metrics_callback: Callable[[BatchMetrics], None] | None = None,
) -> InsertResult:
    """Plain batched INSERT.

    Parameters
    ----------
    cursor: psycopg2 cursor
    table: target table
    columns: inserted columns, in row order
    rows: row value sequences
    returning: column to return per inserted row (e.g. ``"id"``)
    page_size: execute_values page size
    metrics_callback: receives BatchMetrics; not called for empty ``rows``
    """
    rows_list = list(rows)
    if not rows_list:
        return InsertResult(inserted_rows=0, returned_values=[] if returning else None)

    sql = f"INSERT INTO {table} ({_quote(columns)}) VALUES %s"
    if returning:
        sql += f' RETURNING "{returning}"'
    return _execute(cursor, sql, rows_list, page_size, metrics_callback, bool(returning))


def batch_upsert(
    cursor: Any,
    table: str,
    columns: Sequence[str],
    rows: Iterable[Sequence[Any]],
    conflict_columns: Sequence[str],
    update_columns: Sequence[str] | None = None,
    page_size: int = 1000,
    metrics_callback: Callable[[BatchMetrics], None] | None = None,
) -> InsertResult:
    """INSERT ... ON CONFLICT on ``conflict_columns``.

    ``update_columns`` are replaced with the incoming values (last write
    wins, never added). An empty list means DO NOTHING, which keeps rows
    written concurrently by other writers untouched.
    """
    rows_list = list(rows)
    if not rows_list:
        return InsertResult(inserted_rows=0)

    if update_columns is None:
        update_columns = [c for c in columns if c not in conflict_columns]
    sql = (
        f"INSERT INTO {table} ({_quote(columns)}) VALUES %s "
        f"ON CONFLICT ({_quote(conflict_columns)}) "
    )
    if update_columns:
        assignments = ", ".join(f'"{c}" = EXCLUDED."{c}"' for c in update_columns)
        sql += f"DO UPDATE SET {assignments}"
    else:
        sql += "DO NOTHING"
    return _execute(cursor, sql, rows_list, page_size, metrics_callback, False)
