from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import psycopg2
from psycopg2.extras import Json

from ..models.aggregates import DiscoveredMachine, ImportResult, MachineHoursAggregate, ScrapAggregate
from ..models.config_models import DatabaseConfig, TimeoutConfig
from .batch_insert import BatchInsertError, BatchMetrics, batch_insert, batch_upsert

"""Persistence-and-identity context for the import pipeline.

Every pipeline stage receives a Store instead of importing a global client.
The store knows the acting user and exposes exactly the reads and writes the
pipeline needs on the six tables in schema.sql.
"""

__all__ = [
    "MAPPING_COLUMNS",
    "PersistenceError",
    "PostgresStore",
    "Store",
    "build_dsn",
    "connect",
]

logger = logging.getLogger(__name__)

SCHEMA_SQL = Path(__file__).with_name("schema.sql")

# field keys persisted as columns of column_mappings
MAPPING_COLUMNS: tuple[str, ...] = (
    "machine_name",
    "date",
    "hours",
    "setup_time",
    "production_time",
    "scrap_amount",
    "bab_number",
    "order_number",
    "afo_nummer",
    "good_quantity",
)

PREFERENCE_COLUMNS: tuple[str, ...] = (
    "last_datum_column",
    "last_stunden_teg_column",
    "last_schicht_column",
)


class PersistenceError(Exception):
    """A backend write/read failed for one pipeline step.

    ``result`` is set by the pipeline to what was written before the failure.
    """

    def __init__(self, step: str, message: str) -> None:
        self.step = step
        self.message = message
        self.result: ImportResult | None = None
        super().__init__(f"{step}: {message}")


class Store(ABC):
    """Backend used by one import run on behalf of ``user_id``."""

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id

    @contextmanager
    def transaction(self, step: str) -> Iterator[None]:
        """Scope of one pipeline step; failures surface as PersistenceError."""
        yield

    @abstractmethod
    def fetch_machine_targets(self) -> dict[str, float]:
        ...

    @abstractmethod
    def upsert_machine_hours(self, aggregates: Sequence[MachineHoursAggregate]) -> int:
        ...

    @abstractmethod
    def insert_scrap(self, aggregates: Sequence[ScrapAggregate]) -> int:
        ...

    @abstractmethod
    def upsert_scrap(self, aggregates: Sequence[ScrapAggregate]) -> int:
        ...

    @abstractmethod
    def insert_machine_targets(self, machines: Sequence[DiscoveredMachine]) -> int:
        ...

    @abstractmethod
    def save_column_mapping(self, mapping_name: str, columns: Mapping[str, str]) -> str:
        ...

    @abstractmethod
    def latest_column_mapping(self) -> dict[str, Any] | None:
        ...

    @abstractmethod
    def archive_rows(self, mapping_id: str | None, file_name: str, records: Sequence[Mapping[str, Any]]) -> int:
        ...

    @abstractmethod
    def fetch_archived_rows(self, mapping_id: str) -> list[dict[str, Any]]:
        ...

    @abstractmethod
    def load_preferences(self) -> dict[str, Any] | None:
        ...

    @abstractmethod
    def save_preferences(self, preferences: Mapping[str, str | None]) -> None:
        ...


def build_dsn(db_cfg: DatabaseConfig) -> str:
    """Connection string, environment first.

    1. DATABASE_URL / PGDSN (whole DSN)
    2. PGHOST / PGPORT / PGUSER / PGPASSWORD / PGDATABASE
    3. the config ``database`` section for anything still missing
    """
    dsn = os.getenv("DATABASE_URL") or os.getenv("PGDSN") or db_cfg.dsn
    if dsn:
        return dsn
    host = os.getenv("PGHOST", db_cfg.host or "localhost")
    port = os.getenv("PGPORT", str(db_cfg.port) if db_cfg.port else "5432")
    user = os.getenv("PGUSER", db_cfg.user or "postgres")
    password = os.getenv("PGPASSWORD", db_cfg.password or "")
    database = os.getenv("PGDATABASE", db_cfg.database or "postgres")
    dsn = f"host={host} port={port} user={user} dbname={database}"
    if password:
        dsn += f" password={password}"
    return dsn


def connect(db_cfg: DatabaseConfig, timeouts: TimeoutConfig) -> Any:
    """Open a psycopg2 connection bounded by connect and statement timeouts."""
    conn = psycopg2.connect(
        build_dsn(db_cfg),
        connect_timeout=timeouts.connect_seconds,
        options=f"-c statement_timeout={timeouts.statement_seconds * 1000}",
    )
    conn.autocommit = True  # explicit BEGIN/COMMIT per step
    return conn


class PostgresStore(Store):
    """Store on a psycopg2 cursor; each step runs in its own transaction."""

    def __init__(self, cursor: Any, user_id: str) -> None:
        super().__init__(user_id)
        self.cursor = cursor

    def _metrics(self, table: str):
        def callback(metrics: BatchMetrics) -> None:
            logger.debug(
                "table=%s batch_size=%d elapsed=%.4fs", table, metrics.batch_size, metrics.elapsed_seconds
            )
        return callback

    @contextmanager
    def transaction(self, step: str) -> Iterator[None]:
        try:
            self.cursor.execute("BEGIN")
        except Exception as e:
            raise PersistenceError(step, f"failed to begin transaction: {e}") from e
        try:
            yield
        except (BatchInsertError, psycopg2.Error) as e:
            self._rollback(step)
            raise PersistenceError(step, str(e)) from e
        except BaseException:
            self._rollback(step)
            raise
        try:
            self.cursor.execute("COMMIT")
        except Exception as e:
            self._rollback(step)
            raise PersistenceError(step, f"commit failed: {e}") from e

    def _rollback(self, step: str) -> None:
        try:
            self.cursor.execute("ROLLBACK")
        except psycopg2.Error:
            logger.warning("step=%s rollback failed", step, exc_info=True)

    def create_schema(self) -> None:
        self.cursor.execute(SCHEMA_SQL.read_text(encoding="utf-8"))

    def fetch_machine_targets(self) -> dict[str, float]:
        self.cursor.execute(
            "SELECT machine_name, target_hours_14d FROM machine_targets WHERE user_id = %s",
            (self.user_id,),
        )
        return {name: float(target or 0) for name, target in self.cursor.fetchall()}

    def upsert_machine_hours(self, aggregates: Sequence[MachineHoursAggregate]) -> int:
        columns = ["user_id", "machine_name", "date", "hours_worked", "target_hours"]
        rows = [[a.to_row(self.user_id)[c] for c in columns] for a in aggregates]
        result = batch_upsert(
            self.cursor,
            "machine_hours",
            columns,
            rows,
            conflict_columns=["user_id", "machine_name", "date"],
            metrics_callback=self._metrics("machine_hours"),
        )
        return result.inserted_rows

    def insert_scrap(self, aggregates: Sequence[ScrapAggregate]) -> int:
        columns = ["user_id", "machine_name", "bab_number", "scrap_amount", "scrap_date"]
        rows = [[a.to_row(self.user_id)[c] for c in columns] for a in aggregates]
        result = batch_insert(
            self.cursor, "scrap_data", columns, rows, metrics_callback=self._metrics("scrap_data")
        )
        return result.inserted_rows

    def upsert_scrap(self, aggregates: Sequence[ScrapAggregate]) -> int:
        # scrap_data has no unique key: replace = delete matching keys, then insert
        for a in aggregates:
            self.cursor.execute(
                "DELETE FROM scrap_data WHERE user_id = %s AND machine_name = %s "
                "AND bab_number = %s AND scrap_date = %s",
                (self.user_id, a.machine_name, a.bab_number, a.scrap_date),
            )
        return self.insert_scrap(aggregates)

    def insert_machine_targets(self, machines: Sequence[DiscoveredMachine]) -> int:
        columns = ["user_id", "machine_name", "target_hours_14d"]
        rows = [[m.to_row(self.user_id)[c] for c in columns] for m in machines]
        # DO NOTHING: a settings screen may have created the machine meanwhile
        result = batch_upsert(
            self.cursor,
            "machine_targets",
            columns,
            rows,
            conflict_columns=["user_id", "machine_name"],
            update_columns=[],
            metrics_callback=self._metrics("machine_targets"),
        )
        return result.inserted_rows

    def save_column_mapping(self, mapping_name: str, columns: Mapping[str, str]) -> str:
        names = ["user_id", "mapping_name", *MAPPING_COLUMNS]
        row = [self.user_id, mapping_name, *(columns.get(c) for c in MAPPING_COLUMNS)]
        result = batch_insert(self.cursor, "column_mappings", names, [row], returning="id")
        return str(result.returned_values[0][0])

    def latest_column_mapping(self) -> dict[str, Any] | None:
        cols = ", ".join(f'"{c}"' for c in ("id", "mapping_name", *MAPPING_COLUMNS))
        self.cursor.execute(
            f"SELECT {cols} FROM column_mappings WHERE user_id = %s ORDER BY created_at DESC, id DESC LIMIT 1",
            (self.user_id,),
        )
        row = self.cursor.fetchone()
        if row is None:
            return None
        data = dict(zip(("id", "mapping_name", *MAPPING_COLUMNS), row))
        data["id"] = str(data["id"])
        return data

    def archive_rows(self, mapping_id: str | None, file_name: str, records: Sequence[Mapping[str, Any]]) -> int:
        columns = ["user_id", "mapping_id", "file_name", "row_data"]
        mid = int(mapping_id) if mapping_id is not None else None
        rows = [[self.user_id, mid, file_name, Json(dict(r))] for r in records]
        result = batch_insert(
            self.cursor, "excel_data", columns, rows, metrics_callback=self._metrics("excel_data")
        )
        return result.inserted_rows

    def fetch_archived_rows(self, mapping_id: str) -> list[dict[str, Any]]:
        self.cursor.execute(
            "SELECT row_data FROM excel_data WHERE user_id = %s AND mapping_id = %s ORDER BY id",
            (self.user_id, int(mapping_id)),
        )
        return [dict(r[0]) for r in self.cursor.fetchall()]

    def load_preferences(self) -> dict[str, Any] | None:
        cols = ", ".join(PREFERENCE_COLUMNS)
        self.cursor.execute(
            f"SELECT {cols} FROM user_preferences WHERE user_id = %s ORDER BY created_at DESC LIMIT 1",
            (self.user_id,),
        )
        row = self.cursor.fetchone()
        return dict(zip(PREFERENCE_COLUMNS, row)) if row is not None else None

    def save_preferences(self, preferences: Mapping[str, str | None]) -> None:
        columns = ["user_id", *PREFERENCE_COLUMNS]
        row = [self.user_id, *(preferences.get(c) for c in PREFERENCE_COLUMNS)]
        batch_upsert(
            self.cursor,
            "user_preferences",
            columns,
            [row],
            conflict_columns=["user_id"],
        )
