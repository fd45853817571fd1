from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Union

"""Config dataclasses for the shop-floor import tool.

The loader in shopfloor_import/config/loader.py builds these from the YAML
file after schema validation; everything downstream only sees these types.
"""


class RowFilter(Enum):
    """Which validated rows reach aggregation."""
    VALID_ONLY = "valid_only"
    ALL = "all"


class HoursRule(Enum):
    """How worked hours are derived from a row."""
    DIRECT = "direct"  # read the ``hours`` field
    SETUP_PLUS_PRODUCTION = "setup_plus_production"  # (setup_time + production_time) / 60


class ScrapGrouping(Enum):
    GROUPED = "grouped"  # one record per (order, machine, day)
    PER_ROW = "per_row"  # one record per qualifying row


class ScrapWrite(Enum):
    INSERT = "insert"  # re-importing a file accumulates scrap
    UPSERT = "upsert"  # replace on (user, machine, order, day)


@dataclass(frozen=True)
class DatabaseConfig:
    """Database connection fallback.

    Environment variables (DATABASE_URL / PGDSN / PG*) take precedence.
    """
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    database: str | None = None
    dsn: str | None = None


@dataclass(frozen=True)
class TimeoutConfig:
    connect_seconds: int = 10
    statement_seconds: int = 30


@dataclass(frozen=True)
class ImportOptions:
    """Aggregation configuration shared by upload and backfill runs."""
    row_filter: RowFilter = RowFilter.VALID_ONLY
    hours_rule: HoursRule = HoursRule.SETUP_PLUS_PRODUCTION
    scrap_grouping: ScrapGrouping = ScrapGrouping.GROUPED
    scrap_write: ScrapWrite = ScrapWrite.INSERT
    # multiplier on the stored 14-day target attached to daily aggregates
    target_scale: float = 1.0
    archive_rows: bool = True
    strict_machine_names: bool = False


@dataclass(frozen=True)
class ImportConfig:
    """Root configuration object for an import run."""
    source_directory: str
    user_id: str = "local"
    mapping_name: str = "Standard Mapping"
    field_set: str = "production"
    # field key -> column index (int) or header name (str); None = auto-detect
    mapping: dict[str, Union[int, str]] | None = None
    options: ImportOptions = field(default_factory=ImportOptions)
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
