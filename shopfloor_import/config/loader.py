from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.config_models import (
    DatabaseConfig,
    HoursRule,
    ImportConfig,
    ImportOptions,
    RowFilter,
    ScrapGrouping,
    ScrapWrite,
    TimeoutConfig,
)

"""Config loader.

Responsibilities:
- Load YAML config (default config/import.yml)
- Validate against the bundled JSON schema
- Apply defaults and build the frozen config dataclasses
"""

SCHEMA_PATH = Path(__file__).with_name("config_schema.json")
DEFAULT_CONFIG_PATH = Path("config/import.yml")


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: schema file missing or not JSON, or the config violates
            the schema (missing required keys, wrong types, unknown keys).
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def _build_options(raw: dict[str, Any]) -> ImportOptions:
    defaults = ImportOptions()
    return ImportOptions(
        row_filter=RowFilter(raw.get("row_filter", defaults.row_filter.value)),
        hours_rule=HoursRule(raw.get("hours_rule", defaults.hours_rule.value)),
        scrap_grouping=ScrapGrouping(raw.get("scrap_grouping", defaults.scrap_grouping.value)),
        scrap_write=ScrapWrite(raw.get("scrap_write", defaults.scrap_write.value)),
        target_scale=float(raw.get("target_scale", defaults.target_scale)),
        archive_rows=bool(raw.get("archive_rows", defaults.archive_rows)),
        strict_machine_names=bool(raw.get("strict_machine_names", defaults.strict_machine_names)),
    )


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> ImportConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError("config validation failed: top level must be a mapping")
    _validate_config_schema(data)

    db_raw = data.get("database") or {}
    db = DatabaseConfig(
        host=db_raw.get("host"),
        port=db_raw.get("port"),
        user=db_raw.get("user"),
        password=db_raw.get("password"),
        database=db_raw.get("database"),
        dsn=db_raw.get("dsn"),
    )
    timeouts_raw = data.get("timeouts") or {}
    timeouts = TimeoutConfig(
        connect_seconds=timeouts_raw.get("connect_seconds", TimeoutConfig.connect_seconds),
        statement_seconds=timeouts_raw.get("statement_seconds", TimeoutConfig.statement_seconds),
    )

    # hours field set implies the direct hours column unless configured otherwise
    import_raw = dict(data.get("import") or {})
    field_set = data.get("field_set", "production")
    if field_set == "hours":
        import_raw.setdefault("hours_rule", HoursRule.DIRECT.value)

    return ImportConfig(
        source_directory=data["source_directory"],
        user_id=os.getenv("SHOPFLOOR_USER_ID") or data.get("user_id", "local"),
        mapping_name=data.get("mapping_name", "Standard Mapping"),
        field_set=field_set,
        mapping=data.get("mapping"),
        options=_build_options(import_raw),
        timeouts=timeouts,
        database=db,
    )
