"""Domain models for the shop-floor spreadsheet import."""

from .aggregates import DiscoveredMachine, ImportResult, MachineHoursAggregate, ScrapAggregate
from .column_mapping import ColumnMapping
from .config_models import (
    DatabaseConfig,
    HoursRule,
    ImportConfig,
    ImportOptions,
    RowFilter,
    ScrapGrouping,
    ScrapWrite,
    TimeoutConfig,
)
from .field_schema import FieldSpec, FieldType
from .raw_table import RawTable
from .validated_row import ValidatedRow, ValidationSummary

__all__ = [
    # Configuration models
    "DatabaseConfig",
    "HoursRule",
    "ImportConfig",
    "ImportOptions",
    "RowFilter",
    "ScrapGrouping",
    "ScrapWrite",
    "TimeoutConfig",
    # Pipeline models
    "ColumnMapping",
    "DiscoveredMachine",
    "FieldSpec",
    "FieldType",
    "ImportResult",
    "MachineHoursAggregate",
    "RawTable",
    "ScrapAggregate",
    "ValidatedRow",
    "ValidationSummary",
]
