from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field

"""Aggregates derived from validated rows and written to the backend.

- MachineHoursAggregate -> ``machine_hours`` (upsert on user, machine, date)
- ScrapAggregate -> ``scrap_data`` (plain insert unless configured otherwise)
- DiscoveredMachine -> ``machine_targets`` (insert-only for new names)
"""

__all__ = [
    "DiscoveredMachine",
    "ImportResult",
    "MachineHoursAggregate",
    "ScrapAggregate",
]


@dataclass(frozen=True)
class MachineHoursAggregate:
    machine_name: str
    date: str  # ISO day
    hours_worked: float
    target_hours: float = 0.0

    def to_row(self, user_id: str) -> dict[str, object]:
        return {
            "user_id": user_id,
            "machine_name": self.machine_name,
            "date": self.date,
            "hours_worked": self.hours_worked,
            "target_hours": self.target_hours,
        }


@dataclass(frozen=True)
class ScrapAggregate:
    machine_name: str
    bab_number: str
    scrap_date: str  # ISO day
    scrap_amount: float

    def to_row(self, user_id: str) -> dict[str, object]:
        return {
            "user_id": user_id,
            "machine_name": self.machine_name,
            "bab_number": self.bab_number,
            "scrap_amount": self.scrap_amount,
            "scrap_date": self.scrap_date,
        }


@dataclass(frozen=True)
class DiscoveredMachine:
    machine_name: str
    target_hours_14d: float = 0.0

    def to_row(self, user_id: str) -> dict[str, object]:
        return {
            "user_id": user_id,
            "machine_name": self.machine_name,
            "target_hours_14d": self.target_hours_14d,
        }


@dataclass
class ImportResult:
    """Outcome of one aggregate-and-persist run.

    ``skipped`` counts rows excluded from aggregation per reason; these are
    not errors. ``errors`` holds persistence failures per step.
    """
    rows_processed: int = 0
    hours_records: int = 0
    scrap_records: int = 0
    new_machines: int = 0
    archived_rows: int = 0
    mapping_id: str | None = None
    skipped: Counter[str] = field(default_factory=Counter)
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors
