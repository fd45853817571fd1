from __future__ import annotations

import itertools
from collections.abc import Mapping, Sequence
from typing import Any

from ..models.aggregates import DiscoveredMachine, MachineHoursAggregate, ScrapAggregate
from .store import MAPPING_COLUMNS, Store

"""In-process Store used by ``--dry-run`` and as the fake backend in tests.

Write semantics follow the PostgreSQL tables: machine_hours replaces on
(user, machine, date), scrap_data appends, machine_targets keeps existing
rows on conflict. Nothing is shared between instances.
"""

__all__ = ["MemoryStore"]


class MemoryStore(Store):
    def __init__(self, user_id: str = "local", targets: Mapping[str, float] | None = None) -> None:
        super().__init__(user_id)
        self._ids = itertools.count(1)
        self.machine_targets: dict[str, float] = dict(targets or {})
        self.machine_hours: dict[tuple[str, str], MachineHoursAggregate] = {}
        self.scrap_data: list[ScrapAggregate] = []
        self.column_mappings: list[dict[str, Any]] = []
        self.excel_data: list[dict[str, Any]] = []
        self.preferences: dict[str, Any] | None = None

    def fetch_machine_targets(self) -> dict[str, float]:
        return dict(self.machine_targets)

    def upsert_machine_hours(self, aggregates: Sequence[MachineHoursAggregate]) -> int:
        for a in aggregates:
            self.machine_hours[(a.machine_name, a.date)] = a
        return len(aggregates)

    def insert_scrap(self, aggregates: Sequence[ScrapAggregate]) -> int:
        self.scrap_data.extend(aggregates)
        return len(aggregates)

    def upsert_scrap(self, aggregates: Sequence[ScrapAggregate]) -> int:
        keys = {(a.machine_name, a.bab_number, a.scrap_date) for a in aggregates}
        self.scrap_data = [
            s for s in self.scrap_data if (s.machine_name, s.bab_number, s.scrap_date) not in keys
        ]
        return self.insert_scrap(aggregates)

    def insert_machine_targets(self, machines: Sequence[DiscoveredMachine]) -> int:
        for m in machines:
            self.machine_targets.setdefault(m.machine_name, m.target_hours_14d)
        return len(machines)

    def save_column_mapping(self, mapping_name: str, columns: Mapping[str, str]) -> str:
        mapping_id = str(next(self._ids))
        row: dict[str, Any] = {"id": mapping_id, "mapping_name": mapping_name}
        row.update({c: columns.get(c) for c in MAPPING_COLUMNS})
        self.column_mappings.append(row)
        return mapping_id

    def latest_column_mapping(self) -> dict[str, Any] | None:
        return dict(self.column_mappings[-1]) if self.column_mappings else None

    def archive_rows(self, mapping_id: str | None, file_name: str, records: Sequence[Mapping[str, Any]]) -> int:
        for r in records:
            self.excel_data.append({"mapping_id": mapping_id, "file_name": file_name, "row_data": dict(r)})
        return len(records)

    def fetch_archived_rows(self, mapping_id: str) -> list[dict[str, Any]]:
        return [dict(r["row_data"]) for r in self.excel_data if r["mapping_id"] == mapping_id]

    def load_preferences(self) -> dict[str, Any] | None:
        return dict(self.preferences) if self.preferences is not None else None

    def save_preferences(self, preferences: Mapping[str, str | None]) -> None:
        self.preferences = dict(preferences)

    def stored_hours(self) -> dict[tuple[str, str], float]:
        """(machine, day) -> hours_worked, for inspection."""
        return {k: v.hours_worked for k, v in self.machine_hours.items()}
