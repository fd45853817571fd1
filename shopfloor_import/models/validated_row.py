from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

"""ValidatedRow and ValidationSummary models.

A ValidatedRow is produced by the row validator for every raw data row. It
is valid iff its error list is empty. Rows are never dropped at validation
time; which rows reach aggregation is decided by the caller.
"""

__all__ = [
    "ValidatedRow",
    "ValidationSummary",
]


@dataclass(frozen=True)
class ValidatedRow:
    row_index: int  # 1-based sheet row (header is row 1, first data row is 2)
    values: dict[str, Any] = field(default_factory=dict)  # field key -> typed value | None
    errors: tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)


@dataclass(frozen=True)
class ValidationSummary:
    total_rows: int
    valid_rows: int
    invalid_rows: int
    errors: tuple[str, ...] = ()

    def preview_errors(self, limit: int = 10) -> list[str]:
        """First ``limit`` messages plus a ``+K weitere`` line for the rest."""
        shown = list(self.errors[:limit])
        remaining = len(self.errors) - len(shown)
        if remaining > 0:
            shown.append(f"+{remaining} weitere Fehler")
        return shown
