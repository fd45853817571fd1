from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import UTC, datetime

"""ErrorRecord model for the JSON-lines error log.

One record per problem found while importing a file: unreadable/unsupported
files, incomplete mappings, per-cell validation errors and backend write
failures. ``row=-1`` marks file-level errors where no row applies.
"""

__all__ = [
    "ERROR_TYPES",
    "ErrorRecord",
]

ERROR_TYPES = frozenset(
    {
        "FORMAT_ERROR",
        "MAPPING_ERROR",
        "VALIDATION_ERROR",
        "PERSISTENCE_ERROR",
        "PROCESSING_ERROR",
    }
)


@dataclass(frozen=True)
class ErrorRecord:
    """Structured error record for JSON Lines logging.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        file: uploaded file name
        row: 1-based sheet row, -1 for file-level errors
        error_type: one of ERROR_TYPES
        message: user-facing message or backend error text
    """
    timestamp: str
    file: str
    row: int
    error_type: str
    message: str

    @staticmethod
    def create(file: str, row: int, error_type: str, message: str) -> ErrorRecord:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return ErrorRecord(
            timestamp=ts,
            file=file,
            row=row,
            error_type=error_type,
            message=message,
        )

    def to_json_line(self) -> str:
        # fixed key set, no extras
        return json.dumps(asdict(self), ensure_ascii=False)
