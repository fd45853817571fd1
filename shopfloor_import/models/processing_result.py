from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

"""Run-level result models for the directory import.

FileStat is collected per uploaded file; ProcessingResult aggregates them and
feeds the SUMMARY line.
"""


@dataclass(frozen=True)
class FileStat:
    """Per-file import statistics."""
    file_name: str
    status: str  # success/failed
    total_rows: int  # data rows read
    valid_rows: int
    invalid_rows: int
    hours_records: int
    scrap_records: int
    new_machines: int
    elapsed_seconds: float
    error: str | None = None


@dataclass(frozen=True)
class ProcessingResult:
    """Aggregated results of one CLI run."""
    success_files: int
    failed_files: int
    total_rows: int
    invalid_rows: int
    hours_records: int
    scrap_records: int
    new_machines: int
    start_time: datetime
    end_time: datetime
    elapsed_seconds: float
    throughput_rows_per_sec: float  # total_rows / elapsed
    file_stats: list[FileStat] | None = None
