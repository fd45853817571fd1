from __future__ import annotations

from ..models.processing_result import ProcessingResult

"""SUMMARY line rendering.

Format (one line, space separated ``key=value`` pairs):

SUMMARY files={done}/{total} success={n} failed={n} rows={n} invalid_rows={n}
hours_records={n} scrap_records={n} new_machines={n} elapsed_sec={s}
throughput_rps={r}
"""


def _format_number(value: float) -> str:
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if abs(value) < 0.01:
        # avoid scientific notation for tiny values
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return f"{value:.3f}".rstrip("0").rstrip(".")


def render_summary_line(total_files: int, result: ProcessingResult) -> str:
    """Render the SUMMARY line for a finished run.

    >>> from datetime import datetime, timezone
    >>> t = datetime(2024, 1, 15, 8, 0, tzinfo=timezone.utc)
    >>> result = ProcessingResult(
    ...     success_files=1, failed_files=0, total_rows=10, invalid_rows=1,
    ...     hours_records=2, scrap_records=1, new_machines=1, start_time=t,
    ...     end_time=t, elapsed_seconds=2.0, throughput_rows_per_sec=5.0,
    ... )
    >>> render_summary_line(1, result)
    'SUMMARY files=1/1 success=1 failed=0 rows=10 invalid_rows=1 hours_records=2 scrap_records=1 new_machines=1 elapsed_sec=2 throughput_rps=5'
    """
    done = result.success_files + result.failed_files
    return (
        f"SUMMARY files={done}/{total_files} "
        f"success={result.success_files} "
        f"failed={result.failed_files} "
        f"rows={result.total_rows} "
        f"invalid_rows={result.invalid_rows} "
        f"hours_records={result.hours_records} "
        f"scrap_records={result.scrap_records} "
        f"new_machines={result.new_machines} "
        f"elapsed_sec={_format_number(result.elapsed_seconds)} "
        f"throughput_rps={_format_number(result.throughput_rows_per_sec)}"
    )
