from __future__ import annotations

from ..models.export_result import ExportResult

"""SUMMARY line rendering for the export CLI."""

__all__ = [
    "render_summary_line",
]


def _fmt_seconds(value: float) -> str:
    if value == 0:
        return "0"
    if value == int(value):
        return str(int(value))
    if value < 0.01:
        # keep tiny values out of scientific notation
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return f"{value:.3f}".rstrip("0").rstrip(".")


def render_summary_line(result: ExportResult) -> str:
    """Render the SUMMARY line of one export run.

    Examples:
        >>> from datetime import datetime, timezone
        >>> start = datetime(2024, 1, 1, 10, 0, 0, tzinfo=timezone.utc)
        >>> end = datetime(2024, 1, 1, 10, 0, 2, tzinfo=timezone.utc)
        >>> render_summary_line(ExportResult(start, end))
        'SUMMARY views=0/0 success=0 failed=0 rows=0 elapsed_sec=2'
    """
    total = len(result.views)
    return (
        f"SUMMARY views={result.success_views}/{total} "
        f"success={result.success_views} "
        f"failed={result.failed_views} "
        f"rows={result.total_rows} "
        f"elapsed_sec={_fmt_seconds(result.elapsed_seconds)}"
    )
