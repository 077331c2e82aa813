from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

"""Export result models: what one CLI export run produced."""

__all__ = [
    "ViewExport",
    "ExportResult",
]


@dataclass(frozen=True)
class ViewExport:
    """Outcome of exporting one view.

    ``path`` is None when the view failed (``error`` then holds the message).
    """
    view: str
    rows: int
    elapsed_seconds: float
    path: Path | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class ExportResult:
    """Aggregate over every view of one run; feeds the SUMMARY line."""
    start_time: datetime
    end_time: datetime
    views: tuple[ViewExport, ...] = field(default_factory=tuple)

    @property
    def success_views(self) -> int:
        return sum(1 for v in self.views if v.ok)

    @property
    def failed_views(self) -> int:
        return sum(1 for v in self.views if not v.ok)

    @property
    def total_rows(self) -> int:
        return sum(v.rows for v in self.views if v.ok)

    @property
    def elapsed_seconds(self) -> float:
        return (self.end_time - self.start_time).total_seconds()
