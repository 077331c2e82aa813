from __future__ import annotations

import logging
from datetime import UTC, datetime
from pathlib import Path

from canfs_grid.models.notice import Notice

"""Notice board: the error banner behind every grid and form.

- Errors caught at an operation boundary are posted here instead of raised
- The UI shows ``active`` notices and calls ``dismiss`` when the user closes one
- Every post is also logged through the package logger
- ``flush()`` appends the posted notices to ``logs/notices-YYYYMMDD-HHMMSS.log``
  as JSON Lines
"""

__all__ = [
    "Notice",
    "NoticeBoard",
]

LOGS_DIR = Path("./logs")
TIMESTAMP_FMT = "%Y%m%d-%H%M%S"

logger = logging.getLogger(__name__)


class NoticeBoard:
    """In-memory banner state plus a pending buffer for the notice log.

    Not thread safe; a board belongs to one view on one event loop.
    """
    def __init__(self, logs_dir: Path | None = None) -> None:
        self._active: list[Notice] = []
        self._pending: list[Notice] = []
        self._logs_dir = logs_dir or LOGS_DIR
        self._file_path: Path | None = None

    @property
    def file_path(self) -> Path:
        if self._file_path is None:
            self._logs_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now(UTC).strftime(TIMESTAMP_FMT)
            self._file_path = self._logs_dir / f"notices-{stamp}.log"
        return self._file_path

    def post(self, scope: str, error_type: str, message: str, row: object = "") -> Notice:
        notice = Notice.create(scope=scope, row=str(row), error_type=error_type, message=message)
        self._active.append(notice)
        self._pending.append(notice)
        if notice.is_error:
            logger.warning("%s scope=%s row=%s %s", error_type, scope, notice.row or "-", message)
        else:
            logger.info("scope=%s %s", scope, message)
        return notice

    def error(self, scope: str, exc: Exception, row: object = "") -> Notice:
        """Post an exception; its class name becomes the UPPER_SNAKE error type."""
        return self.post(scope, _error_type_of(exc), str(exc) or type(exc).__name__, row)

    def info(self, scope: str, message: str) -> Notice:
        return self.post(scope, "INFO", message)

    @property
    def active(self) -> list[Notice]:
        return list(self._active)

    @property
    def latest_error(self) -> Notice | None:
        for notice in reversed(self._active):
            if notice.is_error:
                return notice
        return None

    def dismiss(self, notice_id: int) -> None:
        self._active = [n for n in self._active if n.notice_id != notice_id]

    def clear(self) -> None:
        self._active.clear()

    def __len__(self) -> int:
        return len(self._active)

    def flush(self) -> Path:
        if not self._pending:
            return self.file_path
        fp = self.file_path
        with fp.open("a", encoding="utf-8") as f:
            for n in self._pending:
                f.write(n.to_json_line() + "\n")
        self._pending.clear()
        return fp


def _error_type_of(exc: Exception) -> str:
    name = type(exc).__name__
    out = []
    for i, ch in enumerate(name):
        if ch.isupper() and i > 0 and not name[i - 1].isupper():
            out.append("_")
        out.append(ch.upper())
    return "".join(out)
