from __future__ import annotations

import itertools
import json
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime

"""Notice model: one user-visible message raised at an operation boundary.

Notices back the dismissible banner of a view. The JSON Lines form keeps a
fixed key set so the notice log can be parsed without guessing.
"""

__all__ = [
    "Notice",
]

_ids = itertools.count(1)


@dataclass(frozen=True)
class Notice:
    """Structured banner message.

    Attributes:
        timestamp: ISO8601 UTC timestamp with 'Z' suffix
        scope: view or collection that raised it (e.g. "client_registrations")
        row: row identifier as text, "" for view-level notices
        error_type: FETCH_ERROR | REMOTE_WRITE_ERROR | VALIDATION_ERROR | INFO
        message: text shown to the user
    """
    timestamp: str
    scope: str
    row: str
    error_type: str
    message: str
    notice_id: int = field(default_factory=lambda: next(_ids), compare=False)

    @staticmethod
    def create(scope: str, row: str, error_type: str, message: str) -> Notice:
        ts = datetime.now(UTC).isoformat().replace("+00:00", "Z")
        return Notice(
            timestamp=ts,
            scope=scope,
            row=row,
            error_type=error_type,
            message=message,
        )

    @property
    def is_error(self) -> bool:
        return self.error_type != "INFO"

    def to_json_line(self) -> str:
        data = asdict(self)
        data.pop("notice_id")
        return json.dumps(data, ensure_ascii=False)
