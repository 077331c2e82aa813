from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

"""FieldDefinition model: one column of an editable grid or form.

A definition is declared once per view and never mutated. Its ``type`` picks
both the input widget and the coercion applied to the raw string before a
write.
"""

__all__ = [
    "FieldType",
    "SortDirection",
    "FieldDefinition",
]


class FieldType(Enum):
    """Semantic column type.

    - TEXT / TEXTAREA: free text (TEXTAREA wraps)
    - NUMBER: int or float
    - DATE: calendar date, stored as the absolute timestamp of local midnight
      (or as a plain date when the field is ``date_only``)
    - DATETIME: local date and time, stored as an absolute timestamp
    - TIME: time of day, stored as ``HH:MM`` text
    - BOOLEAN: two-state toggle
    - SELECT: one value out of ``options``
    - LIST: multi-value column, read-only in the grid
    """
    TEXT = "text"
    TEXTAREA = "textarea"
    NUMBER = "number"
    DATE = "date"
    DATETIME = "datetime"
    TIME = "time"
    BOOLEAN = "boolean"
    SELECT = "select"
    LIST = "list"

    @property
    def is_temporal(self) -> bool:
        return self in (FieldType.DATE, FieldType.DATETIME)


class SortDirection(Enum):
    ASC = "asc"
    DESC = "desc"

    def flipped(self) -> SortDirection:
        return SortDirection.DESC if self is SortDirection.ASC else SortDirection.ASC


@dataclass(frozen=True)
class FieldDefinition:
    """Column declaration.

    ``sort_key`` names the sort key a header click activates (None = not
    sortable). ``default_direction`` is the direction used the first time the
    column becomes the active sort, e.g. DESC for "most recent first" date
    columns. ``date_only`` DATE fields are written as a plain calendar date
    instead of a timestamp.
    """
    key: str
    label: str
    type: FieldType = FieldType.TEXT
    options: tuple[str, ...] | None = None
    sort_key: str | None = None
    default_direction: SortDirection = SortDirection.ASC
    required: bool = False
    width: int | None = None  # preferred initial width in px
    date_only: bool = False

    @property
    def editable(self) -> bool:
        return self.type is not FieldType.LIST

    @property
    def sortable(self) -> bool:
        return self.sort_key is not None
