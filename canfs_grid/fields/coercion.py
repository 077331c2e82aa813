from __future__ import annotations

import math
import re
from datetime import UTC, date, datetime, time, tzinfo
from typing import Any

from canfs_grid.models.field_definition import FieldDefinition, FieldType
from canfs_grid.models.values import CellValue

"""Per-type coercion between raw input strings, stored values and display text.

Raw input is what a widget holds (always text, except a checkbox may hand in
a bool). Stored values are what the gateway writes. Display text is what a
cell shows when no draft is pending.

Temporal rules:
- DATETIME: local ``YYYY-MM-DD HH:MM`` (``T`` separator accepted) <->
  timezone-aware UTC timestamp
- DATE: local ``YYYY-MM-DD`` <-> UTC timestamp of local midnight
- DATE with ``date_only``: ``YYYY-MM-DD`` <-> plain calendar date, no shift
- TIME: ``HH:MM`` text; seconds are dropped

Naive timestamps coming back from the store are read as UTC. Local times
that fall into a DST gap or overlap resolve with ``fold=0``; a value entered
inside a spring-forward gap does not display identically after a round trip.
"""

__all__ = [
    "ValidationError",
    "calendar_date",
    "coerce",
    "check_required",
    "format_display",
    "list_items",
    "parse_local_datetime",
    "parse_local_date",
    "to_local_display",
    "to_local_naive",
]

DATETIME_DISPLAY_FMT = "%Y-%m-%d %H:%M"
DATE_DISPLAY_FMT = "%Y-%m-%d"

_INT_RE = re.compile(r"^[+-]?\d+$")
_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")
_TRUE = {"true", "yes", "y", "1", "on"}
_FALSE = {"false", "no", "n", "0", "off"}


class ValidationError(Exception):
    """Client-side rejection of a value before anything is sent to the store."""

    def __init__(self, message: str, field_key: str | None = None) -> None:
        super().__init__(message)
        self.field_key = field_key


def parse_local_datetime(raw: str, tz: tzinfo) -> datetime | None:
    s = raw.strip()
    if not s:
        return None
    try:
        parsed = datetime.fromisoformat(s)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed.astimezone(UTC)


def parse_local_date(raw: str, tz: tzinfo) -> datetime | None:
    s = raw.strip()
    if not s:
        return None
    try:
        day = date.fromisoformat(s[:10])
    except ValueError:
        return None
    return datetime.combine(day, time(0, 0), tzinfo=tz).astimezone(UTC)


def calendar_date(value: Any) -> date | None:
    """Calendar day of a date-only value (date, datetime or ISO text), no timezone shift."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


def _parse_number(raw: str) -> int | float | None:
    s = raw.strip()
    if not s:
        return None
    if _INT_RE.match(s):
        return int(s)
    try:
        n = float(s)
    except ValueError:
        return None
    return n if math.isfinite(n) else None


def _parse_time(raw: str) -> str | None:
    m = _TIME_RE.match(raw.strip())
    if not m:
        return None
    hh, mm = int(m.group(1)), int(m.group(2))
    if hh > 23 or mm > 59:
        return None
    return f"{hh:02d}:{mm:02d}"


def _parse_bool(raw: str | bool) -> bool | None:
    if isinstance(raw, bool):
        return raw
    s = raw.strip().lower()
    if not s:
        return None
    if s in _TRUE:
        return True
    if s in _FALSE:
        return False
    return None


def coerce(field: FieldDefinition, raw: str | bool | None, tz: tzinfo = UTC) -> CellValue:
    """Convert a raw widget value into the value written to the store.

    Raises:
        ValidationError: read-only LIST column, or a SELECT value outside
            the declared options
    """
    if raw is None:
        return None
    ftype = field.type
    if ftype is FieldType.BOOLEAN:
        return _parse_bool(raw)
    if isinstance(raw, bool):
        raw = "true" if raw else "false"

    if ftype in (FieldType.TEXT, FieldType.TEXTAREA):
        return raw if raw.strip() else None
    if ftype is FieldType.NUMBER:
        return _parse_number(raw)
    if ftype is FieldType.DATETIME:
        return parse_local_datetime(raw, tz)
    if ftype is FieldType.DATE:
        if field.date_only:
            return calendar_date(raw)
        return parse_local_date(raw, tz)
    if ftype is FieldType.TIME:
        return _parse_time(raw)
    if ftype is FieldType.SELECT:
        value = raw.strip()
        if not value:
            return None
        if field.options is not None and value not in field.options:
            raise ValidationError(f"{field.label}: '{value}' is not one of the allowed values", field.key)
        return value
    raise ValidationError(f"{field.label} is read-only", field.key)


def check_required(field: FieldDefinition, value: CellValue) -> None:
    if field.required and (value is None or (isinstance(value, str) and not value.strip())):
        raise ValidationError(f"{field.label} is required", field.key)


def _as_utc(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time(0, 0))
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def to_local_display(value: Any, tz: tzinfo, fmt: str = DATETIME_DISPLAY_FMT) -> str:
    """Render a stored timestamp in the local timezone, "" when unparsable."""
    if isinstance(value, date) and not isinstance(value, datetime):
        # a bare calendar date has no instant to shift
        return value.strftime(fmt) if fmt == DATE_DISPLAY_FMT else value.isoformat()
    if isinstance(value, str) and len(value.strip()) == 10 and fmt == DATE_DISPLAY_FMT:
        try:
            return date.fromisoformat(value.strip()).isoformat()
        except ValueError:
            return ""
    ts = _as_utc(value)
    if ts is None:
        return ""
    return ts.astimezone(tz).strftime(fmt)


def to_local_naive(value: Any, tz: tzinfo) -> datetime | None:
    """Stored timestamp as a naive wall-clock datetime in ``tz`` (spreadsheet cells)."""
    ts = _as_utc(value)
    if ts is None:
        return None
    return ts.astimezone(tz).replace(tzinfo=None)


def list_items(value: Any) -> list[str]:
    """Items of a multi-value column (array or comma-joined text)."""
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return [str(v).strip() for v in value if v is not None and str(v).strip()]
    return [part.strip() for part in str(value).split(",") if part.strip()]


def format_display(field: FieldDefinition, value: Any, tz: tzinfo = UTC) -> str:
    """Text shown in a cell (and preloaded into its input) for a stored value."""
    ftype = field.type
    if ftype is FieldType.DATETIME:
        return to_local_display(value, tz, DATETIME_DISPLAY_FMT)
    if ftype is FieldType.DATE:
        if field.date_only:
            day = calendar_date(value)
            return day.isoformat() if day is not None else ""
        return to_local_display(value, tz, DATE_DISPLAY_FMT)
    if ftype is FieldType.TIME:
        if isinstance(value, time):
            return value.strftime("%H:%M")
        if value is None:
            return ""
        return _parse_time(str(value)) or ""
    if ftype is FieldType.BOOLEAN:
        return "Yes" if value is True else "No"
    if ftype is FieldType.LIST:
        return ", ".join(list_items(value))
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
