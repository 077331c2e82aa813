from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import tzinfo
from pathlib import Path
from typing import Any

import pandas as pd

from canfs_grid.fields.coercion import calendar_date, list_items, to_local_naive
from canfs_grid.grid.view_model import GridViewModel
from canfs_grid.models.field_definition import FieldDefinition, FieldType
from canfs_grid.models.values import Record

"""Spreadsheet export of the rows a view currently holds.

pandas writes the workbook (openpyxl engine). Timestamps become naive local
wall-clock datetimes (spreadsheets have no timezone), list columns are
comma-joined, and nothing is refetched: what the grid holds is what gets
written.
"""

__all__ = [
    "ExportError",
    "rows_to_frame",
    "write_workbook",
    "export_view",
]

logger = logging.getLogger(__name__)

DEFAULT_SHEET = "Sheet1"


class ExportError(Exception):
    pass


def _cell(f: FieldDefinition, value: Any, tz: tzinfo) -> Any:
    if f.type is FieldType.DATE and f.date_only:
        return calendar_date(value)
    if f.type in (FieldType.DATE, FieldType.DATETIME):
        local = to_local_naive(value, tz)
        if local is not None and f.type is FieldType.DATE:
            return local.date()
        return local
    if f.type is FieldType.LIST or isinstance(value, (list, tuple)):
        return ", ".join(list_items(value))
    return value


def rows_to_frame(rows: Sequence[Record], fields: Sequence[FieldDefinition], tz: tzinfo) -> pd.DataFrame:
    """One column per field (labels as headers), one row per record."""
    data = [{f.label: _cell(f, r.get(f.key), tz) for f in fields} for r in rows]
    return pd.DataFrame(data, columns=[f.label for f in fields])


def write_workbook(frame: pd.DataFrame, path: Path, *, sheet_name: str = DEFAULT_SHEET) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        frame.to_excel(path, sheet_name=sheet_name, index=False, engine="openpyxl")
    except (OSError, ValueError) as e:
        raise ExportError(f"cannot write {path}: {e}") from e
    logger.info("wrote %s rows=%d", path, len(frame))
    return path


def export_view(
    view: GridViewModel,
    directory: Path,
    *,
    filename: str | None = None,
    sheet_name: str | None = None,
) -> Path:
    """Write the view's current rows (every fetched row for client-side views)."""
    rows = view.all_rows()
    fields = view.visible_fields()
    frame = rows_to_frame(rows, fields, view.config.tzinfo)
    name = filename or f"{view.name}.xlsx"
    return write_workbook(frame, directory / name, sheet_name=sheet_name or DEFAULT_SHEET)
