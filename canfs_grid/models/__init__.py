"""Domain models shared by the grid, the row manager and the CLI."""

from .export_result import ExportResult, ViewExport
from .field_definition import FieldDefinition, FieldType, SortDirection
from .notice import Notice
from .sort_state import PageWindow, SortState
from .values import CellValue, PendingId, PersistedId, Record, RowId, new_pending_id, row_id_of

__all__ = [
    # Field declarations
    "FieldDefinition",
    "FieldType",
    "SortDirection",
    # Row values and identifiers
    "CellValue",
    "Record",
    "PersistedId",
    "PendingId",
    "RowId",
    "new_pending_id",
    "row_id_of",
    # View state
    "SortState",
    "PageWindow",
    # Notices and results
    "Notice",
    "ExportResult",
    "ViewExport",
]
