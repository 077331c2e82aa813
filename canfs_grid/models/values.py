from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Union

"""Cell values and row identifiers.

A Record is an open map from field name to a small closed set of scalar
variants. Rows are addressed by a tagged identifier: rows that exist in the
remote store carry a ``PersistedId``; rows created locally and not yet
inserted carry a ``PendingId`` whose token never leaves the process.
"""

__all__ = [
    "CellValue",
    "Record",
    "PersistedId",
    "PendingId",
    "RowId",
    "new_pending_id",
    "row_id_of",
]

CellValue = Union[str, int, float, bool, datetime, None]
Record = dict[str, CellValue]


@dataclass(frozen=True)
class PersistedId:
    """Identifier issued by the remote store."""
    value: str | int

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class PendingId:
    """Local placeholder for a row that has not been inserted yet."""
    token: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __str__(self) -> str:
        return f"pending:{self.token}"


RowId = Union[PersistedId, PendingId]


def new_pending_id() -> PendingId:
    return PendingId()


def row_id_of(record: Record, id_field: str = "id") -> PersistedId:
    """Wrap the store identifier held in ``record[id_field]``.

    Raises:
        KeyError: if the record carries no identifier
    """
    value = record.get(id_field)
    if value is None:
        raise KeyError(f"record has no '{id_field}' value")
    if isinstance(value, (bool, float, datetime)):
        raise KeyError(f"record '{id_field}' is not a usable identifier: {value!r}")
    return PersistedId(value)
