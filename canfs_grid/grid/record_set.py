from __future__ import annotations

from collections.abc import Iterable, Iterator

from canfs_grid.models.values import CellValue, PersistedId, Record, row_id_of

"""Baseline records of one fetched page, in fetch order."""

__all__ = [
    "RecordSet",
]


class RecordSet:
    """Last successfully fetched rows of a view, addressable by row id.

    Superseded wholesale by ``replace`` on every applied fetch; single
    fields are patched in place after a successful commit.
    """

    def __init__(self, id_field: str = "id") -> None:
        self.id_field = id_field
        self._rows: dict[PersistedId, Record] = {}

    def replace(self, rows: Iterable[Record]) -> None:
        fresh: dict[PersistedId, Record] = {}
        for r in rows:
            fresh[row_id_of(r, self.id_field)] = dict(r)
        self._rows = fresh

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[Record]:
        return iter(self._rows.values())

    def __contains__(self, row_id: object) -> bool:
        return row_id in self._rows

    def ids(self) -> list[PersistedId]:
        return list(self._rows)

    def items(self) -> list[tuple[PersistedId, Record]]:
        return list(self._rows.items())

    def get(self, row_id: PersistedId) -> Record | None:
        return self._rows.get(row_id)

    def value(self, row_id: PersistedId, key: str) -> CellValue:
        row = self._rows.get(row_id)
        return None if row is None else row.get(key)

    def apply(self, row_id: PersistedId, key: str, value: CellValue) -> bool:
        """Patch one field; False when the row is no longer on the page."""
        row = self._rows.get(row_id)
        if row is None:
            return False
        row[key] = value
        return True

    def keys(self) -> list[str]:
        """Union of field names in fetch order."""
        seen: dict[str, None] = {}
        for r in self._rows.values():
            for k in r:
                seen.setdefault(k, None)
        return list(seen)

    def to_list(self) -> list[Record]:
        return [dict(r) for r in self._rows.values()]
