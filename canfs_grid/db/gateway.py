from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from canfs_grid.models.sort_state import PageWindow
from canfs_grid.models.values import CellValue, PersistedId, Record

"""Remote row gateway interface.

The grid and the row manager only talk to the store through this narrow,
table-bound interface. Every method is a coroutine and every call is a
suspension point. Implementations raise ``FetchError`` for failed reads and
``RemoteWriteError`` for failed writes; nothing else escapes.

Filters cover what the store can express:
- case-insensitive substring, OR-combined over a fixed set of text fields
- exact / range match on date fields (ranges AND-combined, or OR-combined
  with ``ranges_match_any``)
- exact match on enumerated status fields
"""

__all__ = [
    "GatewayError",
    "FetchError",
    "RemoteWriteError",
    "TextSearch",
    "DateRange",
    "QueryFilter",
    "OrderBy",
    "RowGateway",
    "RemoteStore",
]


class GatewayError(Exception):
    pass


class FetchError(GatewayError):
    """``count`` or ``fetch`` failed."""


class RemoteWriteError(GatewayError):
    """``update``, ``insert`` or ``delete`` failed."""


@dataclass(frozen=True)
class TextSearch:
    needle: str
    fields: tuple[str, ...]


@dataclass(frozen=True)
class DateRange:
    """``start <= field < end``; either bound may be open."""
    field: str
    start: datetime | None = None
    end: datetime | None = None


@dataclass(frozen=True)
class QueryFilter:
    search: TextSearch | None = None
    equals: tuple[tuple[str, CellValue], ...] = ()
    ranges: tuple[DateRange, ...] = ()
    ranges_match_any: bool = False

    @property
    def is_empty(self) -> bool:
        return self.search is None and not self.equals and not self.ranges

    def with_equals(self, field: str, value: CellValue) -> QueryFilter:
        kept = tuple((k, v) for k, v in self.equals if k != field)
        return QueryFilter(
            search=self.search,
            equals=kept + ((field, value),),
            ranges=self.ranges,
            ranges_match_any=self.ranges_match_any,
        )


@dataclass(frozen=True)
class OrderBy:
    column: str
    ascending: bool = True


class RowGateway(Protocol):
    """Table-bound row access."""

    table: str
    id_field: str

    async def count(self, filter: QueryFilter) -> int: ...

    async def fetch(
        self,
        filter: QueryFilter,
        sort: Sequence[OrderBy] = (),
        page: PageWindow | None = None,
    ) -> list[Record]: ...

    async def update(self, row_id: PersistedId, changes: Mapping[str, CellValue]) -> Record: ...

    async def insert(self, partial: Mapping[str, CellValue]) -> Record: ...

    async def delete(self, row_id: PersistedId) -> None: ...


class RemoteStore(Protocol):
    """Process-wide handle; hands out one gateway per table."""

    def table(self, name: str, id_field: str = "id") -> RowGateway: ...
