from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from datetime import UTC, datetime, tzinfo
from typing import Any

from canfs_grid.db.gateway import DateRange, OrderBy, QueryFilter, TextSearch
from canfs_grid.fields.coercion import format_display
from canfs_grid.fields.registry import FieldRegistry
from canfs_grid.models.field_definition import FieldType, SortDirection
from canfs_grid.models.sort_state import SortState
from canfs_grid.models.values import CellValue, Record

logger = logging.getLogger(__name__)

"""Sort and filter state of one view, and the query it maps to.

Free-text search is sent to the store as an OR-combined case-insensitive
substring predicate over the view's search fields. When any searched field
is one the store cannot match (a list-valued or derived column), the whole
search runs as a post filter over the fetched rows instead. A post filter
only sees the page already fetched: a server-paged view can show a short
page and a count that disagrees with it.
"""

__all__ = [
    "Debouncer",
    "SortFilterController",
    "sort_value",
]


class Debouncer:
    """Trailing-edge debounce on the running event loop.

    ``trigger`` (re)arms a timer; when it fires without being re-armed the
    callback runs as a task. A callback that already started is not
    cancelled by a later trigger.
    """

    def __init__(self, delay: float, callback: Callable[[], Awaitable[Any]]) -> None:
        self.delay = delay
        self._callback = callback
        self._handle: asyncio.TimerHandle | None = None
        self._running: set[asyncio.Task[Any]] = set()

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def trigger(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay, self._fire)

    def _fire(self) -> None:
        self._handle = None
        task = asyncio.ensure_future(self._callback())
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    async def flush(self) -> None:
        """Fire a pending timer now and wait for every started callback."""
        if self._handle is not None:
            self._handle.cancel()
            self._fire()
        if self._running:
            await asyncio.gather(*list(self._running))


def sort_value(value: CellValue, ftype: FieldType) -> tuple[int, Any]:
    """Comparable key for client-side sorting; mixed types never compare."""
    if value is None:
        return (2, "")
    if isinstance(value, bool):
        return (0, int(value))
    if isinstance(value, (int, float)):
        return (0, float(value))
    if isinstance(value, datetime):
        ts = value if value.tzinfo is not None else value.replace(tzinfo=UTC)
        return (0, ts.timestamp())
    if isinstance(value, str) and ftype.is_temporal:
        try:
            parsed = datetime.fromisoformat(value.strip())
        except ValueError:
            return (1, value.casefold())
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=UTC)
        return (0, parsed.timestamp())
    if isinstance(value, (list, tuple)):
        return (1, ", ".join(str(v) for v in value).casefold())
    return (1, str(value).casefold())


class SortFilterController:
    """Owns the single active sort key and the filter predicates of a view.

    ``sort_columns`` maps a sort key to the store columns it orders by
    (e.g. ``client`` -> ``first_name, last_name``); unmapped keys order by the
    column of the same name. With ``client_sort`` the store is never asked
    to order and ``post_process`` sorts instead.
    """

    def __init__(
        self,
        registry: FieldRegistry,
        *,
        search_fields: Sequence[str] = (),
        client_search_fields: Sequence[str] = (),
        sort_columns: Mapping[str, Sequence[str]] | None = None,
        initial_sort: SortState | None = None,
        base_filter: QueryFilter | None = None,
        client_sort: bool = False,
        tz: tzinfo = UTC,
    ) -> None:
        self._registry = registry
        self._search_fields = tuple(search_fields)
        self._client_search_fields = tuple(client_search_fields)
        self._sort_columns = {k: tuple(v) for k, v in (sort_columns or {}).items()}
        self._sort = initial_sort or SortState()
        self._base = base_filter or QueryFilter()
        self._client_sort = client_sort
        self._tz = tz
        self._search = ""
        self._equals: dict[str, CellValue] = {}
        self._ranges: tuple[DateRange, ...] = self._base.ranges
        self._ranges_match_any = self._base.ranges_match_any

    # --- sort ---

    @property
    def sort(self) -> SortState:
        return self._sort

    @property
    def client_sort(self) -> bool:
        return self._client_sort

    def toggle_sort(self, sort_key: str) -> SortState:
        """Header click: flip the active key, or activate a new one with its default direction."""
        if self._sort.key == sort_key:
            self._sort = SortState(sort_key, self._sort.direction.flipped())
        else:
            field = self._registry.by_sort_key(sort_key)
            direction = field.default_direction if field is not None else SortDirection.ASC
            self._sort = SortState(sort_key, direction)
        logger.debug("sort key=%s direction=%s", self._sort.key, self._sort.direction.value)
        return self._sort

    def columns_for(self, sort_key: str) -> tuple[str, ...]:
        return self._sort_columns.get(sort_key, (sort_key,))

    def order_by(self) -> tuple[OrderBy, ...]:
        if self._client_sort or not self._sort.active:
            return ()
        return tuple(OrderBy(c, self._sort.ascending) for c in self.columns_for(self._sort.key))

    # --- filters ---

    @property
    def search_text(self) -> str:
        return self._search

    @property
    def search_is_remote(self) -> bool:
        return bool(self._search_fields) and not self._client_search_fields

    def set_search(self, text: str) -> bool:
        """Returns True when the effective needle changed."""
        changed = text.strip() != self._search.strip()
        self._search = text
        return changed

    def set_equals(self, field: str, value: CellValue) -> None:
        self._equals[field] = value

    def clear_equals(self, field: str) -> None:
        self._equals.pop(field, None)

    def set_ranges(self, ranges: Iterable[DateRange], *, match_any: bool = False) -> None:
        self._ranges = tuple(ranges)
        self._ranges_match_any = match_any

    @property
    def ranges(self) -> tuple[DateRange, ...]:
        return self._ranges

    def to_query(self) -> QueryFilter:
        needle = self._search.strip()
        search = self._base.search
        if needle and self.search_is_remote:
            search = TextSearch(needle=needle, fields=self._search_fields)
        equals = dict(self._base.equals)
        equals.update(self._equals)
        return QueryFilter(
            search=search,
            equals=tuple(equals.items()),
            ranges=self._ranges,
            ranges_match_any=self._ranges_match_any,
        )

    # --- client-side pass ---

    def _matches(self, row: Record, needle: str) -> bool:
        fields = self._client_search_fields + tuple(
            f for f in self._search_fields if f not in self._client_search_fields
        )
        for key in fields:
            text = format_display(self._registry.get(key), row.get(key), self._tz)
            if needle in text.casefold():
                return True
        return False

    def post_process(self, rows: Iterable[Record]) -> list[Record]:
        """Apply the predicates and ordering the store was not asked for."""
        out = list(rows)
        needle = self._search.strip().casefold()
        if needle and not self.search_is_remote and (self._client_search_fields or self._search_fields):
            out = [r for r in out if self._matches(r, needle)]
        if self._client_sort and self._sort.active:
            out = self._sorted(out)
        return out

    def _sorted(self, rows: list[Record]) -> list[Record]:
        cols = self.columns_for(self._sort.key)
        types = [self._registry.get(c).type for c in cols]

        def key(r: Record) -> tuple:
            return tuple(sort_value(r.get(c), t) for c, t in zip(cols, types))

        present = [r for r in rows if any(r.get(c) is not None for c in cols)]
        missing = [r for r in rows if all(r.get(c) is None for c in cols)]
        present.sort(key=key, reverse=not self._sort.ascending)
        # nulls last in both directions, like the store's NULLS LAST
        return present + missing
