from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from canfs_grid.config.loader import GridConfig
from canfs_grid.db.gateway import DateRange, FetchError, RemoteStore
from canfs_grid.fields.coercion import list_items
from canfs_grid.logging.notices import NoticeBoard
from canfs_grid.models.field_definition import FieldDefinition, FieldType, SortDirection
from canfs_grid.models.sort_state import PageWindow, SortState
from canfs_grid.models.values import CellValue, PersistedId, Record, row_id_of

from .columns import ColumnLayout
from .definition import ViewDefinition
from .draft_buffer import CommitOutcome, DraftBuffer
from .record_set import RecordSet
from .sort_filter import Debouncer, SortFilterController

logger = logging.getLogger(__name__)

"""Grid view model: headless state of one editable, paged, sortable table.

Renders fetched rows with staged drafts layered on top, turns header clicks
into sort changes, search input into debounced fetches, and cell blur into
single-field writes. Every store call is made from here or from the draft
buffer; errors become notices on ``self.notices``.

Fetches carry a view-scoped sequence number. With ``discard_stale_responses``
on, a response that resolves after a newer fetch was applied is dropped.
"""

__all__ = [
    "WidgetKind",
    "ColumnView",
    "CellView",
    "RowView",
    "GridViewModel",
]


class WidgetKind(Enum):
    TEXT = "text"
    TEXTAREA = "textarea"
    NUMBER = "number"
    DATE = "date"
    DATETIME_LOCAL = "datetime-local"
    TIME = "time"
    CHECKBOX = "checkbox"
    DROPDOWN = "dropdown"
    LIST_SUMMARY = "list-summary"


WIDGETS = {
    FieldType.TEXT: WidgetKind.TEXT,
    FieldType.TEXTAREA: WidgetKind.TEXTAREA,
    FieldType.NUMBER: WidgetKind.NUMBER,
    FieldType.DATE: WidgetKind.DATE,
    FieldType.DATETIME: WidgetKind.DATETIME_LOCAL,
    FieldType.TIME: WidgetKind.TIME,
    FieldType.BOOLEAN: WidgetKind.CHECKBOX,
    FieldType.SELECT: WidgetKind.DROPDOWN,
    FieldType.LIST: WidgetKind.LIST_SUMMARY,
}


@dataclass(frozen=True)
class ColumnView:
    key: str
    label: str
    widget: WidgetKind
    width: int
    sticky_offset: int | None
    sort_key: str | None
    sort_indicator: SortDirection | None


@dataclass(frozen=True)
class CellView:
    row_id: PersistedId
    key: str
    widget: WidgetKind
    display: str
    editable: bool
    drafted: bool
    options: tuple[str, ...] | None = None
    items: tuple[str, ...] = ()  # list columns: detail popover content
    sticky_offset: int | None = None


@dataclass(frozen=True)
class RowView:
    row_id: PersistedId
    cells: tuple[CellView, ...]
    saving: bool


class GridViewModel:
    """Headless state of one grid view.

    Owns the view's baseline rows, its draft buffer, sort/filter state, paging
    and column layout. Nothing here touches a widget toolkit: a shell renders
    ``column_views()`` and ``render()`` and forwards user input to ``stage``,
    ``blur``, ``toggle_sort``, ``set_search`` and the paging methods.
    """

    def __init__(
        self,
        definition: ViewDefinition,
        store: RemoteStore,
        *,
        config: GridConfig | None = None,
        notices: NoticeBoard | None = None,
        is_authenticated: Callable[[], bool] | None = None,
    ) -> None:
        cfg = config or GridConfig()
        self.definition = definition
        self.config = cfg
        self.registry = definition.registry()
        self.gateway = store.table(definition.table, definition.id_field)
        if notices is None:
            notices = NoticeBoard(Path(cfg.notice_log_dir) if cfg.notice_log_dir else None)
        self.notices = notices
        self.records = RecordSet(definition.id_field)
        self.drafts = DraftBuffer(
            self.gateway,
            self.registry,
            self.records,
            self.notices,
            tz=cfg.tzinfo,
            discard_stale=cfg.discard_stale_responses,
            scope=definition.name,
        )
        self.controller = SortFilterController(
            self.registry,
            search_fields=definition.search_fields,
            client_search_fields=definition.client_search_fields,
            sort_columns=definition.sort_columns,
            initial_sort=definition.initial_sort,
            base_filter=definition.base_filter,
            client_sort=definition.client_side,
            tz=cfg.tzinfo,
        )
        self.columns = ColumnLayout(
            sticky_count=definition.sticky_count,
            min_width=cfg.min_column_width,
            max_width=cfg.max_column_width,
        )
        self._is_authenticated = is_authenticated or (lambda: True)
        self._page = PageWindow(0, definition.page_size or cfg.page_size)
        self._remote_total = 0
        self._fetch_seq = 0
        self._applied_seq = 0
        self._loading = 0
        self._debouncer = Debouncer(cfg.debounce_seconds, self._search_settled)
        self._tasks: set[asyncio.Task] = set()
        self._sync_columns()

    # --- state ---

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def loading(self) -> bool:
        return self._loading > 0

    @property
    def sort(self) -> SortState:
        return self.controller.sort

    @property
    def page_size(self) -> int:
        return self._page.page_size

    @property
    def total_rows(self) -> int:
        if self.definition.client_side:
            return len(self._processed())
        return self._remote_total

    @property
    def total_pages(self) -> int:
        return self._page.total_pages(self.total_rows)

    @property
    def page_index(self) -> int:
        return self._page.clamped(self.total_rows).page_index

    @property
    def can_prev(self) -> bool:
        return self.page_index > 0

    @property
    def can_next(self) -> bool:
        return self.page_index < self.total_pages - 1

    # --- fetch ---

    async def refresh(self) -> bool:
        """Count and fetch the current page.

        Server-paged views issue one ``count`` and one ``fetch`` with the same
        predicate; client-side views fetch up to ``fetch_limit`` rows and page
        locally. Nothing is sent when the auth gate is closed.

        Returns:
            True when the result was applied. False when not authenticated,
            when the fetch failed (last rows stay visible and a ``FetchError``
            notice is posted), or when a newer fetch was applied first.
        """
        if not self._is_authenticated():
            logger.debug("view=%s not authenticated, skipping fetch", self.name)
            return False
        self._fetch_seq += 1
        seq = self._fetch_seq
        query = self.controller.to_query()
        order = self.controller.order_by()
        self._loading += 1
        try:
            if self.definition.client_side:
                total = None
                window = PageWindow(0, self.definition.fetch_limit) if self.definition.fetch_limit else None
                rows = await self.gateway.fetch(query, order, window)
            else:
                total = await self.gateway.count(query)
                window = self._page.clamped(total)
                rows = await self.gateway.fetch(query, order, window)
        except FetchError as e:
            self.notices.error(self.name, e)
            return False
        finally:
            self._loading -= 1

        if self.config.discard_stale_responses and seq < self._applied_seq:
            logger.debug("view=%s dropping stale fetch seq=%d (applied=%d)", self.name, seq, self._applied_seq)
            return False
        self._applied_seq = seq
        self.records.replace(rows)
        if total is not None:
            self._remote_total = total
            self._page = window
        self._sync_columns()
        logger.debug("view=%s fetched rows=%d total=%s", self.name, len(rows), total)
        return True

    def _sync_columns(self) -> None:
        self.columns.set_fields(self.visible_fields())

    # --- paging ---

    async def go_to_page(self, page_index: int) -> bool:
        last = self._page.total_pages(self.total_rows) - 1
        self._page = PageWindow(min(max(0, page_index), last), self._page.page_size)
        if self.definition.client_side:
            return True
        return await self.refresh()

    async def jump_to(self, page_number: int | str) -> bool:
        """1-based page input; non-numeric input is ignored."""
        try:
            n = int(str(page_number).strip())
        except ValueError:
            return False
        return await self.go_to_page(n - 1)

    async def next_page(self) -> bool:
        return await self.go_to_page(self.page_index + 1)

    async def prev_page(self) -> bool:
        return await self.go_to_page(self.page_index - 1)

    # --- sort / filter ---

    async def toggle_sort(self, sort_key: str) -> SortState:
        state = self.controller.toggle_sort(sort_key)
        self._page = PageWindow(0, self._page.page_size)
        if not self.controller.client_sort:
            await self.refresh()
        return state

    def set_search(self, text: str) -> None:
        """Keystroke in the search box; the store is queried once input settles."""
        if not self.controller.set_search(text):
            return
        self._page = PageWindow(0, self._page.page_size)
        if self.controller.search_is_remote:
            self._debouncer.trigger()

    async def _search_settled(self) -> None:
        await self.refresh()

    async def set_ranges(self, ranges: list[DateRange], *, match_any: bool = False) -> bool:
        self.controller.set_ranges(ranges, match_any=match_any)
        self._page = PageWindow(0, self._page.page_size)
        return await self.refresh()

    async def set_equals(self, field: str, value: CellValue) -> bool:
        if value is None or value == "":
            self.controller.clear_equals(field)
        else:
            self.controller.set_equals(field, value)
        self._page = PageWindow(0, self._page.page_size)
        return await self.refresh()

    # --- rows ---

    def _with_derived(self, row: Record) -> Record:
        if not self.definition.derived:
            return dict(row)
        out = dict(row)
        for key, fn in self.definition.derived.items():
            out[key] = fn(row)
        return out

    def _processed(self) -> list[Record]:
        return self.controller.post_process(self._with_derived(r) for r in self.records)

    def all_rows(self) -> list[Record]:
        """Every held row after post filter and sort; not sliced to a page."""
        return self._processed()

    def visible_rows(self) -> list[Record]:
        """Rows of the current page, derived columns included."""
        rows = self._processed()
        if not self.definition.client_side:
            return rows
        page = self._page.clamped(len(rows))
        return rows[page.offset : page.offset + page.page_size]

    def visible_fields(self) -> list[FieldDefinition]:
        fetched = self.records.keys() + list(self.definition.derived)
        return self.registry.display_fields(fetched)

    def is_editable(self, key: str) -> bool:
        if self.definition.read_only or key in self.definition.derived:
            return False
        return self.registry.get(key).editable

    # --- editing ---

    def display_value(self, row_id: PersistedId, key: str) -> str:
        if key in self.definition.derived:
            row = self.records.get(row_id)
            value = self.definition.derived[key](row) if row is not None else None
            return "" if value is None else str(value)
        return self.drafts.resolve(row_id, key)

    def stage(self, row_id: PersistedId, key: str, raw: str | bool) -> bool:
        """Keystroke or selection in a cell; nothing is sent.

        Args:
            row_id: Persisted id of the row being edited.
            key: Field key of the cell.
            raw: Widget value (text, or a bool from a checkbox).

        Returns:
            False when the column is read-only and the edit was ignored.
        """
        if not self.is_editable(key):
            logger.debug("view=%s ignoring edit of read-only column %s", self.name, key)
            return False
        self.drafts.stage(row_id, key, raw)
        return True

    async def commit(self, row_id: PersistedId, key: str) -> CommitOutcome:
        """Write the cell's draft through the draft buffer (the blur handler).

        Returns:
            The ``CommitOutcome``; NO_DRAFT also when the auth gate is closed.
        """
        if not self._is_authenticated():
            return CommitOutcome.NO_DRAFT
        return await self.drafts.commit(row_id, key)

    def blur(self, row_id: PersistedId, key: str) -> asyncio.Task[CommitOutcome]:
        """Cell lost focus: commit in the background."""
        task = asyncio.ensure_future(self.commit(row_id, key))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def is_saving(self, row_id: PersistedId) -> bool:
        return self.drafts.is_committing(row_id)

    async def settle(self) -> None:
        """Wait for the pending search and every background commit."""
        await self._debouncer.flush()
        if self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def aclose(self) -> None:
        """Drop a pending search and wait for in-flight commits."""
        self._debouncer.cancel()
        if self._tasks:
            await asyncio.gather(*list(self._tasks))

    # --- render model ---

    def column_views(self) -> list[ColumnView]:
        out = []
        for f in self.visible_fields():
            out.append(
                ColumnView(
                    key=f.key,
                    label=f.label,
                    widget=WIDGETS[f.type],
                    width=self.columns.width(f.key),
                    sticky_offset=self.columns.sticky_offset(f.key),
                    sort_key=f.sort_key,
                    sort_indicator=self.sort.indicator_for(f.sort_key),
                )
            )
        return out

    def cell(self, row: Record, key: str) -> CellView:
        row_id = row_id_of(row, self.definition.id_field)
        f = self.registry.get(key)
        items: tuple[str, ...] = ()
        if f.type is FieldType.LIST:
            items = tuple(list_items(row.get(key)))
        return CellView(
            row_id=row_id,
            key=key,
            widget=WIDGETS[f.type],
            display=self.display_value(row_id, key),
            editable=self.is_editable(key),
            drafted=self.drafts.has_draft(row_id, key),
            options=f.options if f.type is FieldType.SELECT else None,
            items=items,
            sticky_offset=self.columns.sticky_offset(key),
        )

    def render(self) -> list[RowView]:
        """Visible rows of the current page, drafts layered over the baseline.

        Returns:
            One ``RowView`` per row in display order, each carrying a
            ``CellView`` per visible column and the row's saving flag.
        """
        keys = [f.key for f in self.visible_fields()]
        out = []
        for row in self.visible_rows():
            row_id = row_id_of(row, self.definition.id_field)
            out.append(
                RowView(
                    row_id=row_id,
                    cells=tuple(self.cell(row, k) for k in keys),
                    saving=self.is_saving(row_id),
                )
            )
        return out
