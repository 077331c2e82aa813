from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from canfs_grid.db.gateway import QueryFilter
from canfs_grid.fields.registry import DEFAULT_EXCLUDED, FieldRegistry
from canfs_grid.models.field_definition import FieldDefinition
from canfs_grid.models.sort_state import SortState
from canfs_grid.models.values import CellValue, Record

"""Declarative description of one grid view."""

__all__ = [
    "Derived",
    "ViewDefinition",
]

Derived = Callable[[Record], CellValue]


@dataclass(frozen=True)
class ViewDefinition:
    """Everything a ``GridViewModel`` needs to know about one page of the app.

    - ``client_side``: fetch every row once (up to ``fetch_limit``), then
      filter, sort and page locally without further store calls
    - ``derived``: display-only columns computed from the fetched row
    - ``page_size``: None means the configured default
    """
    name: str
    table: str
    fields: tuple[FieldDefinition, ...] = ()
    id_field: str = "id"
    order: tuple[str, ...] | None = None
    excluded: frozenset[str] = DEFAULT_EXCLUDED
    label_overrides: Mapping[str, str] = field(default_factory=dict)
    page_size: int | None = None
    search_fields: tuple[str, ...] = ()
    client_search_fields: tuple[str, ...] = ()
    sort_columns: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    initial_sort: SortState = SortState()
    base_filter: QueryFilter = QueryFilter()
    client_side: bool = False
    fetch_limit: int | None = None
    sticky_count: int = 0
    derived: Mapping[str, Derived] = field(default_factory=dict)
    read_only: bool = False

    def registry(self) -> FieldRegistry:
        return FieldRegistry(
            self.fields,
            order=self.order,
            excluded=self.excluded,
            label_overrides=self.label_overrides,
        )
