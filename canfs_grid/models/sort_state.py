from __future__ import annotations

from dataclasses import dataclass

from .field_definition import SortDirection

"""Sort state and page window value objects."""

__all__ = [
    "SortState",
    "PageWindow",
]


@dataclass(frozen=True)
class SortState:
    """Single active sort key of a view. ``key=None`` means unsorted."""
    key: str | None = None
    direction: SortDirection = SortDirection.ASC

    @property
    def active(self) -> bool:
        return self.key is not None

    @property
    def ascending(self) -> bool:
        return self.direction is SortDirection.ASC

    def indicator_for(self, sort_key: str | None) -> SortDirection | None:
        """Header indicator for a column: its direction when active, else None."""
        if sort_key is None or sort_key != self.key:
            return None
        return self.direction


@dataclass(frozen=True)
class PageWindow:
    page_index: int
    page_size: int

    def __post_init__(self) -> None:
        if self.page_size <= 0:
            raise ValueError(f"page_size must be positive: {self.page_size}")
        if self.page_index < 0:
            raise ValueError(f"page_index must be >= 0: {self.page_index}")

    @property
    def offset(self) -> int:
        return self.page_index * self.page_size

    def total_pages(self, total_rows: int) -> int:
        """At least one page, even for an empty result."""
        return max(1, -(-total_rows // self.page_size))

    def clamped(self, total_rows: int) -> PageWindow:
        last = self.total_pages(total_rows) - 1
        return PageWindow(min(max(0, self.page_index), last), self.page_size)
