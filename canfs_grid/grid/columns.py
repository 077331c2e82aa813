from __future__ import annotations

from collections.abc import Iterable

from canfs_grid.models.field_definition import FieldDefinition, FieldType

"""Column widths and sticky offsets of a mounted grid.

Widths live as long as the layout object (one mounted view) and are never
persisted.
"""

__all__ = [
    "ColumnLayout",
    "default_width",
]

CREATED_WIDTH = 120
DATETIME_WIDTH = 220
EMAIL_WIDTH = 240
WRAP_WIDTH = 260
DEFAULT_WIDTH = 160


def default_width(field: FieldDefinition) -> int:
    if field.width is not None:
        return field.width
    if field.key == "created_at":
        return CREATED_WIDTH
    if field.type is FieldType.DATETIME:
        return DATETIME_WIDTH
    if "email" in field.key.lower():
        return EMAIL_WIDTH
    if field.type is FieldType.TEXTAREA:
        return WRAP_WIDTH
    return DEFAULT_WIDTH


class ColumnLayout:
    """Per-column widths, clamped to ``[min_width, max_width]``.

    The first ``sticky_count`` columns are pinned; each gets a left offset
    equal to the sum of the widths before it.
    """

    def __init__(
        self,
        fields: Iterable[FieldDefinition] = (),
        *,
        sticky_count: int = 0,
        min_width: int = 60,
        max_width: int = 800,
    ) -> None:
        if min_width > max_width:
            raise ValueError(f"min_width {min_width} > max_width {max_width}")
        self.sticky_count = sticky_count
        self.min_width = min_width
        self.max_width = max_width
        self._keys: list[str] = []
        self._widths: dict[str, int] = {}
        self.set_fields(fields)

    def _clamp(self, width: int) -> int:
        return max(self.min_width, min(self.max_width, int(width)))

    def set_fields(self, fields: Iterable[FieldDefinition]) -> None:
        """Adopt a new column list; known columns keep their current width."""
        keys = []
        for f in fields:
            keys.append(f.key)
            if f.key not in self._widths:
                self._widths[f.key] = self._clamp(default_width(f))
        self._keys = keys

    @property
    def keys(self) -> list[str]:
        return list(self._keys)

    def width(self, key: str) -> int:
        return self._widths.get(key, self._clamp(DEFAULT_WIDTH))

    def resize(self, key: str, width: int) -> int:
        self._widths[key] = self._clamp(width)
        return self._widths[key]

    def drag(self, key: str, start_width: int, delta_x: int) -> int:
        """Border drag: width at drag start plus pointer travel."""
        return self.resize(key, start_width + delta_x)

    def is_sticky(self, key: str) -> bool:
        return key in self._keys[: self.sticky_count]

    def sticky_offset(self, key: str) -> int | None:
        if not self.is_sticky(key):
            return None
        offset = 0
        for k in self._keys:
            if k == key:
                return offset
            offset += self.width(k)
        return None

    def sticky_offsets(self) -> dict[str, int]:
        out: dict[str, int] = {}
        offset = 0
        for k in self._keys[: self.sticky_count]:
            out[k] = offset
            offset += self.width(k)
        return out

    @property
    def total_width(self) -> int:
        return sum(self.width(k) for k in self._keys)
