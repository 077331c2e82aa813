from __future__ import annotations

import re
from collections.abc import Iterable, Mapping

from canfs_grid.models.field_definition import FieldDefinition, FieldType

"""Field definition registry.

Single source of truth for which columns a view knows about, how they are
labelled and in which order they are shown. Keys fetched from the store but
not declared fall back to a TEXT definition with a derived label.
"""

__all__ = [
    "ACRONYMS",
    "DEFAULT_EXCLUDED",
    "FieldRegistry",
    "label_for",
]

ACRONYMS = frozenset({"BOP", "ID", "API", "URL", "CAN"})
DEFAULT_EXCLUDED = frozenset({"id", "fna_id", "client_id"})

_CAMEL_RE = re.compile(r"([a-z])([A-Z])")


def label_for(key: str, overrides: Mapping[str, str] | None = None) -> str:
    """Human label for a column key.

    >>> label_for("BOP_Date")
    'BOP Date'
    >>> label_for("last_call_date")
    'Last Call Date'
    >>> label_for("clientId")
    'Client ID'
    """
    if overrides and key in overrides:
        return overrides[key]
    s = _CAMEL_RE.sub(r"\1 \2", key.replace("_", " ")).strip()
    words = []
    for w in s.split():
        if w.upper() in ACRONYMS:
            words.append(w.upper())
        else:
            words.append(w[:1].upper() + w[1:].lower())
    return " ".join(words)


class FieldRegistry:
    """Immutable lookup of the field definitions of one view."""

    def __init__(
        self,
        fields: Iterable[FieldDefinition] = (),
        *,
        order: Iterable[str] | None = None,
        excluded: Iterable[str] = DEFAULT_EXCLUDED,
        label_overrides: Mapping[str, str] | None = None,
    ) -> None:
        self._fields: dict[str, FieldDefinition] = {}
        for f in fields:
            if f.key in self._fields:
                raise ValueError(f"duplicate field definition: {f.key}")
            self._fields[f.key] = f
        # declared order defaults to declaration order
        self._order: tuple[str, ...] = tuple(order) if order is not None else tuple(self._fields)
        self._excluded = frozenset(excluded)
        self._label_overrides = dict(label_overrides or {})

    def __contains__(self, key: object) -> bool:
        return key in self._fields

    def __iter__(self):
        return iter(self._fields.values())

    def __len__(self) -> int:
        return len(self._fields)

    def get(self, key: str) -> FieldDefinition:
        declared = self._fields.get(key)
        if declared is not None:
            return declared
        return FieldDefinition(key=key, label=label_for(key, self._label_overrides), type=FieldType.TEXT)

    def is_excluded(self, key: str) -> bool:
        return key in self._excluded

    def by_sort_key(self, sort_key: str) -> FieldDefinition | None:
        for f in self._fields.values():
            if f.sort_key == sort_key:
                return f
        return None

    def display_keys(self, fetched_keys: Iterable[str] = ()) -> list[str]:
        """Declared order first, then undeclared fetched keys in fetch order.

        Excluded keys (internal identifiers, foreign keys) never show up.
        """
        out: list[str] = []
        seen: set[str] = set()
        for key in self._order:
            if key in self._excluded or key in seen:
                continue
            out.append(key)
            seen.add(key)
        for key in fetched_keys:
            if key in self._excluded or key in seen:
                continue
            out.append(key)
            seen.add(key)
        return out

    def display_fields(self, fetched_keys: Iterable[str] = ()) -> list[FieldDefinition]:
        return [self.get(k) for k in self.display_keys(fetched_keys)]
