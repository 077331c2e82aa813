from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import UTC, tzinfo
from enum import Enum

from canfs_grid.db.gateway import GatewayError, RowGateway
from canfs_grid.fields.coercion import ValidationError, check_required, coerce, format_display
from canfs_grid.models.field_definition import FieldType
from canfs_grid.fields.registry import FieldRegistry
from canfs_grid.logging.notices import NoticeBoard
from canfs_grid.models.values import CellValue, PersistedId

from .record_set import RecordSet

logger = logging.getLogger(__name__)

"""Draft buffer: per-cell staging of edits until the cell loses focus.

While a draft exists it is what the cell shows, whatever the baseline says.
``commit`` is the blur handler: coerce, write one field, then either fold
the returned value into the baseline (success) or drop the edit (failure).
Failed writes are not queued or retried.

Overlapping commits to the same cell are not serialized. With
``discard_stale`` on, each commit gets a per-cell sequence number so a
response that lands after a newer one was applied is ignored, and a commit
only clears the draft revision it wrote (a keystroke staged while the write
was in flight survives). With it off, the last response to land wins and
every resolution clears the cell's draft.
"""

__all__ = [
    "CommitOutcome",
    "DraftEntry",
    "DraftBuffer",
]

CellKey = tuple[PersistedId, str]


class CommitOutcome(Enum):
    WRITTEN = "written"
    FAILED = "failed"
    REJECTED = "rejected"  # client-side validation, nothing sent
    STALE = "stale"  # response superseded by a newer write to the same cell
    NO_DRAFT = "no_draft"


@dataclass(frozen=True)
class DraftEntry:
    raw: str
    revision: int


class DraftBuffer:
    """Pending cell edits of one view, layered over its baseline ``RecordSet``.

    Drafts are keyed by (row id, field key) and carry a buffer-wide revision
    number. Only ``commit`` talks to the gateway, one field per call.
    """

    def __init__(
        self,
        gateway: RowGateway,
        registry: FieldRegistry,
        baseline: RecordSet,
        notices: NoticeBoard,
        *,
        tz: tzinfo = UTC,
        discard_stale: bool = True,
        scope: str | None = None,
    ) -> None:
        self._gateway = gateway
        self._registry = registry
        self._baseline = baseline
        self._notices = notices
        self._tz = tz
        self._discard_stale = discard_stale
        self._scope = scope or gateway.table
        self._drafts: dict[CellKey, DraftEntry] = {}
        self._revision = 0
        self._issued: dict[CellKey, int] = defaultdict(int)
        self._applied: dict[CellKey, int] = defaultdict(int)
        self._in_flight: dict[PersistedId, int] = defaultdict(int)

    def stage(self, row_id: PersistedId, key: str, raw: str | bool) -> None:
        """Create or overwrite the draft of one cell; no store call.

        Args:
            row_id: Persisted id of the row.
            key: Field key.
            raw: Widget value; a checkbox bool is kept as ``"true"``/``"false"``.
        """
        if isinstance(raw, bool):
            raw = "true" if raw else "false"
        self._revision += 1
        self._drafts[(row_id, key)] = DraftEntry(raw=raw, revision=self._revision)

    def has_draft(self, row_id: PersistedId, key: str) -> bool:
        return (row_id, key) in self._drafts

    def draft(self, row_id: PersistedId, key: str) -> DraftEntry | None:
        return self._drafts.get((row_id, key))

    def discard(self, row_id: PersistedId, key: str) -> None:
        self._drafts.pop((row_id, key), None)

    def resolve(self, row_id: PersistedId, key: str) -> str:
        """Effective display text of a cell.

        Returns:
            The draft if one is staged (also while its commit is in flight),
            else the baseline value formatted for display. A checkbox draft
            renders the same ``Yes``/``No`` text as its baseline.
        """
        field = self._registry.get(key)
        entry = self._drafts.get((row_id, key))
        if entry is None:
            return format_display(field, self._baseline.value(row_id, key), self._tz)
        if field.type is FieldType.BOOLEAN:
            return format_display(field, coerce(field, entry.raw, self._tz), self._tz)
        return entry.raw

    def is_committing(self, row_id: PersistedId) -> bool:
        return self._in_flight[row_id] > 0

    def __len__(self) -> int:
        return len(self._drafts)

    def cells(self) -> list[CellKey]:
        return list(self._drafts)

    def _settle(self, cell: CellKey, revision: int) -> None:
        current = self._drafts.get(cell)
        if current is None:
            return
        if self._discard_stale and current.revision != revision:
            return
        del self._drafts[cell]

    async def commit(self, row_id: PersistedId, key: str) -> CommitOutcome:
        """Write one cell's draft to the store.

        The draft is coerced and checked first; a ``ValidationError`` drops the
        draft and posts a notice without any gateway call. On success the
        returned value is folded into the baseline; on a ``GatewayError`` the
        draft is dropped and the error posted. Either way only the draft
        revision this call wrote is cleared.

        Returns:
            WRITTEN, FAILED, REJECTED, STALE (a newer write to the same cell
            was already applied) or NO_DRAFT.
        """
        cell = (row_id, key)
        entry = self._drafts.get(cell)
        if entry is None:
            return CommitOutcome.NO_DRAFT

        field = self._registry.get(key)
        try:
            value: CellValue = coerce(field, entry.raw, self._tz)
            check_required(field, value)
        except ValidationError as e:
            self._settle(cell, entry.revision)
            self._notices.error(self._scope, e, row_id)
            return CommitOutcome.REJECTED

        self._issued[cell] += 1
        seq = self._issued[cell]
        self._in_flight[row_id] += 1
        logger.debug("commit table=%s row=%s field=%s seq=%d", self._scope, row_id, key, seq)
        try:
            returned = await self._gateway.update(row_id, {key: value})
        except GatewayError as e:
            self._settle(cell, entry.revision)
            self._notices.error(self._scope, e, row_id)
            return CommitOutcome.FAILED
        finally:
            self._in_flight[row_id] -= 1

        if self._discard_stale and seq < self._applied[cell]:
            logger.debug("dropping stale commit response row=%s field=%s seq=%d", row_id, key, seq)
            self._settle(cell, entry.revision)
            return CommitOutcome.STALE

        self._applied[cell] = seq
        new_value = returned.get(key, value) if returned else value
        self._baseline.apply(row_id, key, new_value)
        self._settle(cell, entry.revision)
        return CommitOutcome.WRITTEN
