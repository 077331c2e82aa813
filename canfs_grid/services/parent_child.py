from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, tzinfo

from canfs_grid.db.gateway import FetchError, GatewayError, OrderBy, QueryFilter, RemoteStore, RowGateway
from canfs_grid.fields.coercion import ValidationError, check_required, coerce
from canfs_grid.logging.notices import NoticeBoard
from canfs_grid.models.field_definition import FieldDefinition
from canfs_grid.models.sort_state import PageWindow
from canfs_grid.models.values import CellValue, PendingId, PersistedId, Record, RowId, new_pending_id, row_id_of

"""Parent/child row manager.

One header entity per owner (e.g. one FNA header per client) plus any number
of child collections keyed to the header by a foreign key. The FK stamping
mirrors how the import pipeline propagated parent keys into child rows:

- the header is fetched (latest by ``updated_at``) or inserted on first use
- every child collection is fetched concurrently once the header id is known
- rows added locally get a ``PendingId`` and become persisted on first save
- save is an insert for pending rows and an update for persisted rows; the
  store's returned row replaces the local one

Failures leave the user's edits in place and post a notice; nothing retries.
"""

__all__ = [
    "ChildCollectionSpec",
    "ChildRow",
    "HeaderSpec",
    "ParentChildManager",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChildCollectionSpec:
    """One child table.

    ``blank_keys`` are written as "" instead of null (columns declared NOT NULL
    in the store). ``max_rows=1`` makes a single-row collection.
    """
    name: str
    table: str
    columns: tuple[FieldDefinition, ...]
    order_by: tuple[OrderBy, ...] = ()
    parent_fk: str = "fna_id"
    id_field: str = "id"
    max_rows: int | None = None
    blank_keys: tuple[str, ...] = ()

    def column(self, key: str) -> FieldDefinition | None:
        for c in self.columns:
            if c.key == key:
                return c
        return None


@dataclass(frozen=True)
class HeaderSpec:
    table: str
    owner_fk: str
    fields: tuple[FieldDefinition, ...] = ()
    id_field: str = "id"
    updated_field: str = "updated_at"
    created_field: str = "created_at"

    def field(self, key: str) -> FieldDefinition | None:
        for f in self.fields:
            if f.key == key:
                return f
        return None


@dataclass
class ChildRow:
    row_id: RowId
    header_id: CellValue
    values: Record = field(default_factory=dict)

    @property
    def is_pending(self) -> bool:
        return isinstance(self.row_id, PendingId)


def _coerce_cell(f: FieldDefinition, value: CellValue, tz: tzinfo) -> CellValue:
    # fetched values are already typed; only raw widget input needs parsing
    if isinstance(value, (str, bool)):
        return coerce(f, value, tz)
    return value


class ParentChildManager:
    def __init__(
        self,
        store: RemoteStore,
        header: HeaderSpec,
        collections: Sequence[ChildCollectionSpec],
        *,
        notices: NoticeBoard | None = None,
        tz: tzinfo = UTC,
        clock: Callable[[], datetime] | None = None,
        is_authenticated: Callable[[], bool] | None = None,
    ) -> None:
        self._store = store
        self.header_spec = header
        self.collections = {c.name: c for c in collections}
        self.notices = notices if notices is not None else NoticeBoard()
        self._tz = tz
        self._clock = clock or (lambda: datetime.now(UTC))
        self._is_authenticated = is_authenticated or (lambda: True)
        self._header_gateway = store.table(header.table, header.id_field)
        self._gateways: dict[str, RowGateway] = {
            c.name: store.table(c.table, c.id_field) for c in collections
        }
        self.owner_id: CellValue = None
        self.header: Record | None = None
        self._rows: dict[str, list[ChildRow]] = {c.name: [] for c in collections}
        self._saving: set[tuple[str, RowId]] = set()
        self._deleting: set[tuple[str, RowId]] = set()
        self.loading = False
        self.saving_header = False

    # --- state ---

    @property
    def header_id(self) -> CellValue:
        if self.header is None:
            return None
        return self.header.get(self.header_spec.id_field)

    @property
    def ready(self) -> bool:
        return self.header is not None

    def rows(self, collection: str) -> list[ChildRow]:
        return list(self._rows[self._spec(collection).name])

    def row(self, collection: str, row_id: RowId) -> ChildRow:
        for r in self._rows[self._spec(collection).name]:
            if r.row_id == row_id:
                return r
        raise KeyError(f"{collection}: no row {row_id}")

    def is_saving(self, collection: str, row_id: RowId) -> bool:
        return (collection, row_id) in self._saving

    def is_deleting(self, collection: str, row_id: RowId) -> bool:
        return (collection, row_id) in self._deleting

    def _spec(self, collection: str) -> ChildCollectionSpec:
        try:
            return self.collections[collection]
        except KeyError:
            raise KeyError(f"unknown child collection: {collection}") from None

    def _reset(self) -> None:
        self.header = None
        for name in self._rows:
            self._rows[name] = []

    # --- load ---

    async def _ensure_header(self, owner_id: CellValue) -> Record:
        spec = self.header_spec
        existing = await self._header_gateway.fetch(
            QueryFilter(equals=((spec.owner_fk, owner_id),)),
            (OrderBy(spec.updated_field, ascending=False),),
            PageWindow(0, 1),
        )
        if existing:
            return existing[0]
        logger.info("creating %s for %s=%s", spec.table, spec.owner_fk, owner_id)
        return await self._header_gateway.insert({spec.owner_fk: owner_id})

    async def _fetch_collection(self, spec: ChildCollectionSpec, header_id: CellValue) -> list[Record]:
        page = PageWindow(0, spec.max_rows) if spec.max_rows else None
        return await self._gateways[spec.name].fetch(
            QueryFilter(equals=((spec.parent_fk, header_id),)), spec.order_by, page
        )

    async def load(self, owner_id: CellValue) -> bool:
        """Get-or-create the owner's header, then fetch every child collection."""
        self._reset()
        self.owner_id = owner_id
        if not self._is_authenticated():
            return False
        self.loading = True
        try:
            try:
                header = await self._ensure_header(owner_id)
            except GatewayError as e:
                self.notices.error(self.header_spec.table, e, owner_id)
                return False
            self.header = header
            header_id = self.header_id
            specs = list(self.collections.values())
            results = await asyncio.gather(
                *(self._fetch_collection(s, header_id) for s in specs), return_exceptions=True
            )
            failed = False
            for spec, result in zip(specs, results):
                if isinstance(result, FetchError):
                    self.notices.error(spec.table, result)
                    failed = True
                    continue
                if isinstance(result, BaseException):
                    raise result
                self._rows[spec.name] = [
                    ChildRow(
                        row_id=row_id_of(r, spec.id_field),
                        header_id=header_id,
                        values={**r, spec.parent_fk: header_id},
                    )
                    for r in result
                ]
            if failed:
                for name in self._rows:
                    self._rows[name] = []
                return False
            return True
        finally:
            self.loading = False

    # --- rows ---

    def add_row(self, collection: str) -> ChildRow:
        spec = self._spec(collection)
        if self.header is None:
            raise RuntimeError("no header loaded")
        rows = self._rows[spec.name]
        if spec.max_rows is not None and len(rows) >= spec.max_rows:
            raise ValueError(f"{collection} holds at most {spec.max_rows} row(s)")
        values: Record = {c.key: None for c in spec.columns}
        values[spec.parent_fk] = self.header_id
        row = ChildRow(row_id=new_pending_id(), header_id=self.header_id, values=values)
        rows.append(row)
        return row

    def single_row(self, collection: str) -> ChildRow:
        """Existing row of a single-row collection, or a new pending one."""
        rows = self._rows[self._spec(collection).name]
        return rows[0] if rows else self.add_row(collection)

    def edit(self, collection: str, row_id: RowId, key: str, raw: str | bool | None) -> None:
        self.row(collection, row_id).values[key] = raw

    def _payload(self, spec: ChildCollectionSpec, row: ChildRow) -> Record:
        payload: Record = {
            k: v for k, v in row.values.items() if k != spec.id_field and spec.column(k) is None
        }
        for c in spec.columns:
            value = _coerce_cell(c, row.values.get(c.key), self._tz)
            check_required(c, value)
            payload[c.key] = value
        for k in spec.blank_keys:
            if payload.get(k) is None:
                payload[k] = ""
        payload[spec.parent_fk] = self.header_id
        return payload

    async def save_row(self, collection: str, row_id: RowId) -> ChildRow | None:
        """Insert a pending row or update a persisted one.

        Required columns are checked and every column is coerced before any
        gateway call. A pending row is inserted without its placeholder id; the
        returned row (with its store-issued id) replaces it in the collection.
        A second save of a row whose save is still in flight is ignored.

        Args:
            collection: Child collection name (e.g. ``"children"``).
            row_id: ``PendingId`` or ``PersistedId`` of the row.

        Returns:
            The saved row, or None when validation or the write failed, the row
            is already being saved, or no header is loaded. Failures are posted
            to ``notices`` and the user's edits stay on the row.
        """
        spec = self._spec(collection)
        row = self.row(collection, row_id)
        if self.header is None or not self._is_authenticated():
            return None
        key = (spec.name, row_id)
        if key in self._saving:
            logger.debug("%s row=%s save already in flight", spec.table, row_id)
            return None
        try:
            payload = self._payload(spec, row)
        except ValidationError as e:
            self.notices.error(spec.table, e, row_id)
            return None

        self._saving.add(key)
        gateway = self._gateways[spec.name]
        try:
            if isinstance(row_id, PersistedId):
                saved = await gateway.update(row_id, payload)
            else:
                saved = await gateway.insert(payload)
        except GatewayError as e:
            self.notices.error(spec.table, e, row_id)
            return None
        finally:
            self._saving.discard(key)

        fresh = ChildRow(
            row_id=row_id_of(saved, spec.id_field),
            header_id=self.header_id,
            values={**saved, spec.parent_fk: self.header_id},
        )
        rows = self._rows[spec.name]
        for i, r in enumerate(rows):
            if r.row_id == row_id:
                rows[i] = fresh
                break
        self.notices.info(spec.table, "Saved.")
        return fresh

    async def delete_row(self, collection: str, row_id: RowId) -> bool:
        """Remove a row from its collection.

        Pending rows are dropped locally without a gateway call. Persisted rows
        are deleted in the store first and only removed locally on success.

        Returns:
            True when the row is gone; False when the delete failed (the row is
            kept and the error posted to ``notices``).
        """
        spec = self._spec(collection)
        row = self.row(collection, row_id)
        if not row.is_pending:
            if not self._is_authenticated():
                return False
            key = (spec.name, row_id)
            self._deleting.add(key)
            try:
                await self._gateways[spec.name].delete(row_id)
            except GatewayError as e:
                self.notices.error(spec.table, e, row_id)
                return False
            finally:
                self._deleting.discard(key)
        self._rows[spec.name] = [r for r in self._rows[spec.name] if r.row_id != row_id]
        self.notices.info(spec.table, "Deleted.")
        return True

    # --- header ---

    def edit_header(self, key: str, raw: str | bool | None) -> None:
        if self.header is None:
            raise RuntimeError("no header loaded")
        self.header[key] = raw

    def _header_payload(self, changes: Mapping[str, CellValue] | None) -> Record:
        spec = self.header_spec
        merged = {**(self.header or {}), **(changes or {})}
        dropped = {spec.id_field, spec.owner_fk, spec.created_field}
        cleaned: Record = {}
        for k, v in merged.items():
            if k in dropped:
                continue
            f = spec.field(k)
            cleaned[k] = _coerce_cell(f, v, self._tz) if f is not None else v
        for f in spec.fields:
            check_required(f, cleaned.get(f.key))
        cleaned[spec.updated_field] = self._clock()
        return cleaned

    async def save_header(self, changes: Mapping[str, CellValue] | None = None) -> bool:
        spec = self.header_spec
        if self.header is None or not self._is_authenticated():
            return False
        header_id = row_id_of(self.header, spec.id_field)
        try:
            payload = self._header_payload(changes)
        except ValidationError as e:
            self.notices.error(spec.table, e, header_id)
            return False
        self.saving_header = True
        try:
            saved = await self._header_gateway.update(header_id, payload)
        except GatewayError as e:
            self.notices.error(spec.table, e, header_id)
            return False
        finally:
            self.saving_header = False
        self.header = dict(saved)
        self.notices.info(spec.table, "Saved.")
        return True
