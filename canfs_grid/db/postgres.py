from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from typing import Any

import psycopg2
from psycopg2 import pool, sql
from psycopg2.extras import RealDictCursor

from canfs_grid.models.sort_state import PageWindow
from canfs_grid.models.values import CellValue, PersistedId, Record

from .gateway import FetchError, OrderBy, QueryFilter, RemoteWriteError

"""PostgreSQL row gateway (psycopg2).

- Identifiers are composed with ``psycopg2.sql``; values are always bound
  parameters
- Substring search uses ``ILIKE`` with LIKE wildcards in the needle escaped
- Writes use ``RETURNING *`` so the caller gets the row as the store sees it
- One connection and one transaction per call (``with conn:`` commits or
  rolls back); concurrent calls never share a transaction
- Connections come from a ``ThreadedConnectionPool``; callers beyond
  ``max_connections`` wait for a free connection
- The blocking driver call runs in a worker thread (``asyncio.to_thread``)
"""

__all__ = [
    "PostgresStore",
    "PostgresRowGateway",
    "build_where",
    "build_order_by",
    "escape_like",
]

logger = logging.getLogger(__name__)


def escape_like(needle: str) -> str:
    return needle.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _ident(name: str) -> sql.Identifier:
    return sql.Identifier(*name.split("."))


def build_where(filter: QueryFilter) -> tuple[sql.Composable, list[Any]]:
    """WHERE clause (possibly empty) and its parameters."""
    parts: list[sql.Composable] = []
    params: list[Any] = []

    if filter.search is not None and filter.search.needle.strip() and filter.search.fields:
        pattern = f"%{escape_like(filter.search.needle.strip())}%"
        ors = []
        for f in filter.search.fields:
            ors.append(sql.SQL("{}::text ILIKE %s").format(_ident(f)))
            params.append(pattern)
        parts.append(sql.SQL("(") + sql.SQL(" OR ").join(ors) + sql.SQL(")"))

    for field, value in filter.equals:
        if value is None:
            parts.append(sql.SQL("{} IS NULL").format(_ident(field)))
        else:
            parts.append(sql.SQL("{} = %s").format(_ident(field)))
            params.append(value)

    range_parts: list[sql.Composable] = []
    for r in filter.ranges:
        bounds = []
        if r.start is not None:
            bounds.append(sql.SQL("{} >= %s").format(_ident(r.field)))
            params.append(r.start)
        if r.end is not None:
            bounds.append(sql.SQL("{} < %s").format(_ident(r.field)))
            params.append(r.end)
        if not bounds:
            bounds.append(sql.SQL("{} IS NOT NULL").format(_ident(r.field)))
        range_parts.append(sql.SQL("(") + sql.SQL(" AND ").join(bounds) + sql.SQL(")"))
    if range_parts:
        joiner = sql.SQL(" OR ") if filter.ranges_match_any else sql.SQL(" AND ")
        parts.append(sql.SQL("(") + joiner.join(range_parts) + sql.SQL(")"))

    if not parts:
        return sql.SQL(""), params
    return sql.SQL(" WHERE ") + sql.SQL(" AND ").join(parts), params


def build_order_by(sort: Sequence[OrderBy]) -> sql.Composable:
    if not sort:
        return sql.SQL("")
    cols = [
        sql.SQL("{} {} NULLS LAST").format(_ident(o.column), sql.SQL("ASC" if o.ascending else "DESC"))
        for o in sort
    ]
    return sql.SQL(" ORDER BY ") + sql.SQL(", ").join(cols)


class PostgresStore:
    """Process-wide store handle backed by a lazily created connection pool.

    Construct it once at application start and pass it to every view. Each
    gateway call checks a connection out for the duration of its transaction
    and returns it afterwards.
    """

    def __init__(
        self,
        dsn: str,
        *,
        max_connections: int = 8,
        pool_factory: Callable[..., Any] = pool.ThreadedConnectionPool,
    ) -> None:
        self._dsn = dsn
        self._max_connections = max_connections
        self._pool_factory = pool_factory
        self._pool: Any = None
        self._pool_lock = threading.Lock()
        self._slots = threading.BoundedSemaphore(max_connections)

    def _get_pool(self) -> Any:
        with self._pool_lock:
            if self._pool is None:
                try:
                    self._pool = self._pool_factory(1, self._max_connections, self._dsn)
                except psycopg2.Error as e:
                    raise FetchError(f"cannot connect to database: {e}") from e
            return self._pool

    @contextmanager
    def connection(self) -> Iterator[Any]:
        """Check out a pooled connection for one transaction.

        Blocks while ``max_connections`` connections are already in use.

        Raises:
            FetchError: The pool or a new connection could not be opened.
        """
        with self._slots:
            conn_pool = self._get_pool()
            try:
                conn = conn_pool.getconn()
            except psycopg2.Error as e:
                raise FetchError(f"cannot connect to database: {e}") from e
            try:
                yield conn
            finally:
                conn_pool.putconn(conn, close=bool(getattr(conn, "closed", 0)))

    def table(self, name: str, id_field: str = "id") -> PostgresRowGateway:
        return PostgresRowGateway(self, name, id_field)

    def close(self) -> None:
        with self._pool_lock:
            if self._pool is not None:
                try:
                    self._pool.closeall()
                except psycopg2.Error:  # pragma: no cover
                    logger.debug("error closing connection pool", exc_info=True)
                self._pool = None

    def __enter__(self) -> PostgresStore:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()


class PostgresRowGateway:
    def __init__(self, store: PostgresStore, table: str, id_field: str = "id") -> None:
        self._store = store
        self.table = table
        self.id_field = id_field

    def _execute(
        self,
        query: sql.Composable,
        params: Sequence[Any],
        *,
        error_cls: type[Exception],
        fetch: str = "all",
    ) -> Any:
        start = time.time()
        try:
            with self._store.connection() as conn:
                with conn:
                    with conn.cursor(cursor_factory=RealDictCursor) as cur:
                        cur.execute(query, list(params))
                        if fetch == "all":
                            return [dict(r) for r in cur.fetchall()]
                        if fetch == "one":
                            row = cur.fetchone()
                            return dict(row) if row is not None else None
                        return cur.rowcount
        except FetchError as e:
            if error_cls is FetchError:
                raise
            raise error_cls(str(e)) from e
        except psycopg2.Error as e:
            raise error_cls(str(e).strip() or type(e).__name__) from e
        finally:
            logger.debug("table=%s elapsed_sec=%.4f", self.table, time.time() - start)

    # --- reads ---

    def _count_sync(self, filter: QueryFilter) -> int:
        where, params = build_where(filter)
        query = sql.SQL("SELECT count(*) AS n FROM {}").format(_ident(self.table)) + where
        row = self._execute(query, params, error_cls=FetchError, fetch="one")
        return int(row["n"]) if row else 0

    def _fetch_sync(
        self, filter: QueryFilter, sort: Sequence[OrderBy], page: PageWindow | None
    ) -> list[Record]:
        where, params = build_where(filter)
        query = sql.SQL("SELECT * FROM {}").format(_ident(self.table)) + where + build_order_by(sort)
        if page is not None:
            query = query + sql.SQL(" LIMIT %s OFFSET %s")
            params = [*params, page.page_size, page.offset]
        return self._execute(query, params, error_cls=FetchError, fetch="all")

    async def count(self, filter: QueryFilter) -> int:
        return await asyncio.to_thread(self._count_sync, filter)

    async def fetch(
        self,
        filter: QueryFilter,
        sort: Sequence[OrderBy] = (),
        page: PageWindow | None = None,
    ) -> list[Record]:
        return await asyncio.to_thread(self._fetch_sync, filter, tuple(sort), page)

    # --- writes ---

    def _update_sync(self, row_id: PersistedId, changes: Mapping[str, CellValue]) -> Record:
        if not changes:
            raise RemoteWriteError("update without changes")
        assignments = [sql.SQL("{} = %s").format(_ident(k)) for k in changes]
        query = sql.SQL("UPDATE {} SET {} WHERE {} = %s RETURNING *").format(
            _ident(self.table), sql.SQL(", ").join(assignments), _ident(self.id_field)
        )
        row = self._execute(
            query, [*changes.values(), row_id.value], error_cls=RemoteWriteError, fetch="one"
        )
        if row is None:
            raise RemoteWriteError(f"{self.table}: row {row_id} not found")
        return row

    def _insert_sync(self, partial: Mapping[str, CellValue]) -> Record:
        values = {k: v for k, v in partial.items() if k != self.id_field}
        if values:
            query = sql.SQL("INSERT INTO {} ({}) VALUES ({}) RETURNING *").format(
                _ident(self.table),
                sql.SQL(", ").join(_ident(k) for k in values),
                sql.SQL(", ").join(sql.Placeholder() for _ in values),
            )
        else:
            query = sql.SQL("INSERT INTO {} DEFAULT VALUES RETURNING *").format(_ident(self.table))
        row = self._execute(query, list(values.values()), error_cls=RemoteWriteError, fetch="one")
        if row is None:
            raise RemoteWriteError(f"{self.table}: insert returned no row")
        return row

    def _delete_sync(self, row_id: PersistedId) -> None:
        query = sql.SQL("DELETE FROM {} WHERE {} = %s").format(_ident(self.table), _ident(self.id_field))
        affected = self._execute(query, [row_id.value], error_cls=RemoteWriteError, fetch="none")
        if not affected:
            logger.debug("table=%s delete id=%s affected no rows", self.table, row_id)

    async def update(self, row_id: PersistedId, changes: Mapping[str, CellValue]) -> Record:
        if not isinstance(row_id, PersistedId):
            raise RemoteWriteError(f"refusing to update non-persisted row {row_id}")
        return await asyncio.to_thread(self._update_sync, row_id, dict(changes))

    async def insert(self, partial: Mapping[str, CellValue]) -> Record:
        return await asyncio.to_thread(self._insert_sync, dict(partial))

    async def delete(self, row_id: PersistedId) -> None:
        if not isinstance(row_id, PersistedId):
            raise RemoteWriteError(f"refusing to delete non-persisted row {row_id}")
        await asyncio.to_thread(self._delete_sync, row_id)
