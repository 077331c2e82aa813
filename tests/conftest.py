# Shared pytest fixtures: temp working dir, sample config, in-memory row store
from __future__ import annotations

import asyncio
import itertools
import logging
import tempfile
from datetime import UTC, datetime
from pathlib import Path

import pytest

from canfs_grid.db.gateway import RemoteWriteError
from canfs_grid.logging.init import LOGGER_NAME, reset_logging


def _as_instant(value):
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return None
        return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)
    return None


class FakeGateway:
    """In-memory table with the RowGateway surface.

    Records every call in ``calls`` as ``(op, *args)``. ``fail_next(op, exc)``
    makes the next call of ``op`` raise; ``hold_next(op)`` returns an
    ``asyncio.Event`` the next call of ``op`` waits on before answering.
    """

    def __init__(self, table: str, id_field: str = "id", rows=None) -> None:
        self.table = table
        self.id_field = id_field
        self.rows: list[dict] = [dict(r) for r in (rows or [])]
        self.calls: list[tuple] = []
        self._failures: dict[str, list[Exception]] = {}
        self._holds: dict[str, list[asyncio.Event]] = {}
        self._ids = itertools.count(1000)

    # --- test controls ---

    def fail_next(self, op: str, exc: Exception) -> None:
        self._failures.setdefault(op, []).append(exc)

    def hold_next(self, op: str) -> asyncio.Event:
        gate = asyncio.Event()
        self._holds.setdefault(op, []).append(gate)
        return gate

    def ops(self) -> list[str]:
        return [c[0] for c in self.calls]

    async def _enter(self, op: str) -> None:
        holds = self._holds.get(op)
        if holds:
            await holds.pop(0).wait()
        failures = self._failures.get(op)
        if failures:
            raise failures.pop(0)

    # --- matching ---

    def _match(self, filter) -> list[dict]:
        out = []
        for r in self.rows:
            if filter.search is not None and filter.search.needle:
                needle = filter.search.needle.casefold()
                if not any(needle in str(r.get(f) or "").casefold() for f in filter.search.fields):
                    continue
            if any(r.get(k) != v for k, v in filter.equals):
                continue
            if filter.ranges:
                hits = []
                for rng in filter.ranges:
                    ts = _as_instant(r.get(rng.field))
                    ok = ts is not None
                    if ok and rng.start is not None:
                        ok = ts >= rng.start
                    if ok and rng.end is not None:
                        ok = ts < rng.end
                    hits.append(ok)
                if not (any(hits) if filter.ranges_match_any else all(hits)):
                    continue
            out.append(r)
        return out

    # --- gateway surface ---

    async def count(self, filter) -> int:
        self.calls.append(("count", filter))
        await self._enter("count")
        return len(self._match(filter))

    async def fetch(self, filter, sort=(), page=None) -> list[dict]:
        self.calls.append(("fetch", filter, tuple(sort), page))
        await self._enter("fetch")
        rows = self._match(filter)
        for o in reversed(tuple(sort)):
            present = [r for r in rows if r.get(o.column) is not None]
            missing = [r for r in rows if r.get(o.column) is None]
            present.sort(key=lambda r: r[o.column], reverse=not o.ascending)
            rows = present + missing
        if page is not None:
            rows = rows[page.offset : page.offset + page.page_size]
        return [dict(r) for r in rows]

    async def update(self, row_id, changes) -> dict:
        self.calls.append(("update", row_id, dict(changes)))
        await self._enter("update")
        for r in self.rows:
            if r.get(self.id_field) == row_id.value:
                r.update(changes)
                return dict(r)
        raise RemoteWriteError(f"{self.table}: row {row_id} not found")

    async def insert(self, partial) -> dict:
        self.calls.append(("insert", dict(partial)))
        await self._enter("insert")
        row = {self.id_field: next(self._ids), **partial}
        self.rows.append(row)
        return dict(row)

    async def delete(self, row_id) -> None:
        self.calls.append(("delete", row_id))
        await self._enter("delete")
        self.rows = [r for r in self.rows if r.get(self.id_field) != row_id.value]


class FakeStore:
    def __init__(self) -> None:
        self.gateways: dict[str, FakeGateway] = {}
        self.closed = False

    def seed(self, table: str, rows, id_field: str = "id") -> FakeGateway:
        gw = self.table(table, id_field)
        gw.rows = [dict(r) for r in rows]
        return gw

    def table(self, name: str, id_field: str = "id") -> FakeGateway:
        if name not in self.gateways:
            self.gateways[name] = FakeGateway(name, id_field)
        return self.gateways[name]

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> FakeStore:
        return self

    def __exit__(self, *exc) -> None:
        self.close()


@pytest.fixture()
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture()
def client_rows() -> list[dict]:
    return [
        {
            "id": 1,
            "first_name": "John",
            "last_name": "Smith",
            "phone": "555-0101",
            "email": "john@example.com",
            "created_at": datetime(2024, 3, 1, 15, 0, tzinfo=UTC),
            "BOP_Date": datetime(2024, 3, 12, 18, 30, tzinfo=UTC),
            "BOP_Status": "Scheduled",
            "Followup_Date": None,
            "status": "New",
            "interest_type": ["Life", "Annuity"],
        },
        {
            "id": 2,
            "first_name": "Mary",
            "last_name": "Johnson",
            "phone": "555-0102",
            "email": "mary@example.com",
            "created_at": datetime(2024, 3, 5, 15, 0, tzinfo=UTC),
            "BOP_Date": None,
            "BOP_Status": None,
            "Followup_Date": datetime(2024, 3, 20, 14, 0, tzinfo=UTC),
            "status": "In Progress",
            "interest_type": "Retirement",
        },
        {
            "id": 3,
            "first_name": "Ana",
            "last_name": "Lopez",
            "phone": "555-0199",
            "email": None,
            "created_at": datetime(2024, 2, 20, 15, 0, tzinfo=UTC),
            "BOP_Date": datetime(2024, 4, 30, 13, 0, tzinfo=UTC),
            "BOP_Status": None,
            "Followup_Date": None,
            "status": None,
            "interest_type": None,
        },
    ]


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture()
def sample_config_yaml() -> str:
    return """timezone: America/New_York
page_size: 10
debounce_ms: 300
column_width:
  min: 60
  max: 800
export_directory: ./exports
notice_log_dir: ./logs
database:
  host: localhost
  port: 5432
  user: appuser
  password: secret
  database: appdb
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "grid.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture(autouse=True)
def _isolated_logging():
    # handlers set up by one test must not write into another test's captured stdout
    yield
    reset_logging()
    logger = logging.getLogger(LOGGER_NAME)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
