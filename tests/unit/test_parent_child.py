from __future__ import annotations

import asyncio
from datetime import UTC, date, datetime
from zoneinfo import ZoneInfo

import pytest

from canfs_grid.db.gateway import FetchError, RemoteWriteError
from canfs_grid.logging.notices import NoticeBoard
from canfs_grid.models.values import PendingId, PersistedId
from canfs_grid.services.fna import FNA_COLLECTIONS, fna_manager

"""Unit tests for the parent/child row manager (FNA header plus child tables)."""

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)
CHILD_TABLES = [c.table for c in FNA_COLLECTIONS]


def _manager(store, **kwargs):
    kwargs.setdefault("clock", lambda: NOW)
    return fna_manager(store, **kwargs)


def _loaded(store, owner=42):
    mgr = _manager(store)
    assert asyncio.run(mgr.load(owner))
    return mgr


def _write_calls(store):
    return [c for t in CHILD_TABLES for c in store.table(t).calls if c[0] != "fetch"]


class TestLoad:
    def test_creates_header_on_first_use(self, store):
        mgr = _loaded(store)
        header_gw = store.table("fna_header")
        assert header_gw.ops() == ["fetch", "insert"]
        assert header_gw.calls[1] == ("insert", {"client_id": 42})
        assert mgr.ready and mgr.header_id == 1000
        for table in CHILD_TABLES:
            gw = store.table(table)
            assert gw.ops() == ["fetch"]
            assert gw.calls[0][1].equals == (("fna_id", 1000),)

    def test_uses_latest_existing_header(self, store):
        store.seed(
            "fna_header",
            [
                {"id": 5, "client_id": 42, "updated_at": datetime(2024, 1, 1, tzinfo=UTC)},
                {"id": 9, "client_id": 42, "updated_at": datetime(2024, 5, 1, tzinfo=UTC)},
                {"id": 11, "client_id": 7, "updated_at": datetime(2024, 6, 1, tzinfo=UTC)},
            ],
        )
        store.seed("fna_children", [{"id": 1, "fna_id": 9, "child_name": "Sam"}, {"id": 2, "fna_id": 5, "child_name": "Old"}])
        mgr = _loaded(store)
        assert mgr.header_id == 9
        assert store.table("fna_header").ops() == ["fetch"]
        rows = mgr.rows("children")
        assert [r.values["child_name"] for r in rows] == ["Sam"]
        assert rows[0].row_id == PersistedId(1)
        assert not rows[0].is_pending

    def test_one_failed_collection_clears_all(self, store):
        store.seed("fna_children", [{"id": 1, "fna_id": 1000, "child_name": "Sam"}])
        store.table("fna_assets").fail_next("fetch", FetchError("timeout"))
        mgr = _manager(store)
        assert not asyncio.run(mgr.load(42))
        assert mgr.rows("children") == []
        assert mgr.notices.latest_error.scope == "fna_assets"
        assert not mgr.loading

    def test_header_failure(self, store):
        store.table("fna_header").fail_next("fetch", FetchError("down"))
        mgr = _manager(store)
        assert not asyncio.run(mgr.load(42))
        assert not mgr.ready
        assert all(store.table(t).calls == [] for t in CHILD_TABLES)

    def test_injected_notice_board_receives_errors(self, store):
        board = NoticeBoard()
        store.table("fna_header").fail_next("fetch", FetchError("down"))
        mgr = _manager(store, notices=board)
        assert mgr.notices is board
        assert not asyncio.run(mgr.load(42))
        assert board.latest_error.message == "down"

    def test_unauthenticated_load_does_nothing(self, store):
        mgr = _manager(store, is_authenticated=lambda: False)
        assert not asyncio.run(mgr.load(42))
        assert store.table("fna_header").calls == []


class TestRows:
    def test_pending_row_inserts_with_parent_key(self, store):
        mgr = _loaded(store)
        row = mgr.add_row("children")
        assert isinstance(row.row_id, PendingId)
        mgr.edit("children", row.row_id, "child_name", "Sam")
        mgr.edit("children", row.row_id, "child_age", "7")
        saved = asyncio.run(mgr.save_row("children", row.row_id))
        gw = store.table("fna_children")
        op, payload = gw.calls[-1]
        assert op == "insert"
        assert payload["fna_id"] == 1000
        assert payload["child_name"] == "Sam"
        assert payload["child_age"] == 7
        assert saved.row_id == PersistedId(1000)
        assert [r.row_id for r in mgr.rows("children")] == [PersistedId(1000)]
        assert mgr.notices.active[-1].message == "Saved."

    def test_persisted_row_updates(self, store):
        store.seed("fna_assets", [{"id": 3, "fna_id": 1000, "asset_name": "401k", "balance": 100}])
        mgr = _loaded(store)
        mgr.edit("assets", PersistedId(3), "balance", "2500.50")
        assert asyncio.run(mgr.save_row("assets", PersistedId(3))) is not None
        op, row_id, changes = store.table("fna_assets").calls[-1]
        assert op == "update" and row_id == PersistedId(3)
        assert changes["balance"] == 2500.5
        assert changes["fna_id"] == 1000

    def test_missing_required_field_sends_nothing(self, store):
        mgr = _loaded(store)
        row = mgr.add_row("liabilities")
        mgr.edit("liabilities", row.row_id, "balance", "100")
        assert asyncio.run(mgr.save_row("liabilities", row.row_id)) is None
        assert _write_calls(store) == []
        err = mgr.notices.latest_error
        assert err.error_type == "VALIDATION_ERROR"
        assert "Liability Type is required" in err.message
        assert mgr.row("liabilities", row.row_id).values["balance"] == "100"

    def test_failed_save_keeps_edits(self, store):
        mgr = _loaded(store)
        row = mgr.add_row("properties")
        mgr.edit("properties", row.row_id, "address", "1 Main St")
        store.table("fna_properties").fail_next("insert", RemoteWriteError("constraint"))
        assert asyncio.run(mgr.save_row("properties", row.row_id)) is None
        kept = mgr.row("properties", row.row_id)
        assert kept.is_pending and kept.values["address"] == "1 Main St"
        assert not mgr.is_saving("properties", row.row_id)

    def test_blank_keys_written_as_empty_text(self, store):
        mgr = _loaded(store)
        row = mgr.add_row("income")
        mgr.edit("income", row.row_id, "fna_income_type", "PENSION")
        asyncio.run(mgr.save_row("income", row.row_id))
        payload = store.table("fna_income").calls[-1][1]
        assert payload["fna_income_role"] == ""
        assert payload["fna_income_type"] == "PENSION"

    def test_delete_pending_row_is_local(self, store):
        mgr = _loaded(store)
        row = mgr.add_row("children")
        assert asyncio.run(mgr.delete_row("children", row.row_id))
        assert mgr.rows("children") == []
        assert _write_calls(store) == []

    def test_delete_persisted_row(self, store):
        store.seed("fna_children", [{"id": 1, "fna_id": 1000, "child_name": "Sam"}])
        mgr = _loaded(store)
        assert asyncio.run(mgr.delete_row("children", PersistedId(1)))
        assert store.table("fna_children").calls[-1] == ("delete", PersistedId(1))
        assert mgr.rows("children") == []

    def test_failed_delete_keeps_row(self, store):
        store.seed("fna_children", [{"id": 1, "fna_id": 1000, "child_name": "Sam"}])
        mgr = _loaded(store)
        store.table("fna_children").fail_next("delete", RemoteWriteError("locked"))
        assert not asyncio.run(mgr.delete_row("children", PersistedId(1)))
        assert len(mgr.rows("children")) == 1
        assert not mgr.is_deleting("children", PersistedId(1))

    def test_single_row_collection(self, store):
        mgr = _loaded(store)
        first = mgr.single_row("tax_refund")
        assert mgr.single_row("tax_refund") is first
        with pytest.raises(ValueError, match="at most 1"):
            mgr.add_row("tax_refund")

    def test_add_row_requires_header(self, store):
        mgr = _manager(store)
        with pytest.raises(RuntimeError):
            mgr.add_row("children")
        with pytest.raises(KeyError, match="unknown child collection"):
            mgr.rows("pets")

    def test_saving_flag_while_in_flight(self, store):
        mgr = _loaded(store)
        row = mgr.add_row("children")
        mgr.edit("children", row.row_id, "child_name", "Sam")
        gw = store.table("fna_children")

        async def scenario():
            gate = gw.hold_next("insert")
            task = asyncio.ensure_future(mgr.save_row("children", row.row_id))
            await asyncio.sleep(0)
            saving = mgr.is_saving("children", row.row_id)
            gate.set()
            await task
            return saving

        assert asyncio.run(scenario()) is True
        assert not mgr.is_saving("children", row.row_id)


    def test_second_save_while_in_flight_is_ignored(self, store):
        mgr = _loaded(store)
        row = mgr.add_row("children")
        mgr.edit("children", row.row_id, "child_name", "Sam")
        gw = store.table("fna_children")

        async def scenario():
            gate = gw.hold_next("insert")
            first = asyncio.ensure_future(mgr.save_row("children", row.row_id))
            await asyncio.sleep(0)
            second = await mgr.save_row("children", row.row_id)
            gate.set()
            return await first, second

        first, second = asyncio.run(scenario())
        assert first is not None and second is None
        assert gw.ops().count("insert") == 1
        assert len(gw.rows) == 1
        assert [r.row_id for r in mgr.rows("children")] == [PersistedId(1000)]

    def test_dates_saved_as_calendar_days_east_of_utc(self, store):
        mgr = _manager(store, tz=ZoneInfo("Asia/Kolkata"))
        assert asyncio.run(mgr.load(42))
        row = mgr.add_row("children")
        mgr.edit("children", row.row_id, "child_name", "Sam")
        mgr.edit("children", row.row_id, "child_dob", "2015-06-01")
        assert asyncio.run(mgr.save_row("children", row.row_id)) is not None
        payload = store.table("fna_children").calls[-1][1]
        assert payload["child_dob"] == date(2015, 6, 1)

class TestHeader:
    def test_save_header_stamps_updated_at(self, store):
        mgr = _loaded(store)
        mgr.edit_header("spouse_name", "Jane")
        mgr.edit_header("more_children_count", "2")
        assert asyncio.run(mgr.save_header({"has_will": "yes"}))
        op, row_id, payload = store.table("fna_header").calls[-1]
        assert op == "update" and row_id == PersistedId(1000)
        assert payload == {
            "spouse_name": "Jane",
            "more_children_count": 2,
            "has_will": True,
            "updated_at": NOW,
        }
        assert mgr.header["spouse_name"] == "Jane"
        assert not mgr.saving_header

    def test_header_dates_saved_as_calendar_days(self, store):
        mgr = _manager(store, tz=ZoneInfo("Asia/Kolkata"))
        assert asyncio.run(mgr.load(42))
        assert asyncio.run(mgr.save_header({"client_dob": "1980-01-01"}))
        payload = store.table("fna_header").calls[-1][2]
        assert payload["client_dob"] == date(1980, 1, 1)

    def test_bad_option_rejected_before_write(self, store):
        mgr = _loaded(store)
        calls_before = len(store.table("fna_header").calls)
        assert not asyncio.run(mgr.save_header({"state": "Atlantis"}))
        assert len(store.table("fna_header").calls) == calls_before
        assert mgr.notices.latest_error.error_type == "VALIDATION_ERROR"
