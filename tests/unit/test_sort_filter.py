from __future__ import annotations

import asyncio
from datetime import UTC, datetime

from canfs_grid.db.gateway import DateRange, OrderBy, QueryFilter, TextSearch
from canfs_grid.fields.registry import FieldRegistry
from canfs_grid.grid.sort_filter import Debouncer, SortFilterController, sort_value
from canfs_grid.models.field_definition import FieldDefinition as F
from canfs_grid.models.field_definition import FieldType as T
from canfs_grid.models.field_definition import SortDirection
from canfs_grid.models.sort_state import SortState

REGISTRY = FieldRegistry(
    [
        F("client_name", "Client Name", sort_key="client"),
        F("created_at", "Created", T.DATETIME, sort_key="created_at", default_direction=SortDirection.DESC),
        F("BOP_Date", "BOP Date", T.DATETIME, sort_key="BOP_Date"),
        F("calls", "Calls", T.NUMBER, sort_key="calls"),
    ]
)


def _controller(**kwargs) -> SortFilterController:
    kwargs.setdefault("sort_columns", {"client": ("first_name", "last_name")})
    return SortFilterController(REGISTRY, **kwargs)


class TestSorting:
    def test_new_key_uses_default_direction(self):
        c = _controller()
        assert c.toggle_sort("created_at") == SortState("created_at", SortDirection.DESC)
        assert c.toggle_sort("BOP_Date") == SortState("BOP_Date", SortDirection.ASC)

    def test_same_key_flips(self):
        c = _controller(initial_sort=SortState("created_at", SortDirection.DESC))
        assert c.toggle_sort("created_at").direction is SortDirection.ASC
        assert c.toggle_sort("created_at").direction is SortDirection.DESC

    def test_sort_key_maps_to_columns(self):
        c = _controller()
        c.toggle_sort("client")
        assert c.order_by() == (OrderBy("first_name", True), OrderBy("last_name", True))
        c.toggle_sort("client")
        assert c.order_by() == (OrderBy("first_name", False), OrderBy("last_name", False))

    def test_no_order_when_unsorted_or_client_sorted(self):
        assert _controller().order_by() == ()
        c = _controller(client_sort=True, initial_sort=SortState("calls"))
        assert c.order_by() == ()

    def test_client_sort_puts_nulls_last_both_ways(self):
        rows = [{"calls": 2}, {"calls": None}, {"calls": 10}, {"calls": 1}]
        c = _controller(client_sort=True, initial_sort=SortState("calls"))
        assert [r["calls"] for r in c.post_process(rows)] == [1, 2, 10, None]
        c.toggle_sort("calls")
        assert [r["calls"] for r in c.post_process(rows)] == [10, 2, 1, None]

    def test_client_sort_on_timestamps_and_strings(self):
        rows = [
            {"BOP_Date": "2024-03-02T10:00:00+00:00"},
            {"BOP_Date": datetime(2024, 3, 1, tzinfo=UTC)},
            {"BOP_Date": None},
        ]
        c = _controller(client_sort=True, initial_sort=SortState("BOP_Date", SortDirection.DESC))
        out = c.post_process(rows)
        assert out[0] is rows[0] and out[1] is rows[1] and out[2] is rows[2]


def test_sort_value_never_mixes_types():
    assert sort_value(None, T.TEXT) > sort_value("zzz", T.TEXT) > sort_value(5, T.NUMBER)
    assert sort_value("Ann", T.TEXT) == sort_value("ann", T.TEXT)


class TestFilters:
    def test_remote_search_builds_or_predicate(self):
        c = _controller(search_fields=("first_name", "last_name", "phone"))
        assert c.search_is_remote
        assert c.set_search("  smith ")
        q = c.to_query()
        assert q.search == TextSearch("smith", ("first_name", "last_name", "phone"))
        assert c.post_process([{"first_name": "x"}]) == [{"first_name": "x"}]

    def test_whitespace_only_change_is_not_a_change(self):
        c = _controller(search_fields=("first_name",))
        c.set_search("ann")
        assert not c.set_search("ann ")
        assert c.set_search("")
        assert c.to_query().search is None

    def test_client_search_filters_locally(self):
        c = _controller(client_search_fields=("client_name",), search_fields=("phone",))
        assert not c.search_is_remote
        c.set_search("SMI")
        assert c.to_query().search is None
        rows = [
            {"client_name": "John Smith", "phone": "1"},
            {"client_name": "Mary", "phone": "555-smi"},
            {"client_name": "Ana", "phone": "2"},
        ]
        assert [r["client_name"] for r in c.post_process(rows)] == ["John Smith", "Mary"]

    def test_equals_and_ranges_merge_with_base_filter(self):
        lo = datetime(2024, 3, 1, tzinfo=UTC)
        base = QueryFilter(equals=(("status", "New"),))
        c = _controller(base_filter=base)
        c.set_equals("BOP_Status", "Scheduled")
        c.set_ranges([DateRange("BOP_Date", lo, None)], match_any=True)
        q = c.to_query()
        assert q.equals == (("status", "New"), ("BOP_Status", "Scheduled"))
        assert q.ranges == (DateRange("BOP_Date", lo, None),)
        assert q.ranges_match_any
        c.clear_equals("BOP_Status")
        assert c.to_query().equals == (("status", "New"),)


class TestDebouncer:
    def test_burst_fires_once(self):
        calls = []

        async def cb():
            calls.append(1)

        async def scenario():
            d = Debouncer(0.01, cb)
            for _ in range(5):
                d.trigger()
            assert d.pending
            await asyncio.sleep(0.05)
            assert not d.pending

        asyncio.run(scenario())
        assert calls == [1]

    def test_flush_fires_pending_now(self):
        calls = []

        async def cb():
            calls.append(1)

        async def scenario():
            d = Debouncer(10, cb)
            d.trigger()
            await d.flush()

        asyncio.run(scenario())
        assert calls == [1]

    def test_cancel_drops_pending(self):
        calls = []

        async def cb():
            calls.append(1)

        async def scenario():
            d = Debouncer(0.01, cb)
            d.trigger()
            d.cancel()
            await asyncio.sleep(0.03)
            await d.flush()

        asyncio.run(scenario())
        assert calls == []
