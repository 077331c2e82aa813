from __future__ import annotations

from datetime import date, datetime, time, timedelta, tzinfo

from canfs_grid.db.gateway import DateRange, QueryFilter
from canfs_grid.grid.definition import ViewDefinition
from canfs_grid.models.field_definition import FieldDefinition as F
from canfs_grid.models.field_definition import FieldType as T
from canfs_grid.models.field_definition import SortDirection
from canfs_grid.models.sort_state import SortState
from canfs_grid.models.values import Record

"""Catalogue of the back-office grid views.

Each entry is a ``ViewDefinition``; ``GridViewModel(VIEWS[name], store)``
mounts it. Status option lists start with "" so a cell can be cleared.
"""

__all__ = [
    "LABEL_OVERRIDES",
    "BOP_STATUSES",
    "FOLLOWUP_STATUSES",
    "CLIENT_STATUSES",
    "ALL_RECORDS",
    "UPCOMING_MEETINGS",
    "PROGRESS_SUMMARY",
    "FNA_CLIENT_SEARCH",
    "VIEWS",
    "client_name",
    "default_upcoming_window",
    "get_view",
    "upcoming_export_name",
    "upcoming_filter",
    "upcoming_ranges",
]

LABEL_OVERRIDES = {
    "client_name": "Client Name",
    "last_call_date": "Last Call On",
    "call_attempts": "No of Calls",
    "last_bop_date": "Last/Next BOP Call On",
    "bop_attempts": "No of BOP Calls",
    "last_followup_date": "Last/Next FollowUp On",
    "followup_attempts": "No of FollowUp Calls",
    "created_at": "Created Date",
    "interest_type": "Interest Type",
    "business_opportunities": "Business Opportunities",
    "wealth_solutions": "Wealth Solutions",
    "preferred_days": "Preferred Days",
    "preferred_time": "Preferred Time",
    "referred_by": "Referred By",
    "Profession": "Profession",
    "Product": "Products Sold",
    "Comment": "Comment",
    "Remark": "Remark",
    "CalledOn": "Called On",
    "BOP_Date": "BOP Date",
    "BOP_Status": "BOP Status",
    "Followup_Date": "Follow-Up Date",
    "FollowUp_Status": "Follow-Up Status",
    "spouse_name": "Spouse Name",
    "date_of_birth": "Date Of Birth",
    "children": "Children",
    "city": "City",
    "state": "State",
    "immigration_status": "Immigration Status",
    "work_details": "Work Details",
    "associate_name": "Associate Name",
    "policy_number": "Policy #",
    "submit_date": "Submit Date",
    "issue_date": "Issue Date",
    "amount": "Amount",
    "bill_amount": "Bill Amount",
}

BOP_STATUSES = ("", "Scheduled", "Completed", "Rescheduled", "Cancelled", "No Show")
FOLLOWUP_STATUSES = ("", "Scheduled", "Completed", "Rescheduled", "Cancelled", "No Show")
CLIENT_STATUSES = ("", "New", "In Progress", "Closed", "Not Interested")

UPCOMING_EXPORT_LIMIT = 5000
PROGRESS_FETCH_LIMIT = 10000


def _label(key: str) -> str:
    return LABEL_OVERRIDES.get(key, key)


def client_name(row: Record) -> str:
    """``first_name last_name``, blank parts dropped."""
    first = row.get("first_name") or ""
    last = row.get("last_name") or ""
    return f"{first} {last}".strip()


DESC = SortDirection.DESC

_REGISTRATION_FIELDS = (
    F("client_name", _label("client_name"), sort_key="client"),
    F("first_name", "First Name"),
    F("last_name", "Last Name"),
    F("phone", "Phone"),
    F("email", "Email"),
    F("created_at", _label("created_at"), T.DATETIME, sort_key="created_at", default_direction=DESC),
    F("CalledOn", _label("CalledOn"), T.DATETIME, sort_key="CalledOn", default_direction=DESC),
    F("BOP_Date", _label("BOP_Date"), T.DATETIME, sort_key="BOP_Date"),
    F("BOP_Status", _label("BOP_Status"), T.SELECT, options=BOP_STATUSES, sort_key="BOP_Status"),
    F("Followup_Date", _label("Followup_Date"), T.DATETIME, sort_key="Followup_Date"),
    F("FollowUp_Status", _label("FollowUp_Status"), T.SELECT, options=FOLLOWUP_STATUSES),
    F("status", "Status", T.SELECT, options=CLIENT_STATUSES, sort_key="status"),
    F("Issued", "Issued", T.DATETIME, sort_key="Issued", default_direction=DESC),
    F("interest_type", _label("interest_type"), T.LIST),
    F("business_opportunities", _label("business_opportunities"), T.LIST),
    F("wealth_solutions", _label("wealth_solutions"), T.LIST),
    F("preferred_days", _label("preferred_days"), T.LIST),
    F("preferred_time", _label("preferred_time")),
    F("referred_by", _label("referred_by"), T.TEXTAREA),
    F("Profession", _label("Profession")),
    F("Product", _label("Product"), T.TEXTAREA),
    F("Comment", _label("Comment"), T.TEXTAREA),
    F("Remark", _label("Remark"), T.TEXTAREA),
    F("spouse_name", _label("spouse_name")),
    F("date_of_birth", _label("date_of_birth"), T.DATE),
    F("children", _label("children")),
    F("city", _label("city")),
    F("state", _label("state")),
    F("immigration_status", _label("immigration_status")),
    F("work_details", _label("work_details")),
)

_CLIENT_SORT = {"client": ("first_name", "last_name")}

ALL_RECORDS = ViewDefinition(
    name="all_records",
    table="client_registrations",
    fields=_REGISTRATION_FIELDS,
    label_overrides=LABEL_OVERRIDES,
    page_size=10,
    search_fields=("first_name", "last_name", "phone"),
    sort_columns=_CLIENT_SORT,
    initial_sort=SortState("created_at", DESC),
    sticky_count=1,
    derived={"client_name": client_name},
)

UPCOMING_MEETINGS = ViewDefinition(
    name="upcoming_meetings",
    table="client_registrations",
    fields=_REGISTRATION_FIELDS,
    label_overrides=LABEL_OVERRIDES,
    page_size=20,
    sort_columns=_CLIENT_SORT,
    initial_sort=SortState("BOP_Date", DESC),
    client_side=True,
    fetch_limit=UPCOMING_EXPORT_LIMIT,
    sticky_count=1,
    derived={"client_name": client_name},
)

PROGRESS_SUMMARY = ViewDefinition(
    name="progress_summary",
    table="v_client_progress_summary",
    id_field="clientid",
    fields=(
        F("client_name", _label("client_name"), sort_key="client_name"),
        F("phone", "Phone"),
        F("email", "Email"),
        F("last_call_date", _label("last_call_date"), T.DATE, sort_key="last_call_date", default_direction=DESC),
        F("call_attempts", _label("call_attempts"), T.NUMBER, sort_key="call_attempts"),
        F("last_bop_date", _label("last_bop_date"), T.DATE, sort_key="last_bop_date", default_direction=DESC),
        F("bop_attempts", _label("bop_attempts"), T.NUMBER, sort_key="bop_attempts"),
        F(
            "last_followup_date",
            _label("last_followup_date"),
            T.DATE,
            sort_key="last_followup_date",
            default_direction=DESC,
        ),
        F("followup_attempts", _label("followup_attempts"), T.NUMBER, sort_key="followup_attempts"),
    ),
    excluded=frozenset({"id", "clientid", "first_name", "last_name"}),
    label_overrides=LABEL_OVERRIDES,
    page_size=10,
    client_search_fields=("client_name",),
    initial_sort=SortState("last_call_date", DESC),
    client_side=True,
    fetch_limit=PROGRESS_FETCH_LIMIT,
    derived={"client_name": client_name},
    read_only=True,
)

FNA_CLIENT_SEARCH = ViewDefinition(
    name="fna_client_search",
    table="client_registrations",
    fields=(
        F("first_name", "First Name"),
        F("last_name", "Last Name"),
        F("phone", "Phone"),
        F("email", "Email"),
    ),
    order=("first_name", "last_name", "phone", "email"),
    excluded=frozenset({"id", "fna_id", "client_id", "created_at"}),
    page_size=50,
    search_fields=("first_name", "last_name", "phone"),
    initial_sort=SortState("created_at", DESC),
    read_only=True,
)

VIEWS: dict[str, ViewDefinition] = {
    v.name: v for v in (ALL_RECORDS, UPCOMING_MEETINGS, PROGRESS_SUMMARY, FNA_CLIENT_SEARCH)
}


def get_view(name: str) -> ViewDefinition:
    try:
        return VIEWS[name]
    except KeyError:
        raise KeyError(f"unknown view '{name}' (known: {', '.join(sorted(VIEWS))})") from None


def upcoming_ranges(start: date, end: date, tz: tzinfo) -> list[DateRange]:
    """BOP or follow-up date on any local day from ``start`` through ``end``."""
    lo = datetime.combine(start, time(0, 0), tzinfo=tz)
    hi = datetime.combine(end + timedelta(days=1), time(0, 0), tzinfo=tz)
    return [DateRange("BOP_Date", lo, hi), DateRange("Followup_Date", lo, hi)]


def default_upcoming_window(today: date) -> tuple[date, date]:
    return today, today + timedelta(days=30)


def upcoming_export_name(start: date, end: date) -> str:
    return f"Upcoming_{start.isoformat()}_to_{end.isoformat()}.xlsx"


def upcoming_filter(start: date, end: date, tz: tzinfo) -> QueryFilter:
    return QueryFilter(ranges=tuple(upcoming_ranges(start, end, tz)), ranges_match_any=True)
