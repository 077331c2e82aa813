from __future__ import annotations

import pytest

from canfs_grid.fields.registry import FieldRegistry, label_for
from canfs_grid.models.field_definition import FieldDefinition, FieldType


def _registry() -> FieldRegistry:
    return FieldRegistry(
        [
            FieldDefinition("client_name", "Client Name", sort_key="client"),
            FieldDefinition("BOP_Date", "BOP Date", FieldType.DATETIME, sort_key="BOP_Date"),
        ],
        label_overrides={"created_at": "Created Date"},
    )


@pytest.mark.parametrize(
    "key,label",
    [
        ("first_name", "First Name"),
        ("BOP_Status", "BOP Status"),
        ("FollowUp_Status", "Follow Up Status"),
        ("CalledOn", "Called On"),
        ("client_id", "Client ID"),
    ],
)
def test_label_for_derives_readable_labels(key, label):
    assert label_for(key) == label


def test_label_override_wins():
    assert label_for("created_at", {"created_at": "Created Date"}) == "Created Date"


def test_unknown_key_falls_back_to_text():
    reg = _registry()
    f = reg.get("created_at")
    assert f.type is FieldType.TEXT
    assert f.label == "Created Date"
    assert "created_at" not in reg


def test_duplicate_definitions_rejected():
    with pytest.raises(ValueError, match="duplicate"):
        FieldRegistry([FieldDefinition("a", "A"), FieldDefinition("a", "A again")])


def test_by_sort_key():
    reg = _registry()
    assert reg.by_sort_key("client").key == "client_name"
    assert reg.by_sort_key("nope") is None


def test_display_keys_declared_first_then_fetched_minus_excluded():
    reg = _registry()
    keys = reg.display_keys(["id", "phone", "BOP_Date", "fna_id", "email"])
    assert keys == ["client_name", "BOP_Date", "phone", "email"]
    assert [f.key for f in reg.display_fields(["phone"])] == ["client_name", "BOP_Date", "phone"]


def test_explicit_order_overrides_declaration_order():
    reg = FieldRegistry(
        [FieldDefinition("a", "A"), FieldDefinition("b", "B")],
        order=["b", "a"],
        excluded=["id"],
    )
    assert reg.display_keys(["id", "c"]) == ["b", "a", "c"]
