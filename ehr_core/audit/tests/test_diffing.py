import math
from datetime import date

import pytest

from ehr_core.audit.constants import ABSENT_MARKER, MODIFIED_MARKER, REDACTED
from ehr_core.audit.diffing import DiffEngine, canonical_field_order, diff, snapshot
from ehr_core.audit.exceptions import DiffConstructionError


def test_update_reports_only_changed_fields():
    d = diff({"email": "a@x.com", "city": "Denver"}, {"email": "b@x.com", "city": "Denver"}, "update")

    assert d.changed_fields == ("email",)
    assert d.old_values == {"email": "a***@x.com"}
    assert d.new_values == {"email": "b***@x.com"}


def test_create_masks_all_after_fields():
    d = diff(None, {"first_name": "John", "last_name": "Doe"}, "create")

    assert d.changed_fields == ("first_name", "last_name")
    assert d.old_values is None
    assert d.new_values == {"first_name": "J***", "last_name": "D***"}


def test_delete_has_only_old_values():
    d = diff({"notes": "x", "status": "ACTIVE"}, None, "delete")

    assert d.changed_fields == ("notes", "status")
    assert d.old_values == {"notes": MODIFIED_MARKER, "status": "ACTIVE"}
    assert d.new_values is None


def test_read_has_no_diff():
    d = diff(None, None, "read")
    assert d.changed_fields == ()
    assert d.old_values is None and d.new_values is None
    assert not d.has_changes


def test_identical_update_is_empty_but_valid():
    d = diff({"status": "ACTIVE"}, {"status": "ACTIVE"}, "update")
    assert d.changed_fields == ()
    assert d.old_values == {}
    assert d.new_values == {}


def test_field_present_on_one_side_uses_absent_marker():
    d = diff({"status": "ACTIVE", "notes": "old"}, {"status": "ACTIVE", "phone": "555-123-4567"}, "update")

    assert d.changed_fields == ("notes", "phone")
    assert d.old_values == {"notes": MODIFIED_MARKER, "phone": ABSENT_MARKER}
    assert d.new_values == {"notes": ABSENT_MARKER, "phone": "***-***-4567"}


def test_change_detected_on_raw_values_even_when_masks_match():
    d = diff({"ssn": "123-45-6789"}, {"ssn": "987-65-6789"}, "update")

    assert d.changed_fields == ("ssn",)
    assert d.old_values == d.new_values == {"ssn": "*****6789"}


def test_bool_and_int_are_different_values():
    d = diff({"flag": 1}, {"flag": True}, "update")
    assert d.changed_fields == ("flag",)
    assert d.new_values == {"flag": REDACTED}


def test_explicit_field_order_then_name_order():
    before = {"zeta": 1, "alpha": 1, "status": "A"}
    after = {"zeta": 2, "alpha": 2, "status": "B"}

    d = diff(before, after, "update", field_order=["status"])
    assert d.changed_fields == ("status", "alpha", "zeta")
    assert list(d.old_values) == ["status", "alpha", "zeta"]

    assert canonical_field_order({"b", "a", "c"}, ["c", "missing"]) == ("c", "a", "b")


def test_nested_values_compared_structurally():
    d = diff({"status": {"a": [1, 2]}}, {"status": {"a": [1, 2]}}, "update")
    assert d.changed_fields == ()

    d = diff({"status": {"a": [1, 2]}}, {"status": {"a": [1, 3]}}, "update")
    assert d.changed_fields == ("status",)


@pytest.mark.parametrize(
    "before, after, action",
    [
        ({"a": 1}, {"a": 1}, "create"),
        (None, None, "create"),
        ({"a": 1}, {"a": 1}, "delete"),
        (None, None, "delete"),
        ({"a": 1}, None, "update"),
        (None, {"a": 1}, "update"),
        ({"a": 1}, {"a": 2}, "merge"),
        (["a"], ["b"], "update"),
    ],
)
def test_invalid_snapshots_rejected(before, after, action):
    with pytest.raises(DiffConstructionError):
        diff(before, after, action)


@pytest.mark.parametrize(
    "value",
    [{"a", "b"}, object(), math.nan, {1: "x"}],
)
def test_unsupported_values_rejected(value):
    with pytest.raises(DiffConstructionError):
        diff({"status": "A"}, {"status": value}, "update")


def test_engine_exposes_policy():
    engine = DiffEngine()
    assert engine.policy.mask("ssn", "123456789") == "*****6789"


@pytest.mark.django_db
def test_snapshot_of_model_uses_attnames(patient):
    from ehr_core.encounters.models import Encounter

    enc = Encounter.objects.create(patient=patient, chief_complaint="cough")
    snap = snapshot(enc, ["patient", "status", "chief_complaint"])

    assert snap == {"patient_id": patient.id, "status": "PLANNED", "chief_complaint": "cough"}
    assert snapshot(None) is None

    full = snapshot(patient)
    assert full["mrn"] == "MRN-TEST-001"
    assert full["date_of_birth"] is None or isinstance(full["date_of_birth"], date)
