# ehr_core/encounters/tests/test_encounter_api.py
import pytest

from ehr_core.audit.models import AuditEvent
from ehr_core.encounters.models import Encounter, EncounterStatus

pytestmark = pytest.mark.django_db

URL = "/api/v1/encounters/"


def _encounter_records(**filters):
    return list(AuditEvent.objects.filter(subject_type="encounter", **filters).order_by("occurred_at"))


def test_create_links_audit_record_to_patient(doctor_client, patient):
    res = doctor_client.post(
        URL,
        {"patient_id": str(patient.id), "status": "IN_PROGRESS", "chief_complaint": "Chest pain"},
        format="json",
    )
    assert res.status_code == 201, res.data
    assert res.data["started_at"] is not None

    [record] = _encounter_records(subject_id=res.data["id"])
    assert record.action == "create"
    assert record.linked_subject_id == str(patient.id)
    assert record.new_values["chief_complaint"] == "<modified>"
    assert record.new_values["patient_id"] == str(patient.id)
    assert record.new_values["status"] == "IN_PROGRESS"


def test_create_for_unknown_patient_is_recorded(doctor_client):
    res = doctor_client.post(URL, {"patient_id": "0190c6a4-0000-7000-8000-000000000000"}, format="json")
    assert res.status_code == 400, res.data

    [record] = _encounter_records(subject_id="unassigned")
    assert record.success is False
    assert record.error_message == "Patient not found."
    assert Encounter.objects.count() == 0


def test_patient_history_includes_encounter_activity(doctor_client, patient):
    enc = Encounter.objects.create(patient=patient)

    assert doctor_client.get(f"{URL}{enc.id}/").status_code == 200
    res = doctor_client.patch(f"{URL}{enc.id}/", {"clinical_notes": "Stable"}, format="json")
    assert res.status_code == 200, res.data

    involving = AuditEvent.objects.filter(linked_subject_id=str(patient.id))
    assert sorted(involving.values_list("action", flat=True)) == ["read", "update"]

    update = involving.get(action="update")
    assert update.changed_fields == ["clinical_notes"]
    assert update.old_values == {"clinical_notes": "<modified>"}


def test_finishing_sets_end_time(doctor_client, patient):
    enc = Encounter.objects.create(patient=patient, status=EncounterStatus.IN_PROGRESS)

    res = doctor_client.patch(f"{URL}{enc.id}/", {"status": "FINISHED"}, format="json")
    assert res.status_code == 200, res.data
    assert res.data["ended_at"] is not None

    [record] = _encounter_records(subject_id=str(enc.id), action="update")
    assert record.changed_fields == ["status", "ended_at"]
    assert record.old_values["ended_at"] is None


def test_closed_encounter_update_fails_and_is_recorded(doctor_client, patient):
    enc = Encounter.objects.create(patient=patient, status=EncounterStatus.FINISHED)

    res = doctor_client.patch(f"{URL}{enc.id}/", {"clinical_notes": "late entry"}, format="json")
    assert res.status_code == 400, res.data

    enc.refresh_from_db()
    assert enc.clinical_notes == ""

    [record] = _encounter_records(subject_id=str(enc.id), action="update")
    assert record.success is False
    assert record.error_message == "Encounter is closed and cannot be modified."
    assert record.changed_fields == []


def test_missing_encounter_read_is_recorded(doctor_client):
    missing = "0190c6a4-0000-7000-8000-000000000001"
    assert doctor_client.get(f"{URL}{missing}/").status_code == 404

    [record] = _encounter_records(subject_id=missing)
    assert record.action == "read"
    assert record.success is False
