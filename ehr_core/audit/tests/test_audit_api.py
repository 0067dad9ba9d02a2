import csv
import io
import json

import pytest
from django.db import transaction

from ehr_core.audit.constants import AuditAction
from ehr_core.audit.context import Outcome, Subject
from ehr_core.audit.models import AuditEvent

pytestmark = pytest.mark.django_db

URL = "/api/v1/audit/events/"


@pytest.fixture
def trail(audit_service, actor):
    subject = Subject(type="patient", id="p-1")
    with transaction.atomic():
        ids = [
            audit_service.record_mutation(
                subject, AuditAction.CREATE, None, {"email": "a@x.com"}, actor, Outcome.ok()
            ),
            audit_service.record_access(subject, actor, Outcome.ok()),
            audit_service.record_access(subject, actor, Outcome.failed("Patient not found")),
            audit_service.record_access(Subject(type="encounter", id="e-1"), actor, Outcome.ok(), linked_subject_id="p-1"),
        ]
    return ids


def test_clinical_roles_cannot_read_the_trail(doctor_client, trail):
    res = doctor_client.get(URL)
    assert res.status_code == 403, res.data
    assert res.data["error"]["code"] == "permission_denied"


def test_anonymous_is_rejected(client, trail):
    res = client.get(URL)
    assert res.status_code in (401, 403)


def test_list_is_paged_newest_first(reviewer_client, trail):
    res = reviewer_client.get(URL, {"page_size": 2})
    assert res.status_code == 200, res.data

    assert res.data["count"] == 4
    assert res.data["page"] == 1
    assert res.data["page_size"] == 2
    assert [r["id"] for r in res.data["results"]] == [str(trail[3]), str(trail[2])]
    assert all(r["integrity_verified"] for r in res.data["results"])

    res = reviewer_client.get(URL, {"page_size": 2, "page": 2})
    assert [r["id"] for r in res.data["results"]] == [str(trail[1]), str(trail[0])]


def test_list_filters(reviewer_client, trail):
    res = reviewer_client.get(URL, {"subject_type": "patient", "success": "false"})
    assert res.status_code == 200, res.data
    assert res.data["count"] == 1
    row = res.data["results"][0]
    assert row["error_message"] == "Patient not found"
    assert row["actor_role"] == "NURSE"

    res = reviewer_client.get(URL, {"involving_subject_id": "p-1"})
    assert res.data["count"] == 4

    res = reviewer_client.get(URL, {"action": "create"})
    assert res.data["count"] == 1
    assert res.data["results"][0]["new_values"] == {"email": "a***@x.com"}


def test_list_rejects_bad_filters(reviewer_client, trail):
    res = reviewer_client.get(URL, {"action": "merge"})
    assert res.status_code == 400
    assert res.data["error"]["code"] == "validation_error"

    res = reviewer_client.get(
        URL, {"occurred_from": "2024-03-02T00:00:00Z", "occurred_to": "2024-03-01T00:00:00Z"}
    )
    assert res.status_code == 400


def test_retrieve(reviewer_client, trail):
    res = reviewer_client.get(f"{URL}{trail[0]}/")
    assert res.status_code == 200, res.data
    assert res.data["action"] == "create"
    assert res.data["changed_fields"] == ["email"]
    assert res.data["old_values"] is None
    assert res.data["integrity_verified"] is True


def test_retrieve_unknown_and_malformed_ids(reviewer_client, trail):
    assert reviewer_client.get(f"{URL}0190c6a4-0000-7000-8000-000000000000/").status_code == 404
    assert reviewer_client.get(f"{URL}not-a-uuid/").status_code == 404


def test_tampered_record_is_a_conflict_not_a_404(reviewer_client, trail):
    AuditEvent._base_manager.filter(pk=trail[0]).update(actor_user_id="99")

    res = reviewer_client.get(f"{URL}{trail[0]}/")
    assert res.status_code == 409, res.data
    assert res.data["error"]["code"] == "integrity_violation"

    listed = reviewer_client.get(URL, {"action": "create"})
    assert listed.data["results"][0]["integrity_verified"] is False


def test_summary(reviewer_client, trail):
    res = reviewer_client.get(f"{URL}summary/", {"subject_type": "patient"})
    assert res.status_code == 200, res.data
    assert res.data["total"] == 3
    assert res.data["failures"] == 1
    assert res.data["by_action"] == {"create": 1, "read": 2, "update": 0, "delete": 0}
    assert res.data["top_actors"][0]["actor_user_id"] == "42"


def test_export_csv_is_itself_audited(reviewer_client, reviewer, trail):
    res = reviewer_client.get(f"{URL}export/", {"subject_type": "patient"})
    assert res.status_code == 200
    assert res["Content-Type"].startswith("text/csv")
    assert 'filename="audit_export.csv"' in res["Content-Disposition"]

    rows = list(csv.DictReader(io.StringIO(res.content.decode())))
    assert len(rows) == 3
    assert {r["integrity_verified"] for r in rows} == {"true"}

    export_record = AuditEvent.objects.get(pk=res["X-Audit-Export-Record-Id"])
    assert export_record.subject_type == "audit_export"
    assert export_record.subject_id == "csv"
    assert export_record.action == "read"
    assert export_record.actor_user_id == str(reviewer.pk)
    assert export_record.actor_role == "PRIVACY_OFFICER"
    assert export_record.metadata["row_count"] == 3
    assert export_record.metadata["filter"] == {"subject_type": "patient"}


def test_export_json(reviewer_client, trail):
    res = reviewer_client.get(f"{URL}export/", {"export_format": "json", "action": "read"})
    assert res.status_code == 200
    payload = json.loads(res.content)
    assert len(payload) == 3
    assert all(item["action"] == "read" for item in payload)
    assert all(item["integrity_verified"] for item in payload)


def test_export_rejects_unknown_format(reviewer_client, trail):
    res = reviewer_client.get(f"{URL}export/", {"export_format": "xml"})
    assert res.status_code == 400


def test_trail_has_no_write_surface(api_client, trail):
    assert api_client.post(URL, {}, format="json").status_code == 405
    assert api_client.delete(f"{URL}{trail[0]}/").status_code == 405


def test_export_over_the_row_cap_is_flagged_as_truncated(reviewer_client, trail, settings):
    settings.AUDIT_EXPORT_MAX_ROWS = 2

    res = reviewer_client.get(f"{URL}export/", {"export_format": "json"})
    assert res.status_code == 200
    assert len(json.loads(res.content)) == 2
    assert res["X-Audit-Export-Total"] == "4"
    assert res["X-Audit-Export-Truncated"] == "true"

    export_record = AuditEvent.objects.get(pk=res["X-Audit-Export-Record-Id"])
    assert export_record.metadata["row_count"] == 2
    assert export_record.metadata["total_count"] == 4
    assert export_record.metadata["truncated"] is True


def test_complete_export_is_not_flagged(reviewer_client, trail):
    res = reviewer_client.get(f"{URL}export/", {"subject_type": "patient"})
    assert res["X-Audit-Export-Total"] == "3"
    assert res["X-Audit-Export-Truncated"] == "false"
