# ehr_core/audit/tests/helpers.py
from datetime import datetime, timedelta, timezone

from django.db import transaction

from ehr_core.audit.records import AuditRecord, new_record_id

BASE_TIME = datetime(2024, 3, 1, 9, 0, 0, 123456, tzinfo=timezone.utc)


def make_record(**overrides) -> AuditRecord:
    data = dict(
        id=new_record_id(),
        actor_user_id="42",
        actor_display_name="Nurse Joy",
        actor_role="NURSE",
        subject_type="patient",
        subject_id="p-1",
        action="update",
        occurred_at=BASE_TIME,
        success=True,
        linked_subject_id="p-1",
        source_ip="10.0.0.5",
        user_agent="pytest",
        session_id="sess-1",
        changed_fields=("email",),
        old_values={"email": "a***@x.com"},
        new_values={"email": "b***@x.com"},
    )
    data.update(overrides)
    return AuditRecord(**data)


def at(minutes: int) -> datetime:
    return BASE_TIME + timedelta(minutes=minutes)


def append(store, **overrides):
    with transaction.atomic():
        return store.append(make_record(**overrides))
