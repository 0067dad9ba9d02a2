# ehr_core/encounters/services.py
from __future__ import annotations

from typing import Any, Dict

from django.db import transaction
from django.utils import timezone

from ehr_core.audit.constants import SUBJECT_ENCOUNTER, AuditAction
from ehr_core.audit.context import ActorContext, Outcome, Subject
from ehr_core.audit.diffing import snapshot
from ehr_core.audit.services import AuditService
from ehr_core.encounters.models import CLOSED_STATUSES, Encounter, EncounterStatus
from ehr_core.encounters.selectors import find_encounter
from ehr_core.patients.selectors import find_patient

ENCOUNTER_AUDIT_FIELDS = (
    "patient_id",
    "status",
    "encounter_type",
    "chief_complaint",
    "clinical_notes",
    "started_at",
    "ended_at",
)
UPDATABLE_FIELDS = frozenset({"status", "encounter_type", "chief_complaint", "clinical_notes"})

NOT_FOUND_MSG = "Encounter not found."
PATIENT_NOT_FOUND_MSG = "Patient not found."
CLOSED_MSG = "Encounter is closed and cannot be modified."


def _encounter_snapshot(enc: Encounter) -> Dict[str, Any]:
    return snapshot(enc, ENCOUNTER_AUDIT_FIELDS)


def _apply_status(enc: Encounter, new_status: str) -> None:
    now = timezone.now()
    if new_status == EncounterStatus.IN_PROGRESS and enc.started_at is None:
        enc.started_at = now
    if new_status in CLOSED_STATUSES and enc.ended_at is None:
        enc.ended_at = now
    enc.status = new_status


class EncounterService:
    @staticmethod
    def create_encounter(*, audit: AuditService, actor: ActorContext, patient_id, **data) -> Encounter:
        fields = {k: v for k, v in data.items() if k in UPDATABLE_FIELDS}

        with transaction.atomic():
            patient = find_patient(patient_id=patient_id)
            if patient is None:
                audit.record_mutation(
                    Subject(type=SUBJECT_ENCOUNTER, id="unassigned"),
                    AuditAction.CREATE,
                    None,
                    {"patient_id": str(patient_id), **fields},
                    actor,
                    Outcome.failed(PATIENT_NOT_FOUND_MSG),
                    description="Encounter create rejected",
                    field_order=ENCOUNTER_AUDIT_FIELDS,
                )
                enc = None
            else:
                status = fields.pop("status", EncounterStatus.PLANNED)
                enc = Encounter(patient=patient, **fields)
                _apply_status(enc, status)
                enc.save()

                audit.record_mutation(
                    Subject(type=SUBJECT_ENCOUNTER, id=enc.id),
                    AuditAction.CREATE,
                    None,
                    _encounter_snapshot(enc),
                    actor,
                    Outcome.ok(),
                    linked_subject_id=patient.id,
                    description="Encounter created",
                    field_order=ENCOUNTER_AUDIT_FIELDS,
                )

        if enc is None:
            raise ValueError(PATIENT_NOT_FOUND_MSG)
        return enc

    @staticmethod
    def get_encounter(*, audit: AuditService, actor: ActorContext, encounter_id) -> Encounter:
        with transaction.atomic():
            enc = find_encounter(encounter_id=encounter_id)
            audit.record_access(
                Subject(type=SUBJECT_ENCOUNTER, id=enc.id if enc is not None else encounter_id),
                actor,
                Outcome.ok() if enc is not None else Outcome.failed(NOT_FOUND_MSG),
                linked_subject_id=enc.patient_id if enc is not None else None,
                description="Encounter viewed",
            )

        if enc is None:
            raise Encounter.DoesNotExist(NOT_FOUND_MSG)
        return enc

    @staticmethod
    def update_encounter(*, audit: AuditService, actor: ActorContext, encounter_id, data: dict) -> Encounter:
        updates = {k: v for k, v in (data or {}).items() if k in UPDATABLE_FIELDS}
        error = None

        with transaction.atomic():
            enc = find_encounter(encounter_id=encounter_id)
            if enc is None:
                audit.record_mutation(
                    Subject(type=SUBJECT_ENCOUNTER, id=encounter_id),
                    AuditAction.UPDATE,
                    {},
                    {},
                    actor,
                    Outcome.failed(NOT_FOUND_MSG),
                    description="Encounter update rejected",
                )
            else:
                before = _encounter_snapshot(enc)
                if enc.status in CLOSED_STATUSES:
                    error = CLOSED_MSG
                    after = before
                else:
                    new_status = updates.pop("status", None)
                    for k, v in updates.items():
                        setattr(enc, k, v)
                    if new_status is not None:
                        _apply_status(enc, new_status)
                    enc.save()
                    after = _encounter_snapshot(enc)

                audit.record_mutation(
                    Subject(type=SUBJECT_ENCOUNTER, id=enc.id),
                    AuditAction.UPDATE,
                    before,
                    after,
                    actor,
                    Outcome.failed(error) if error else Outcome.ok(),
                    linked_subject_id=enc.patient_id,
                    description="Encounter update rejected" if error else "Encounter updated",
                    field_order=ENCOUNTER_AUDIT_FIELDS,
                )

        if enc is None:
            raise Encounter.DoesNotExist(NOT_FOUND_MSG)
        if error:
            raise ValueError(error)
        return enc
