# ehr_core/patients/services.py
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List

from django.db import IntegrityError, transaction
from django.db.models import ProtectedError

from ehr_core.audit.constants import SUBJECT_PATIENT, AuditAction
from ehr_core.audit.context import ActorContext, Outcome, Subject
from ehr_core.audit.diffing import snapshot
from ehr_core.audit.services import AuditService
from ehr_core.patients.models import Patient
from ehr_core.patients.selectors import find_patient

logger = logging.getLogger(__name__)

# Order in which changed fields are reported on audit records.
PATIENT_AUDIT_FIELDS = (
    "mrn",
    "first_name",
    "last_name",
    "date_of_birth",
    "gender",
    "email",
    "phone",
    "ssn",
    "address",
    "status",
    "notes",
)
UPDATABLE_FIELDS = frozenset(PATIENT_AUDIT_FIELDS)

# Subject id used when a create fails before an id exists.
UNASSIGNED_SUBJECT_ID = "unassigned"

DUPLICATE_MRN_MSG = "MRN already exists."
NOT_FOUND_MSG = "Patient not found."
IN_USE_MSG = "Patient has clinical records and cannot be deleted."


class PatientInUseError(Exception):
    pass


def _patient_snapshot(patient: Patient) -> Dict[str, Any]:
    return snapshot(patient, PATIENT_AUDIT_FIELDS)


class PatientService:
    """
    Patient writes and reads. Each call records exactly one audit record per
    patient touched, in the same transaction as the change. Failed operations
    are recorded with success=false and the error is raised after commit.
    """

    @staticmethod
    def create_patient(*, audit: AuditService, actor: ActorContext, **data) -> Patient:
        fields = {k: v for k, v in data.items() if k in UPDATABLE_FIELDS}
        error = None

        with transaction.atomic():
            try:
                with transaction.atomic():
                    patient = Patient.objects.create(**fields)
            except IntegrityError:
                error = DUPLICATE_MRN_MSG
                audit.record_mutation(
                    Subject(type=SUBJECT_PATIENT, id=UNASSIGNED_SUBJECT_ID),
                    AuditAction.CREATE,
                    None,
                    fields,
                    actor,
                    Outcome.failed(error),
                    description="Patient create rejected",
                    field_order=PATIENT_AUDIT_FIELDS,
                )
            else:
                audit.record_mutation(
                    Subject(type=SUBJECT_PATIENT, id=patient.id),
                    AuditAction.CREATE,
                    None,
                    _patient_snapshot(patient),
                    actor,
                    Outcome.ok(),
                    linked_subject_id=patient.id,
                    description="Patient created",
                    field_order=PATIENT_AUDIT_FIELDS,
                )

        if error:
            raise ValueError(error)
        return patient

    @staticmethod
    def get_patient(*, audit: AuditService, actor: ActorContext, patient_id) -> Patient:
        with transaction.atomic():
            patient = find_patient(patient_id=patient_id)
            audit.record_access(
                Subject(type=SUBJECT_PATIENT, id=patient.id if patient is not None else patient_id),
                actor,
                Outcome.ok() if patient is not None else Outcome.failed(NOT_FOUND_MSG),
                linked_subject_id=patient.id if patient is not None else None,
                description="Patient viewed",
            )

        if patient is None:
            raise Patient.DoesNotExist(NOT_FOUND_MSG)
        return patient

    @staticmethod
    @transaction.atomic
    def record_listing(*, audit: AuditService, actor: ActorContext, patients: Iterable[Patient]) -> List[Patient]:
        """A list response discloses every patient on the page: one read record each."""
        shown = list(patients)
        for patient in shown:
            audit.record_access(
                Subject(type=SUBJECT_PATIENT, id=patient.id),
                actor,
                Outcome.ok(),
                linked_subject_id=patient.id,
                description="Patient listed",
            )
        return shown

    @staticmethod
    def update_patient(*, audit: AuditService, actor: ActorContext, patient_id, data: dict) -> Patient:
        updates = {k: v for k, v in (data or {}).items() if k in UPDATABLE_FIELDS}
        error = None
        not_found = False

        with transaction.atomic():
            patient = find_patient(patient_id=patient_id)
            if patient is None:
                not_found = True
                audit.record_mutation(
                    Subject(type=SUBJECT_PATIENT, id=patient_id),
                    AuditAction.UPDATE,
                    {},
                    {},
                    actor,
                    Outcome.failed(NOT_FOUND_MSG),
                    description="Patient update rejected",
                )
            else:
                before = _patient_snapshot(patient)
                for k, v in updates.items():
                    setattr(patient, k, v)
                after = _patient_snapshot(patient)

                try:
                    with transaction.atomic():
                        patient.save()
                except IntegrityError:
                    error = DUPLICATE_MRN_MSG
                    patient.refresh_from_db()

                audit.record_mutation(
                    Subject(type=SUBJECT_PATIENT, id=patient.id),
                    AuditAction.UPDATE,
                    before,
                    after,
                    actor,
                    Outcome.failed(error) if error else Outcome.ok(),
                    linked_subject_id=patient.id,
                    description="Patient update rejected" if error else "Patient updated",
                    field_order=PATIENT_AUDIT_FIELDS,
                )

        if not_found:
            raise Patient.DoesNotExist(NOT_FOUND_MSG)
        if error:
            raise ValueError(error)
        return patient

    @staticmethod
    def delete_patient(*, audit: AuditService, actor: ActorContext, patient_id) -> None:
        error = None

        with transaction.atomic():
            patient = find_patient(patient_id=patient_id)
            if patient is None:
                error = NOT_FOUND_MSG
                subject_id = str(patient_id)
                before = {}
            else:
                subject_id = str(patient.id)
                before = _patient_snapshot(patient)
                try:
                    with transaction.atomic():
                        patient.delete()
                except ProtectedError:
                    error = IN_USE_MSG

            audit.record_mutation(
                Subject(type=SUBJECT_PATIENT, id=subject_id),
                AuditAction.DELETE,
                before,
                None,
                actor,
                Outcome.failed(error) if error else Outcome.ok(),
                linked_subject_id=subject_id if patient is not None else None,
                description="Patient delete rejected" if error else "Patient deleted",
                field_order=PATIENT_AUDIT_FIELDS,
            )

        if error == NOT_FOUND_MSG:
            raise Patient.DoesNotExist(error)
        if error:
            raise PatientInUseError(error)
        logger.info("patients.deleted id=%s", subject_id)
