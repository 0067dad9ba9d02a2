# ehr_core/encounters/models.py
from django.db import models

from ehr_core.common.models import UUIDModel
from ehr_core.patients.models import Patient


class EncounterStatus(models.TextChoices):
    PLANNED = "PLANNED", "Planned"
    IN_PROGRESS = "IN_PROGRESS", "In Progress"
    FINISHED = "FINISHED", "Finished"
    CANCELLED = "CANCELLED", "Cancelled"


class EncounterType(models.TextChoices):
    OUTPATIENT = "OUTPATIENT", "Outpatient"
    INPATIENT = "INPATIENT", "Inpatient"
    EMERGENCY = "EMERGENCY", "Emergency"
    TELEHEALTH = "TELEHEALTH", "Telehealth"


CLOSED_STATUSES = frozenset({EncounterStatus.FINISHED, EncounterStatus.CANCELLED})


class Encounter(UUIDModel):
    """
    A clinical visit. Audit records for an encounter carry the patient id as
    linked_subject_id, so a patient's full history is one query away.
    """
    patient = models.ForeignKey(Patient, on_delete=models.PROTECT, related_name="encounters")

    status = models.CharField(
        max_length=16,
        choices=EncounterStatus.choices,
        default=EncounterStatus.PLANNED,
        db_index=True,
    )
    encounter_type = models.CharField(max_length=16, choices=EncounterType.choices, default=EncounterType.OUTPATIENT)

    chief_complaint = models.TextField(blank=True)
    clinical_notes = models.TextField(blank=True)

    started_at = models.DateTimeField(null=True, blank=True)
    ended_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "encounters_encounter"
        indexes = [
            models.Index(fields=["patient", "created_at"], name="encounter_patient_idx"),
        ]

    def __str__(self) -> str:
        return f"Encounter({self.patient_id}, {self.status})"
