# ehr_core/patients/models.py
from django.db import models

from ehr_core.common.models import UUIDModel


class PatientStatus(models.TextChoices):
    ACTIVE = "ACTIVE", "Active"
    INACTIVE = "INACTIVE", "Inactive"
    DECEASED = "DECEASED", "Deceased"


class Patient(UUIDModel):
    """
    Patient demographics. Every create/read/update/delete goes through
    PatientService so it lands on the audit trail.
    """
    mrn = models.CharField(max_length=64, unique=True)

    first_name = models.CharField(max_length=128)
    last_name = models.CharField(max_length=128)
    date_of_birth = models.DateField(null=True, blank=True)
    gender = models.CharField(max_length=32, blank=True)

    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=32, blank=True)
    ssn = models.CharField(max_length=16, blank=True)
    address = models.TextField(blank=True)

    status = models.CharField(max_length=16, choices=PatientStatus.choices, default=PatientStatus.ACTIVE)
    notes = models.TextField(blank=True)

    class Meta:
        db_table = "patients_patient"
        indexes = [
            models.Index(fields=["last_name", "first_name"], name="patient_name_idx"),
        ]

    def __str__(self) -> str:
        return f"Patient({self.mrn})"
