# ehr_core/patients/selectors.py
from __future__ import annotations

from uuid import UUID

from django.db.models import Q, QuerySet

from ehr_core.patients.models import Patient


def find_patient(*, patient_id) -> Patient | None:
    try:
        pid = UUID(str(patient_id))
    except ValueError:
        return None
    return Patient.objects.filter(id=pid).first()


def search_patients(*, q: str | None = None) -> QuerySet[Patient]:
    qs = Patient.objects.all()

    qv = (q or "").strip()
    if qv:
        qs = qs.filter(
            Q(first_name__icontains=qv)
            | Q(last_name__icontains=qv)
            | Q(mrn__icontains=qv)
        )

    return qs.order_by("-created_at", "id")
