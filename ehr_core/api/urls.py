# ehr_core/api/urls.py
from __future__ import annotations

from rest_framework.routers import DefaultRouter

from ehr_core.audit.api.views import AuditEventViewSet
from ehr_core.encounters.api.views import EncounterViewSet
from ehr_core.patients.api.views import PatientViewSet

router = DefaultRouter()

router.register(r"patients", PatientViewSet, basename="patients")
router.register(r"encounters", EncounterViewSet, basename="encounter")
router.register(r"audit/events", AuditEventViewSet, basename="audit-events")

urlpatterns = [
    *router.urls,
]
