# ehr_core/patients/apps.py
from django.apps import AppConfig


class PatientsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "ehr_core.patients"
    label = "patients"
