# ehr_core/patients/admin.py
from django.contrib import admin

from ehr_core.patients.models import Patient


@admin.register(Patient)
class PatientAdmin(admin.ModelAdmin):
    # Admin edits bypass PatientService and are not audited; keep it read-only.
    list_display = (
        "mrn",
        "last_name",
        "first_name",
        "status",
        "created_at",
    )
    list_filter = ("status",)
    search_fields = ("mrn", "last_name", "first_name")
    readonly_fields = ("created_at", "updated_at")
    ordering = ("-created_at",)

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
