# ehr_core/encounters/admin.py
from django.contrib import admin

from ehr_core.encounters.models import Encounter


@admin.register(Encounter)
class EncounterAdmin(admin.ModelAdmin):
    list_display = ("id", "patient", "status", "encounter_type", "started_at", "ended_at")
    list_filter = ("status", "encounter_type")
    readonly_fields = ("created_at", "updated_at")
    ordering = ("-created_at",)

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
