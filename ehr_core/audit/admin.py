# ehr_core/audit/admin.py
from django.contrib import admin

from ehr_core.audit.models import AuditEvent


@admin.register(AuditEvent)
class AuditEventAdmin(admin.ModelAdmin):
    """Browse only. Records are written by the audit service and never edited."""
    list_display = (
        "occurred_at",
        "action",
        "subject_type",
        "subject_id",
        "actor_user_id",
        "actor_role",
        "success",
    )
    list_filter = ("action", "subject_type", "success", "actor_role")
    search_fields = ("subject_id", "linked_subject_id", "actor_user_id")
    ordering = ("-occurred_at",)

    def get_readonly_fields(self, request, obj=None):
        return [f.name for f in self.model._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
