# ehr_core/audit/models.py
from django.db import models
from django.utils import timezone

from ehr_core.audit.constants import AuditAction
from ehr_core.audit.exceptions import ImmutableRecordError
from ehr_core.audit.records import new_record_id


class AppendOnlyQuerySet(models.QuerySet):
    """Bulk update/delete are not part of the audit contract."""

    def update(self, **kwargs):
        raise ImmutableRecordError("Audit records cannot be updated.")

    def delete(self):
        raise ImmutableRecordError("Audit records cannot be deleted.")


class AuditEvent(models.Model):
    """
    Immutable audit record.
    One row per create/read/update/delete of a regulated entity, signed at append time.
    No foreign keys: the trail outlives the users and entities it mentions.
    """
    id = models.UUIDField(primary_key=True, default=new_record_id, editable=False)

    actor_user_id = models.CharField(max_length=64, db_index=True)
    actor_display_name = models.CharField(max_length=255)
    actor_role = models.CharField(max_length=64, null=True, blank=True)

    subject_type = models.CharField(max_length=64)
    subject_id = models.CharField(max_length=64)
    linked_subject_id = models.CharField(max_length=64, null=True, blank=True, db_index=True)

    action = models.CharField(max_length=16, choices=AuditAction.choices)
    occurred_at = models.DateTimeField(db_index=True)

    # Stored as given; GenericIPAddressField would normalise the text after signing.
    source_ip = models.CharField(max_length=45, null=True, blank=True)
    user_agent = models.TextField(null=True, blank=True)
    session_id = models.CharField(max_length=128, null=True, blank=True)

    changed_fields = models.JSONField(default=list)
    old_values = models.JSONField(null=True, blank=True)
    new_values = models.JSONField(null=True, blank=True)

    success = models.BooleanField(default=True)
    error_message = models.TextField(null=True, blank=True)

    description = models.TextField(blank=True, default="")
    metadata = models.JSONField(default=dict, blank=True)
    corrects_record_id = models.UUIDField(null=True, blank=True, db_index=True)

    integrity_signature = models.CharField(max_length=128)
    created_at = models.DateTimeField(default=timezone.now, editable=False, db_index=True)

    objects = AppendOnlyQuerySet.as_manager()

    class Meta:
        db_table = "audit_audit_event"
        ordering = ("-occurred_at", "-id")
        indexes = [
            models.Index(fields=["subject_type", "subject_id", "occurred_at"], name="audit_subject_occurred_idx"),
            models.Index(fields=["actor_user_id", "occurred_at"], name="audit_actor_occurred_idx"),
            models.Index(fields=["action", "occurred_at"], name="audit_action_occurred_idx"),
        ]

    def __str__(self):
        return f"{self.action} {self.subject_type}:{self.subject_id} by {self.actor_user_id}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableRecordError(f"Audit record {self.pk} cannot be modified.")
        kwargs["force_insert"] = True
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ImmutableRecordError(f"Audit record {self.pk} cannot be deleted.")
