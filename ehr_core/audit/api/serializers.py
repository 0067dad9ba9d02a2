# ehr_core/audit/api/serializers.py
from __future__ import annotations

from rest_framework import serializers

from ehr_core.audit.constants import AuditAction
from ehr_core.audit.export import EXPORT_FORMATS
from ehr_core.audit.query import AuditFilter
from ehr_core.common.api.pagination import PageParamsSerializer


class AuditFilterSerializer(serializers.Serializer):
    actor_user_id = serializers.CharField(max_length=64, required=False)
    subject_type = serializers.CharField(max_length=64, required=False)
    subject_id = serializers.CharField(max_length=64, required=False)
    linked_subject_id = serializers.CharField(max_length=64, required=False)
    involving_subject_id = serializers.CharField(max_length=64, required=False)
    action = serializers.ChoiceField(choices=AuditAction.choices, required=False)
    occurred_from = serializers.DateTimeField(required=False)
    occurred_to = serializers.DateTimeField(required=False)
    success = serializers.BooleanField(required=False, allow_null=True, default=None)

    def to_filter(self) -> AuditFilter:
        data = self.validated_data
        return AuditFilter(**{name: data.get(name) for name in AuditFilterSerializer._declared_fields})


class AuditSearchParamsSerializer(AuditFilterSerializer, PageParamsSerializer):
    pass


class AuditExportParamsSerializer(AuditFilterSerializer):
    export_format = serializers.ChoiceField(choices=EXPORT_FORMATS, required=False, default="csv")


class AuditEventSerializer(serializers.Serializer):
    """Flat view of a VerifiedRecord: the stored record plus the outcome of re-verification."""
    id = serializers.UUIDField(source="record.id", read_only=True)
    actor_user_id = serializers.CharField(source="record.actor_user_id", read_only=True)
    actor_display_name = serializers.CharField(source="record.actor_display_name", read_only=True)
    actor_role = serializers.CharField(source="record.actor_role", read_only=True, allow_null=True)
    subject_type = serializers.CharField(source="record.subject_type", read_only=True)
    subject_id = serializers.CharField(source="record.subject_id", read_only=True)
    linked_subject_id = serializers.CharField(source="record.linked_subject_id", read_only=True, allow_null=True)
    action = serializers.CharField(source="record.action", read_only=True)
    occurred_at = serializers.DateTimeField(source="record.occurred_at", read_only=True)
    source_ip = serializers.CharField(source="record.source_ip", read_only=True, allow_null=True)
    user_agent = serializers.CharField(source="record.user_agent", read_only=True, allow_null=True)
    session_id = serializers.CharField(source="record.session_id", read_only=True, allow_null=True)
    changed_fields = serializers.ListField(child=serializers.CharField(), source="record.changed_fields", read_only=True)
    old_values = serializers.JSONField(source="record.old_values", read_only=True, allow_null=True)
    new_values = serializers.JSONField(source="record.new_values", read_only=True, allow_null=True)
    success = serializers.BooleanField(source="record.success", read_only=True)
    error_message = serializers.CharField(source="record.error_message", read_only=True, allow_null=True)
    description = serializers.CharField(source="record.description", read_only=True)
    metadata = serializers.JSONField(source="record.metadata", read_only=True)
    corrects_record_id = serializers.UUIDField(source="record.corrects_record_id", read_only=True, allow_null=True)
    created_at = serializers.DateTimeField(source="record.created_at", read_only=True)
    integrity_signature = serializers.CharField(source="record.integrity_signature", read_only=True)
    integrity_verified = serializers.BooleanField(read_only=True)


class AuditSummarySerializer(serializers.Serializer):
    total = serializers.IntegerField()
    failures = serializers.IntegerField()
    by_action = serializers.DictField(child=serializers.IntegerField())
    by_subject_type = serializers.DictField(child=serializers.IntegerField())
    top_actors = serializers.ListField(child=serializers.DictField())
