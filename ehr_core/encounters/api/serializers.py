# ehr_core/encounters/api/serializers.py
from __future__ import annotations

from rest_framework import serializers

from ehr_core.encounters.models import Encounter, EncounterStatus, EncounterType


class EncounterCreateSerializer(serializers.Serializer):
    patient_id = serializers.UUIDField()
    encounter_type = serializers.ChoiceField(choices=EncounterType.choices, required=False, default=EncounterType.OUTPATIENT)
    status = serializers.ChoiceField(choices=EncounterStatus.choices, required=False, default=EncounterStatus.PLANNED)
    chief_complaint = serializers.CharField(required=False, allow_blank=True, default="")
    clinical_notes = serializers.CharField(required=False, allow_blank=True, default="")


class EncounterUpdateSerializer(serializers.Serializer):
    """
    Partial update contract (PATCH).
    """
    encounter_type = serializers.ChoiceField(choices=EncounterType.choices, required=False)
    status = serializers.ChoiceField(choices=EncounterStatus.choices, required=False)
    chief_complaint = serializers.CharField(required=False, allow_blank=True)
    clinical_notes = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("At least one field is required.")
        return attrs


class EncounterSerializer(serializers.ModelSerializer):
    patient_id = serializers.UUIDField(read_only=True)

    class Meta:
        model = Encounter
        fields = [
            "id",
            "patient_id",
            "status",
            "encounter_type",
            "chief_complaint",
            "clinical_notes",
            "started_at",
            "ended_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields
