# ehr_core/patients/api/serializers.py
from __future__ import annotations

from rest_framework import serializers

from ehr_core.patients.models import Patient, PatientStatus


class PatientCreateSerializer(serializers.Serializer):
    mrn = serializers.CharField(max_length=64)
    first_name = serializers.CharField(max_length=128)
    last_name = serializers.CharField(max_length=128)
    date_of_birth = serializers.DateField(required=False, allow_null=True, default=None)
    gender = serializers.CharField(max_length=32, required=False, allow_blank=True, default="")
    email = serializers.EmailField(required=False, allow_blank=True, default="")
    phone = serializers.CharField(max_length=32, required=False, allow_blank=True, default="")
    ssn = serializers.CharField(max_length=16, required=False, allow_blank=True, default="")
    address = serializers.CharField(required=False, allow_blank=True, default="")
    notes = serializers.CharField(required=False, allow_blank=True, default="")


class PatientUpdateSerializer(serializers.Serializer):
    """
    Partial update contract (PATCH).
    """
    mrn = serializers.CharField(max_length=64, required=False)
    first_name = serializers.CharField(max_length=128, required=False)
    last_name = serializers.CharField(max_length=128, required=False)
    date_of_birth = serializers.DateField(required=False, allow_null=True)
    gender = serializers.CharField(max_length=32, required=False, allow_blank=True)
    email = serializers.EmailField(required=False, allow_blank=True)
    phone = serializers.CharField(max_length=32, required=False, allow_blank=True)
    ssn = serializers.CharField(max_length=16, required=False, allow_blank=True)
    address = serializers.CharField(required=False, allow_blank=True)
    status = serializers.ChoiceField(choices=PatientStatus.choices, required=False)
    notes = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("At least one field is required.")
        return attrs


class PatientSerializer(serializers.ModelSerializer):
    # ssn is write-only on the API surface
    class Meta:
        model = Patient
        fields = [
            "id",
            "mrn",
            "first_name",
            "last_name",
            "date_of_birth",
            "gender",
            "email",
            "phone",
            "address",
            "status",
            "notes",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields
