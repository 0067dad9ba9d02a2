# ehr_core/encounters/api/views.py
from __future__ import annotations

from drf_spectacular.utils import extend_schema
from rest_framework import status, viewsets
from rest_framework.exceptions import NotFound
from rest_framework.exceptions import ValidationError as DRFValidationError
from rest_framework.response import Response

from ehr_core.audit.context import actor_from_request
from ehr_core.audit.services import build_audit_service
from ehr_core.common.permissions import EncounterPermission
from ehr_core.encounters.api.serializers import (
    EncounterCreateSerializer,
    EncounterSerializer,
    EncounterUpdateSerializer,
)
from ehr_core.encounters.models import Encounter
from ehr_core.encounters.services import EncounterService


class EncounterViewSet(viewsets.ViewSet):
    permission_classes = [EncounterPermission]

    serializer_class = EncounterSerializer
    queryset = Encounter.objects.none()

    @extend_schema(tags=["Encounters"], request=EncounterCreateSerializer, responses={201: EncounterSerializer})
    def create(self, request):
        ser = EncounterCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = dict(ser.validated_data)
        patient_id = data.pop("patient_id")

        try:
            enc = EncounterService.create_encounter(
                audit=build_audit_service(),
                actor=actor_from_request(request),
                patient_id=patient_id,
                **data,
            )
        except ValueError as e:
            raise DRFValidationError({"detail": str(e)})

        return Response(EncounterSerializer(enc).data, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Encounters"], responses={200: EncounterSerializer})
    def retrieve(self, request, pk=None):
        try:
            enc = EncounterService.get_encounter(
                audit=build_audit_service(),
                actor=actor_from_request(request),
                encounter_id=pk,
            )
        except Encounter.DoesNotExist:
            raise NotFound("Encounter not found.")

        return Response(EncounterSerializer(enc).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Encounters"], request=EncounterUpdateSerializer, responses={200: EncounterSerializer})
    def partial_update(self, request, pk=None):
        ser = EncounterUpdateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        try:
            enc = EncounterService.update_encounter(
                audit=build_audit_service(),
                actor=actor_from_request(request),
                encounter_id=pk,
                data=ser.validated_data,
            )
        except Encounter.DoesNotExist:
            raise NotFound("Encounter not found.")
        except ValueError as e:
            raise DRFValidationError({"detail": str(e)})

        return Response(EncounterSerializer(enc).data, status=status.HTTP_200_OK)
