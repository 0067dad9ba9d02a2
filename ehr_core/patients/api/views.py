# ehr_core/patients/api/views.py
from __future__ import annotations

from drf_spectacular.utils import extend_schema
from rest_framework import status, viewsets
from rest_framework.exceptions import NotFound
from rest_framework.exceptions import ValidationError as DRFValidationError
from rest_framework.response import Response

from ehr_core.audit.context import actor_from_request
from ehr_core.audit.services import build_audit_service
from ehr_core.common.api.exceptions import ConflictError
from ehr_core.common.api.pagination import PageParamsSerializer, paged_payload
from ehr_core.common.permissions import PatientPermission
from ehr_core.patients.api.serializers import PatientCreateSerializer, PatientSerializer, PatientUpdateSerializer
from ehr_core.patients.models import Patient
from ehr_core.patients.selectors import search_patients
from ehr_core.patients.services import PatientInUseError, PatientService


class PatientViewSet(viewsets.ViewSet):
    permission_classes = [PatientPermission]

    serializer_class = PatientSerializer
    queryset = Patient.objects.none()

    @extend_schema(tags=["Patients"], parameters=[PageParamsSerializer], responses={200: PatientSerializer(many=True)})
    def list(self, request):
        params = PageParamsSerializer(data=request.query_params)
        params.is_valid(raise_exception=True)
        page = params.validated_data["page"]
        page_size = params.validated_data["page_size"]

        q = request.query_params.get("q", "").strip()
        qs = search_patients(q=q)
        offset = (page - 1) * page_size

        patients = PatientService.record_listing(
            audit=build_audit_service(),
            actor=actor_from_request(request),
            patients=qs[offset:offset + page_size],
        )
        return Response(
            paged_payload(
                count=qs.count(),
                page=page,
                page_size=page_size,
                results=PatientSerializer(patients, many=True).data,
            ),
            status=status.HTTP_200_OK,
        )

    @extend_schema(tags=["Patients"], request=PatientCreateSerializer, responses={201: PatientSerializer})
    def create(self, request):
        ser = PatientCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        try:
            patient = PatientService.create_patient(
                audit=build_audit_service(),
                actor=actor_from_request(request),
                **ser.validated_data,
            )
        except ValueError as e:
            raise DRFValidationError({"detail": str(e)})

        return Response(PatientSerializer(patient).data, status=status.HTTP_201_CREATED)

    @extend_schema(tags=["Patients"], responses={200: PatientSerializer})
    def retrieve(self, request, pk=None):
        try:
            patient = PatientService.get_patient(
                audit=build_audit_service(),
                actor=actor_from_request(request),
                patient_id=pk,
            )
        except Patient.DoesNotExist:
            raise NotFound("Patient not found.")

        return Response(PatientSerializer(patient).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Patients"], request=PatientUpdateSerializer, responses={200: PatientSerializer})
    def partial_update(self, request, pk=None):
        ser = PatientUpdateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        try:
            patient = PatientService.update_patient(
                audit=build_audit_service(),
                actor=actor_from_request(request),
                patient_id=pk,
                data=ser.validated_data,
            )
        except Patient.DoesNotExist:
            raise NotFound("Patient not found.")
        except ValueError as e:
            raise DRFValidationError({"detail": str(e)})

        return Response(PatientSerializer(patient).data, status=status.HTTP_200_OK)

    @extend_schema(tags=["Patients"], responses={204: None})
    def destroy(self, request, pk=None):
        try:
            PatientService.delete_patient(
                audit=build_audit_service(),
                actor=actor_from_request(request),
                patient_id=pk,
            )
        except Patient.DoesNotExist:
            raise NotFound("Patient not found.")
        except PatientInUseError as e:
            raise ConflictError(detail=str(e))

        return Response(status=status.HTTP_204_NO_CONTENT)
