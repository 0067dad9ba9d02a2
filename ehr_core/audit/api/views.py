# ehr_core/audit/api/views.py
from __future__ import annotations

from django.http import HttpResponse
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound
from rest_framework.exceptions import ValidationError as DRFValidationError
from rest_framework.response import Response

from ehr_core.audit.api.serializers import (
    AuditEventSerializer,
    AuditExportParamsSerializer,
    AuditFilterSerializer,
    AuditSearchParamsSerializer,
    AuditSummarySerializer,
)
from ehr_core.audit.context import actor_from_request
from ehr_core.audit.exceptions import IntegrityViolation, QueryConstructionError
from ehr_core.audit.export import export_audit_records
from ehr_core.audit.models import AuditEvent
from ehr_core.audit.query import Pagination
from ehr_core.audit.records import VerifiedRecord
from ehr_core.audit.services import build_audit_service
from ehr_core.common.api.exceptions import IntegrityViolationDetected
from ehr_core.common.api.pagination import paged_payload
from ehr_core.common.permissions import AuditReviewPermission


def _query_error(exc: QueryConstructionError) -> DRFValidationError:
    return DRFValidationError({exc.field or "detail": [exc.message]})


class AuditEventViewSet(viewsets.ViewSet):
    """
    Compliance review of the audit trail. Read-only: there is no write surface.
    Every returned record is re-verified against its signature.
    """
    permission_classes = [AuditReviewPermission]

    serializer_class = AuditEventSerializer
    queryset = AuditEvent.objects.none()

    @extend_schema(
        tags=["Audit"],
        parameters=[AuditSearchParamsSerializer],
        responses={200: AuditEventSerializer(many=True)},
    )
    def list(self, request):
        params = AuditSearchParamsSerializer(data=request.query_params)
        params.is_valid(raise_exception=True)
        page = params.validated_data["page"]
        page_size = params.validated_data["page_size"]

        audit = build_audit_service()
        try:
            result = audit.search(params.to_filter(), Pagination.page(page, page_size))
        except QueryConstructionError as e:
            raise _query_error(e)

        return Response(
            paged_payload(
                count=result.total_count,
                page=page,
                page_size=page_size,
                results=AuditEventSerializer(result.records, many=True).data,
            ),
            status=status.HTTP_200_OK,
        )

    @extend_schema(tags=["Audit"], responses={200: AuditEventSerializer})
    def retrieve(self, request, pk=None):
        store = build_audit_service().store
        try:
            record = store.get(pk)
        except IntegrityViolation as e:
            raise IntegrityViolationDetected(detail=e.message)
        if record is None:
            raise NotFound("Audit record not found.")

        return Response(
            AuditEventSerializer(VerifiedRecord(record=record, integrity_verified=True)).data,
            status=status.HTTP_200_OK,
        )

    @extend_schema(
        tags=["Audit"],
        parameters=[AuditFilterSerializer],
        responses={200: AuditSummarySerializer},
    )
    @action(detail=False, methods=["get"])
    def summary(self, request):
        params = AuditFilterSerializer(data=request.query_params)
        params.is_valid(raise_exception=True)

        audit = build_audit_service()
        try:
            data = audit.query.summary(params.to_filter())
        except QueryConstructionError as e:
            raise _query_error(e)

        return Response(AuditSummarySerializer(data).data, status=status.HTTP_200_OK)

    @extend_schema(
        tags=["Audit"],
        parameters=[
            AuditFilterSerializer,
            OpenApiParameter(
                name="export_format",
                type=OpenApiTypes.STR,
                location=OpenApiParameter.QUERY,
                required=False,
                enum=["csv", "json"],
                description="Export format (default csv).",
            ),
        ],
        responses={200: OpenApiTypes.BINARY},
    )
    @action(detail=False, methods=["get"])
    def export(self, request):
        params = AuditExportParamsSerializer(data=request.query_params)
        params.is_valid(raise_exception=True)

        try:
            result = export_audit_records(
                audit=build_audit_service(),
                audit_filter=params.to_filter(),
                fmt=params.validated_data["export_format"],
                actor=actor_from_request(request),
            )
        except QueryConstructionError as e:
            raise _query_error(e)

        response = HttpResponse(result.content, content_type=result.content_type)
        response["Content-Disposition"] = f'attachment; filename="{result.filename}"'
        response["X-Audit-Export-Record-Id"] = result.export_record_id
        response["X-Audit-Export-Total"] = str(result.total_count)
        response["X-Audit-Export-Truncated"] = "true" if result.truncated else "false"
        return response
