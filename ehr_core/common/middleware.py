# ehr_core/common/middleware.py
from __future__ import annotations

from django.utils.deprecation import MiddlewareMixin

from ehr_core.common.api.exceptions import ensure_request_id
from ehr_core.common.logging import request_id_ctx

REQUEST_ID_HEADER = "HTTP_X_REQUEST_ID"


class RequestIdMiddleware(MiddlewareMixin):
    """
    Attaches a stable request_id to every request:
      - honours an inbound X-Request-Id header (trimmed to 64 chars)
      - otherwise generates one
      - exposes it to log records (contextvar) and echoes it on the response
    """

    def process_request(self, request):
        inbound = (request.META.get(REQUEST_ID_HEADER) or "").strip()
        if inbound:
            request.request_id = inbound[:64]
        rid = ensure_request_id(request)
        request._request_id_token = request_id_ctx.set(rid)
        return None

    def process_response(self, request, response):
        rid = getattr(request, "request_id", None)
        if rid:
            response["X-Request-Id"] = rid
        token = getattr(request, "_request_id_token", None)
        if token is not None:
            request_id_ctx.reset(token)
        return response
