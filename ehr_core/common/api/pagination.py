# ehr_core/common/api/pagination.py
from __future__ import annotations

from rest_framework import serializers

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 200


class PageParamsSerializer(serializers.Serializer):
    """
    Shared page/page_size contract for list endpoints:
      { count, page, page_size, results }
    """
    page = serializers.IntegerField(required=False, min_value=1, default=1)
    page_size = serializers.IntegerField(
        required=False,
        min_value=1,
        max_value=MAX_PAGE_SIZE,
        default=DEFAULT_PAGE_SIZE,
    )


def paged_payload(*, count: int, page: int, page_size: int, results) -> dict:
    return {
        "count": count,
        "page": page,
        "page_size": page_size,
        "results": results,
    }
