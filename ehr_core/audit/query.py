# ehr_core/audit/query.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from django.conf import settings
from django.db import transaction
from django.db.models import Count, Q, QuerySet
from django.utils import timezone

from ehr_core.audit.constants import AuditAction
from ehr_core.audit.exceptions import QueryConstructionError
from ehr_core.audit.records import VerifiedRecord
from ehr_core.audit.store import AuditRecordStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_PAGE_SIZE = 200
TOP_ACTORS_LIMIT = 10
VERIFY_CHUNK_SIZE = 500


def max_page_size() -> int:
    return int(getattr(settings, "AUDIT_QUERY_MAX_PAGE_SIZE", DEFAULT_MAX_PAGE_SIZE))


@dataclass(frozen=True)
class AuditFilter:
    """
    All criteria are optional and ANDed.
    occurred_from is inclusive, occurred_to exclusive.
    involving_subject_id matches subject_id OR linked_subject_id.
    """
    actor_user_id: Optional[str] = None
    subject_type: Optional[str] = None
    subject_id: Optional[str] = None
    linked_subject_id: Optional[str] = None
    involving_subject_id: Optional[str] = None
    action: Optional[str] = None
    occurred_from: Optional[datetime] = None
    occurred_to: Optional[datetime] = None
    success: Optional[bool] = None

    def validate(self) -> "AuditFilter":
        for name in ("occurred_from", "occurred_to"):
            value = getattr(self, name)
            if value is not None and timezone.is_naive(value):
                raise QueryConstructionError(f"{name} must be timezone-aware.", field=name)

        if self.occurred_from is not None and self.occurred_to is not None:
            if self.occurred_from > self.occurred_to:
                raise QueryConstructionError(
                    "occurred_from must not be later than occurred_to.",
                    field="occurred_from",
                )

        if self.action is not None and self.action not in AuditAction.values:
            raise QueryConstructionError(f"Unknown action '{self.action}'.", field="action")
        return self


def build_predicate(audit_filter: AuditFilter) -> Q:
    """Single predicate shared by the page, its total and the per-action counts."""
    audit_filter.validate()
    q = Q()
    if audit_filter.actor_user_id is not None:
        q &= Q(actor_user_id=audit_filter.actor_user_id)
    if audit_filter.subject_type is not None:
        q &= Q(subject_type=audit_filter.subject_type)
    if audit_filter.subject_id is not None:
        q &= Q(subject_id=str(audit_filter.subject_id))
    if audit_filter.linked_subject_id is not None:
        q &= Q(linked_subject_id=str(audit_filter.linked_subject_id))
    if audit_filter.involving_subject_id is not None:
        sid = str(audit_filter.involving_subject_id)
        q &= Q(subject_id=sid) | Q(linked_subject_id=sid)
    if audit_filter.action is not None:
        q &= Q(action=audit_filter.action)
    if audit_filter.occurred_from is not None:
        q &= Q(occurred_at__gte=audit_filter.occurred_from)
    if audit_filter.occurred_to is not None:
        q &= Q(occurred_at__lt=audit_filter.occurred_to)
    if audit_filter.success is not None:
        q &= Q(success=audit_filter.success)
    return q


@dataclass(frozen=True)
class Pagination:
    offset: int = 0
    limit: int = 50

    def __post_init__(self):
        if not isinstance(self.offset, int) or isinstance(self.offset, bool) or self.offset < 0:
            raise QueryConstructionError("offset must be a non-negative integer.", field="offset")
        upper = max_page_size()
        if not isinstance(self.limit, int) or isinstance(self.limit, bool) or not 1 <= self.limit <= upper:
            raise QueryConstructionError(f"limit must be between 1 and {upper}.", field="limit")

    @classmethod
    def page(cls, number: int, size: int) -> "Pagination":
        if not isinstance(number, int) or isinstance(number, bool) or number < 1:
            raise QueryConstructionError("page must be a positive integer.", field="page")
        if not isinstance(size, int) or isinstance(size, bool):
            raise QueryConstructionError("page_size must be an integer.", field="limit")
        return cls(offset=(number - 1) * size, limit=size)


@dataclass(frozen=True)
class SearchResult:
    records: List[VerifiedRecord]
    total_count: int


@dataclass(frozen=True)
class IntegrityReport:
    checked: int
    violations: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.violations


class AuditQueryService:
    ORDERING = ("-occurred_at", "-id")

    def __init__(self, store: AuditRecordStore) -> None:
        self.store = store

    def _filtered(self, audit_filter: AuditFilter) -> QuerySet:
        return self.store.queryset().filter(build_predicate(audit_filter))

    def search(self, audit_filter: AuditFilter, pagination: Pagination) -> SearchResult:
        qs = self._filtered(audit_filter)
        # Page and total share one predicate. Under READ COMMITTED an append committed
        # between the two reads can still make them differ by that record.
        with transaction.atomic(using=self.store.using):
            total = qs.count()
            rows = list(qs.order_by(*self.ORDERING)[pagination.offset:pagination.offset + pagination.limit])
        return SearchResult(records=[self.store.load(row) for row in rows], total_count=total)

    def count_by_action(self, audit_filter: AuditFilter) -> Dict[str, int]:
        counts = {action: 0 for action in AuditAction.values}
        grouped = (
            self._filtered(audit_filter)
            .order_by()
            .values("action")
            .annotate(n=Count("id"))
        )
        for row in grouped:
            counts[row["action"]] = row["n"]
        return counts

    def count(self, audit_filter: AuditFilter) -> int:
        return self._filtered(audit_filter).count()

    def summary(self, audit_filter: AuditFilter) -> dict:
        qs = self._filtered(audit_filter).order_by()
        by_subject_type = {
            row["subject_type"]: row["n"]
            for row in qs.values("subject_type").annotate(n=Count("id"))
        }
        top_actors = [
            {"actor_user_id": row["actor_user_id"], "count": row["n"]}
            for row in qs.values("actor_user_id").annotate(n=Count("id")).order_by("-n", "actor_user_id")[:TOP_ACTORS_LIMIT]
        ]
        return {
            "total": qs.count(),
            "failures": qs.filter(success=False).count(),
            "by_action": self.count_by_action(audit_filter),
            "by_subject_type": by_subject_type,
            "top_actors": top_actors,
        }

    def iter_verified(self, audit_filter: AuditFilter, *, limit: int | None = None):
        qs = self._filtered(audit_filter).order_by(*self.ORDERING)
        if limit is not None:
            qs = qs[:limit]
        for row in qs.iterator(chunk_size=VERIFY_CHUNK_SIZE):
            yield self.store.load(row)

    def verify(self, audit_filter: AuditFilter) -> IntegrityReport:
        checked = 0
        violations: List[str] = []
        for loaded in self.iter_verified(audit_filter):
            checked += 1
            if not loaded.integrity_verified:
                violations.append(str(loaded.record.id))
        logger.info("audit.integrity.verified checked=%s violations=%s", checked, len(violations))
        return IntegrityReport(checked=checked, violations=violations)
