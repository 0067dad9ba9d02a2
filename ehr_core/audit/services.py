# ehr_core/audit/services.py
from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Sequence
from uuid import UUID

from ehr_core.audit.constants import AuditAction
from ehr_core.audit.context import ActorContext, Outcome, Subject
from ehr_core.audit.diffing import DiffEngine, EntitySnapshot
from ehr_core.audit.masking import MaskingPolicy
from ehr_core.audit.query import AuditFilter, AuditQueryService, Pagination, SearchResult
from ehr_core.audit.records import AuditRecord, MonotonicClock, new_record_id, process_clock
from ehr_core.audit.signing import IntegritySigner
from ehr_core.audit.store import AuditRecordStore
from ehr_core.common.logging import request_id_ctx

logger = logging.getLogger(__name__)


class AuditService:
    """
    Central audit writer.

    Callers invoke record_mutation / record_access inside the same
    transaction.atomic block as the business change. Every error propagates:
    a business change that cannot be audited must not commit.
    """

    def __init__(
        self,
        store: AuditRecordStore,
        differ: DiffEngine,
        clock: MonotonicClock | None = None,
        query: AuditQueryService | None = None,
    ) -> None:
        self.store = store
        self.differ = differ
        self.clock = clock or process_clock
        self.query = query or AuditQueryService(store)

    def _metadata(self, metadata: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        data = dict(metadata or {})
        rid = request_id_ctx.get()
        if rid and "request_id" not in data:
            data["request_id"] = rid
        return data

    def record_mutation(
        self,
        subject: Subject,
        action: str,
        before: EntitySnapshot | None,
        after: EntitySnapshot | None,
        actor: ActorContext,
        outcome: Outcome,
        *,
        linked_subject_id: str | None = None,
        description: str = "",
        metadata: Optional[Mapping[str, Any]] = None,
        corrects_record_id: UUID | None = None,
        field_order: Sequence[str] | None = None,
    ) -> UUID:
        change = self.differ.diff(before, after, action, field_order=field_order)

        record = AuditRecord(
            id=new_record_id(),
            actor_user_id=str(actor.user_id),
            actor_display_name=actor.display_name,
            actor_role=actor.role,
            subject_type=subject.type,
            subject_id=subject.id,
            linked_subject_id=str(linked_subject_id) if linked_subject_id is not None else None,
            action=change.action,
            occurred_at=self.clock.now(),
            source_ip=actor.source_ip,
            user_agent=actor.user_agent,
            session_id=actor.session_id,
            changed_fields=change.changed_fields,
            old_values=change.old_values,
            new_values=change.new_values,
            success=outcome.success,
            error_message=outcome.error_message,
            description=description,
            metadata=self._metadata(metadata),
            corrects_record_id=corrects_record_id,
        )
        return self.store.append(record)

    def record_access(
        self,
        subject: Subject,
        actor: ActorContext,
        outcome: Outcome,
        *,
        linked_subject_id: str | None = None,
        description: str = "",
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> UUID:
        return self.record_mutation(
            subject,
            AuditAction.READ,
            None,
            None,
            actor,
            outcome,
            linked_subject_id=linked_subject_id,
            description=description,
            metadata=metadata,
        )

    def search(self, audit_filter: AuditFilter, pagination: Pagination) -> SearchResult:
        return self.query.search(audit_filter, pagination)

    def count_by_action(self, audit_filter: AuditFilter) -> Dict[str, int]:
        return self.query.count_by_action(audit_filter)


def build_audit_service(*, signer: IntegritySigner | None = None, policy: MaskingPolicy | None = None) -> AuditService:
    """
    Composition root. Built per request/command from settings; nothing is cached at module level
    apart from the process clock.
    """
    store = AuditRecordStore(signer or IntegritySigner.from_settings())
    differ = DiffEngine(policy or MaskingPolicy.from_settings())
    return AuditService(store=store, differ=differ, clock=process_clock)
