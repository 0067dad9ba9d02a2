# ehr_core/audit/store.py
"""
Append-only persistence of signed audit records.

The store never opens or commits a transaction. It joins the caller's atomic
block, so an audit record and the business change it describes commit or roll
back together.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional
from uuid import UUID

from django.core.exceptions import ValidationError
from django.db import DEFAULT_DB_ALIAS, connections

from ehr_core.audit.exceptions import AuditStoreError, IntegrityViolation
from ehr_core.audit.models import AuditEvent
from ehr_core.audit.records import AuditRecord, MonotonicClock, VerifiedRecord, process_clock
from ehr_core.audit.signing import IntegritySigner

logger = logging.getLogger(__name__)


class AuditRecordStore:
    def __init__(
        self,
        signer: IntegritySigner,
        *,
        clock: MonotonicClock | None = None,
        using: str = DEFAULT_DB_ALIAS,
    ) -> None:
        self.signer = signer
        self.clock = clock or process_clock
        self.using = using

    def queryset(self):
        return AuditEvent.objects.using(self.using)

    def append(self, record: AuditRecord) -> UUID:
        if not connections[self.using].in_atomic_block:
            raise AuditStoreError("Audit records must be appended inside the caller's transaction.atomic block.")

        if record.corrects_record_id is not None:
            corrected = self.get(record.corrects_record_id)
            if corrected is None:
                raise AuditStoreError(f"Correction target {record.corrects_record_id} does not exist.")

        if record.created_at is None:
            record = replace(record, created_at=self.clock.now())

        # SigningError propagates and aborts the caller's transaction.
        signed = record.with_signature(self.signer.sign(record))

        AuditEvent(
            id=signed.id,
            actor_user_id=signed.actor_user_id,
            actor_display_name=signed.actor_display_name,
            actor_role=signed.actor_role,
            subject_type=signed.subject_type,
            subject_id=signed.subject_id,
            linked_subject_id=signed.linked_subject_id,
            action=signed.action,
            occurred_at=signed.occurred_at,
            source_ip=signed.source_ip,
            user_agent=signed.user_agent,
            session_id=signed.session_id,
            changed_fields=list(signed.changed_fields),
            old_values=signed.old_values,
            new_values=signed.new_values,
            success=signed.success,
            error_message=signed.error_message,
            description=signed.description,
            metadata=signed.metadata,
            corrects_record_id=signed.corrects_record_id,
            created_at=signed.created_at,
            integrity_signature=signed.integrity_signature,
        ).save(using=self.using)

        logger.info(
            "audit.record.appended id=%s action=%s subject_type=%s success=%s",
            signed.id,
            signed.action,
            signed.subject_type,
            signed.success,
        )
        return signed.id

    def load(self, row: AuditEvent) -> VerifiedRecord:
        record = AuditRecord.from_model(row)
        verified = self.signer.verify(record)
        if not verified:
            logger.error("audit.integrity.violation id=%s", record.id)
        return VerifiedRecord(record=record, integrity_verified=verified)

    def get(self, record_id) -> Optional[AuditRecord]:
        try:
            row = self.queryset().get(pk=record_id)
        except (AuditEvent.DoesNotExist, ValidationError, ValueError):
            return None
        loaded = self.load(row)
        if not loaded.integrity_verified:
            raise IntegrityViolation(record_id)
        return loaded.record
