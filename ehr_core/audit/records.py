# ehr_core/audit/records.py
from __future__ import annotations

import os
import threading
import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional, Tuple

from django.utils import timezone

# Order is part of the canonical form. Append only; never reorder.
SIGNED_FIELDS: Tuple[str, ...] = (
    "id",
    "actor_user_id",
    "actor_display_name",
    "actor_role",
    "subject_type",
    "subject_id",
    "linked_subject_id",
    "action",
    "occurred_at",
    "source_ip",
    "user_agent",
    "session_id",
    "changed_fields",
    "old_values",
    "new_values",
    "success",
    "error_message",
    "description",
    "metadata",
    "corrects_record_id",
    "created_at",
)


def new_record_id() -> uuid.UUID:
    """
    UUIDv7: 48-bit unix ms timestamp, version/variant bits, 74 random bits.
    Lexicographic order of the hex form follows creation time.
    """
    unix_ms = time.time_ns() // 1_000_000
    rand = int.from_bytes(os.urandom(10), "big")
    value = (unix_ms & ((1 << 48) - 1)) << 80
    value |= 0x7 << 76
    value |= ((rand >> 62) & 0xFFF) << 64
    value |= 0b10 << 62
    value |= rand & ((1 << 62) - 1)
    return uuid.UUID(int=value)


class MonotonicClock:
    """
    Wall-clock timestamps that never repeat or go backwards within a process.
    Two calls in the same microsecond are spaced 1µs apart.
    """

    def __init__(self, source: Callable[[], datetime] = timezone.now) -> None:
        self._source = source
        self._last: Optional[datetime] = None
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            current = self._source()
            if self._last is not None and current <= self._last:
                current = self._last + timedelta(microseconds=1)
            self._last = current
            return current


# One clock per process: monotonicity is a per-process guarantee.
process_clock = MonotonicClock()


@dataclass(frozen=True)
class AuditRecord:
    """
    Immutable audit record as the engine sees it.
    integrity_signature is empty until the store signs it.
    """
    id: uuid.UUID
    actor_user_id: str
    actor_display_name: str
    actor_role: Optional[str]
    subject_type: str
    subject_id: str
    action: str
    occurred_at: datetime
    success: bool
    linked_subject_id: Optional[str] = None
    source_ip: Optional[str] = None
    user_agent: Optional[str] = None
    session_id: Optional[str] = None
    changed_fields: Tuple[str, ...] = ()
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    description: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)
    corrects_record_id: Optional[uuid.UUID] = None
    created_at: Optional[datetime] = None
    integrity_signature: str = ""

    @property
    def subject(self):
        from ehr_core.audit.context import Subject

        return Subject(type=self.subject_type, id=self.subject_id)

    def with_signature(self, signature: str) -> "AuditRecord":
        return replace(self, integrity_signature=signature)

    def to_dict(self) -> Dict[str, Any]:
        """Structured representation for JSON export/logging."""
        return {
            "id": str(self.id),
            "actor": {
                "user_id": self.actor_user_id,
                "display_name": self.actor_display_name,
                "role": self.actor_role,
            },
            "subject": {"type": self.subject_type, "id": self.subject_id},
            "linked_subject_id": self.linked_subject_id,
            "action": self.action,
            "occurred_at": self.occurred_at.isoformat(),
            "session_context": {
                "source_ip": self.source_ip,
                "user_agent": self.user_agent,
                "session_id": self.session_id,
            },
            "changed_fields": list(self.changed_fields),
            "old_values": self.old_values,
            "new_values": self.new_values,
            "outcome": {"success": self.success, "error_message": self.error_message},
            "description": self.description,
            "metadata": self.metadata,
            "corrects_record_id": str(self.corrects_record_id) if self.corrects_record_id else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "integrity_signature": self.integrity_signature,
        }

    @classmethod
    def from_model(cls, row) -> "AuditRecord":
        return cls(
            id=row.id,
            actor_user_id=row.actor_user_id,
            actor_display_name=row.actor_display_name,
            actor_role=row.actor_role,
            subject_type=row.subject_type,
            subject_id=row.subject_id,
            linked_subject_id=row.linked_subject_id,
            action=row.action,
            occurred_at=row.occurred_at,
            source_ip=row.source_ip,
            user_agent=row.user_agent,
            session_id=row.session_id,
            changed_fields=tuple(row.changed_fields or ()),
            old_values=row.old_values,
            new_values=row.new_values,
            success=row.success,
            error_message=row.error_message,
            description=row.description,
            metadata=row.metadata if row.metadata is not None else {},
            corrects_record_id=row.corrects_record_id,
            created_at=row.created_at,
            integrity_signature=row.integrity_signature,
        )


@dataclass(frozen=True)
class VerifiedRecord:
    """A record as read back from storage, with the outcome of re-verification."""
    record: AuditRecord
    integrity_verified: bool
