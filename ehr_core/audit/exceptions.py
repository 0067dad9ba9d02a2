"""Audit engine exceptions. Typed, no HTTP."""

from __future__ import annotations


class AuditError(Exception):
    """Base for all audit-engine errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class MaskingClassificationError(AuditError):
    """A field name matched conflicting masking rules. Resolved internally to full redaction."""

    def __init__(self, field_name: str, categories) -> None:
        self.field_name = field_name
        self.categories = tuple(sorted(str(getattr(c, "value", c)) for c in categories))
        super().__init__(f"Ambiguous masking classification for field '{field_name}': {', '.join(self.categories)}")


class DiffConstructionError(AuditError):
    """Malformed or incomparable snapshots. Fatal to the surrounding transaction."""


class SigningError(AuditError):
    """Canonicalization or hashing failed. Fatal to the surrounding transaction."""


class AuditStoreError(AuditError):
    """The store was used outside its contract (no ambient transaction, dangling correction)."""


class ImmutableRecordError(AuditStoreError):
    """Attempt to update or delete a persisted audit record."""


class IntegrityViolation(AuditError):
    """A persisted record no longer matches its signature. Never auto-repaired."""

    def __init__(self, record_id) -> None:
        self.record_id = record_id
        super().__init__(f"Audit record {record_id} failed integrity verification.")


class QueryConstructionError(AuditError):
    """Malformed filter or pagination. Rejected before reaching storage."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)
