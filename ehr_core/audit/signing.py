# ehr_core/audit/signing.py
"""
Tamper evidence for audit records.

The signature is an HMAC-SHA256 over a canonical serialization of every
record field except the signature itself. The canonical form is versioned so
it can evolve without invalidating historical signatures.
"""
from __future__ import annotations

import hashlib
import hmac
import json
import uuid
from datetime import date, datetime, timezone as dt_timezone
from decimal import Decimal
from typing import Any

from django.conf import settings

from ehr_core.audit.exceptions import SigningError
from ehr_core.audit.records import SIGNED_FIELDS, AuditRecord

CANONICAL_VERSION = "ehr-audit/v1"


def _canonical_value(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value
    if isinstance(value, datetime):
        if value.tzinfo is None:
            raise SigningError("Naive datetime cannot be canonicalized.")
        return value.astimezone(dt_timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (uuid.UUID, Decimal)):
        return str(value)
    if isinstance(value, dict):
        out = {}
        for k, v in value.items():
            if not isinstance(k, str):
                raise SigningError(f"Non-string key {k!r} cannot be canonicalized.")
            out[k] = _canonical_value(v)
        return out
    if isinstance(value, (list, tuple)):
        return [_canonical_value(v) for v in value]
    raise SigningError(f"Value of type {type(value).__name__} cannot be canonicalized.")


def canonical_bytes(record: AuditRecord) -> bytes:
    pairs = [[name, _canonical_value(getattr(record, name))] for name in SIGNED_FIELDS]
    try:
        body = json.dumps(pairs, sort_keys=True, separators=(",", ":"), ensure_ascii=True, allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise SigningError(f"Record {record.id} cannot be canonicalized: {exc}") from exc
    return f"{CANONICAL_VERSION}\n{body}".encode("ascii")


class IntegritySigner:
    def __init__(self, key: str | bytes) -> None:
        if not key:
            raise SigningError("Signing key is empty.")
        self._key = key.encode("utf-8") if isinstance(key, str) else bytes(key)

    @classmethod
    def from_settings(cls) -> "IntegritySigner":
        key = getattr(settings, "AUDIT_SIGNING_KEY", None) or settings.SECRET_KEY
        return cls(key)

    def sign(self, record: AuditRecord) -> str:
        return hmac.new(self._key, canonical_bytes(record), hashlib.sha256).hexdigest()

    def verify(self, record: AuditRecord) -> bool:
        """False for any record that cannot be re-signed or does not match."""
        if not record.integrity_signature:
            return False
        try:
            expected = self.sign(record)
        except SigningError:
            return False
        return hmac.compare_digest(expected, record.integrity_signature)
