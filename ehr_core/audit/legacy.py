# ehr_core/audit/legacy.py
"""
Adapter for audit rows exported from the historical audit tables.

Two shapes exist in the wild:
  - enhanced: user_name, user_role, patient_id, modified_fields, old_values,
    new_values, success, error_message as columns
  - basic: the same data folded into the `details` JSON blob

Both are mapped onto the unified AuditRecord. Values are masked again on the
way in; legacy checksums are kept as provenance only, never trusted.
"""
from __future__ import annotations

import json
from datetime import timezone as dt_timezone
from typing import Any, Dict, Mapping, Optional

from django.utils import timezone
from django.utils.dateparse import parse_datetime

from ehr_core.audit.constants import ABSENT_MARKER, AuditAction
from ehr_core.audit.context import SYSTEM_ACTOR
from ehr_core.audit.exceptions import AuditStoreError
from ehr_core.audit.masking import MaskingPolicy
from ehr_core.audit.records import AuditRecord, new_record_id

LEGACY_ACTIONS: Dict[str, str] = {
    "create": AuditAction.CREATE,
    "insert": AuditAction.CREATE,
    "update": AuditAction.UPDATE,
    "edit": AuditAction.UPDATE,
    "delete": AuditAction.DELETE,
    "read": AuditAction.READ,
    "view": AuditAction.READ,
    "phi_access": AuditAction.READ,
    "access": AuditAction.READ,
    "export": AuditAction.READ,
    "print": AuditAction.READ,
    "search": AuditAction.READ,
}

ENHANCED_COLUMNS = ("user_name", "user_role", "patient_id", "modified_fields", "old_values", "new_values", "success")


class LegacyRowError(AuditStoreError):
    """A legacy row that cannot be mapped onto the unified schema."""


def _json(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return json.loads(text)
        except ValueError as exc:
            raise LegacyRowError(f"Malformed JSON in legacy row: {exc}") from exc
    return value


def _bool(value: Any, default: bool = True) -> bool:
    if value is None or value == "":
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "t")
    return bool(value)


def _str_or_none(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


class LegacyRowAdapter:
    def __init__(self, policy: MaskingPolicy | None = None) -> None:
        self.policy = policy or MaskingPolicy()

    @staticmethod
    def schema_of(row: Mapping[str, Any]) -> str:
        return "enhanced" if any(col in row for col in ENHANCED_COLUMNS) else "basic"

    def _occurred_at(self, row: Mapping[str, Any]):
        raw = row.get("occurred_at") or row.get("created_at")
        if raw is None:
            raise LegacyRowError("Legacy row has no occurred_at.")
        value = raw if hasattr(raw, "tzinfo") else parse_datetime(str(raw))
        if value is None:
            raise LegacyRowError(f"Unparseable legacy timestamp {raw!r}.")
        if timezone.is_naive(value):
            # Historical writers used server time in UTC.
            value = timezone.make_aware(value, dt_timezone.utc)
        return value

    def _action(self, raw: Any) -> str:
        action = LEGACY_ACTIONS.get(str(raw or "").strip().lower())
        if action is None:
            raise LegacyRowError(f"Legacy action {raw!r} has no audit equivalent.")
        return action

    def _masked(self, values: Any, fields) -> Dict[str, Any]:
        values = values or {}
        if not isinstance(values, Mapping):
            raise LegacyRowError("Legacy value map is not an object.")
        return {f: self.policy.mask(f, values[f]) if f in values else ABSENT_MARKER for f in fields}

    def adapt(self, row: Mapping[str, Any]) -> AuditRecord:
        schema = self.schema_of(row)
        details = _json(row.get("details")) or {}
        if not isinstance(details, Mapping):
            raise LegacyRowError("Legacy details is not an object.")

        source = row if schema == "enhanced" else details

        def pick(name: str) -> Any:
            value = source.get(name)
            return details.get(name) if value is None else value

        action = self._action(row.get("action") or row.get("action_type"))
        old_raw = _json(pick("old_values"))
        new_raw = _json(pick("new_values"))
        modified = _json(pick("modified_fields"))

        if modified:
            fields = tuple(str(f) for f in modified)
        else:
            fields = tuple(sorted(set(old_raw or {}) | set(new_raw or {})))

        if action == AuditAction.READ:
            changed, old_values, new_values = (), None, None
        elif action == AuditAction.CREATE:
            changed, old_values, new_values = fields, None, self._masked(new_raw, fields)
        elif action == AuditAction.DELETE:
            changed, old_values, new_values = fields, self._masked(old_raw, fields), None
        else:
            changed, old_values, new_values = fields, self._masked(old_raw, fields), self._masked(new_raw, fields)

        legacy_meta = details.get("metadata") or {}
        provenance = {
            "schema": schema,
            "audit_id": _str_or_none(row.get("audit_id") or row.get("id")),
            "action": str(row.get("action") or row.get("action_type")),
            "checksum": _str_or_none(row.get("checksum")),
        }
        if isinstance(legacy_meta, Mapping) and legacy_meta:
            provenance["metadata"] = self.policy.mask_fields(legacy_meta, sorted(legacy_meta))

        user_id = _str_or_none(row.get("user_id"))
        # Rows written by background jobs carry no user.
        actor = SYSTEM_ACTOR if user_id is None else None
        user_id = user_id or SYSTEM_ACTOR.user_id
        subject_type = _str_or_none(row.get("subject_type") or row.get("resource_type"))
        subject_id = _str_or_none(row.get("subject_id") or row.get("resource_id"))
        if subject_type is None or subject_id is None:
            raise LegacyRowError("Legacy row has no subject.")

        return AuditRecord(
            id=new_record_id(),
            actor_user_id=user_id,
            actor_display_name=_str_or_none(pick("user_name")) or (actor.display_name if actor else user_id),
            actor_role=_str_or_none(pick("user_role")) or (actor.role if actor else None),
            subject_type=subject_type.lower(),
            subject_id=subject_id,
            linked_subject_id=_str_or_none(pick("patient_id")),
            action=action,
            occurred_at=self._occurred_at(row),
            source_ip=_str_or_none(row.get("source_ip") or row.get("ip_address")),
            user_agent=_str_or_none(row.get("user_agent")),
            session_id=_str_or_none(row.get("session_id")),
            changed_fields=changed,
            old_values=old_values,
            new_values=new_values,
            success=_bool(pick("success")),
            error_message=_str_or_none(pick("error_message")),
            description=str(details.get("description") or ""),
            metadata={"legacy": provenance},
        )
