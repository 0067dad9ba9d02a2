# ehr_core/audit/export.py
"""
CSV / JSON export of a filtered audit set for compliance review.
Every row is re-verified; exporting is itself recorded as an access.
Rows are capped at AUDIT_EXPORT_MAX_ROWS; the matching total and a truncation
flag are returned with the content and kept on the export record.
"""
from __future__ import annotations

import csv
import io
import json
import logging
from dataclasses import dataclass
from typing import List

from django.conf import settings
from django.db import transaction

from ehr_core.audit.constants import SUBJECT_AUDIT_EXPORT
from ehr_core.audit.context import ActorContext, Outcome, Subject
from ehr_core.audit.query import AuditFilter
from ehr_core.audit.records import VerifiedRecord
from ehr_core.audit.services import AuditService

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("csv", "json")
DEFAULT_EXPORT_MAX_ROWS = 10000

CSV_COLUMNS = (
    "id",
    "occurred_at",
    "actor_user_id",
    "actor_display_name",
    "actor_role",
    "subject_type",
    "subject_id",
    "linked_subject_id",
    "action",
    "changed_fields",
    "old_values",
    "new_values",
    "success",
    "error_message",
    "source_ip",
    "user_agent",
    "session_id",
    "description",
    "corrects_record_id",
    "created_at",
    "integrity_verified",
)


@dataclass(frozen=True)
class ExportResult:
    content: str
    content_type: str
    filename: str
    row_count: int
    total_count: int
    truncated: bool
    export_record_id: str


def export_max_rows() -> int:
    return int(getattr(settings, "AUDIT_EXPORT_MAX_ROWS", DEFAULT_EXPORT_MAX_ROWS))


def _json_cell(value) -> str:
    if value is None:
        return ""
    return json.dumps(value, sort_keys=True, separators=(",", ":"))


def render_csv(rows: List[VerifiedRecord]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(CSV_COLUMNS)
    for loaded in rows:
        r = loaded.record
        writer.writerow([
            str(r.id),
            r.occurred_at.isoformat(),
            r.actor_user_id,
            r.actor_display_name,
            r.actor_role or "",
            r.subject_type,
            r.subject_id,
            r.linked_subject_id or "",
            r.action,
            _json_cell(list(r.changed_fields)),
            _json_cell(r.old_values),
            _json_cell(r.new_values),
            "true" if r.success else "false",
            r.error_message or "",
            r.source_ip or "",
            r.user_agent or "",
            r.session_id or "",
            r.description,
            str(r.corrects_record_id) if r.corrects_record_id else "",
            r.created_at.isoformat() if r.created_at else "",
            "true" if loaded.integrity_verified else "false",
        ])
    return buf.getvalue()


def render_json(rows: List[VerifiedRecord]) -> str:
    payload = []
    for loaded in rows:
        item = loaded.record.to_dict()
        item["integrity_verified"] = loaded.integrity_verified
        payload.append(item)
    return json.dumps(payload, indent=2)


def export_audit_records(
    *,
    audit: AuditService,
    audit_filter: AuditFilter,
    fmt: str,
    actor: ActorContext,
) -> ExportResult:
    if fmt not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported export format '{fmt}'. Expected one of: {', '.join(EXPORT_FORMATS)}.")

    total = audit.query.count(audit_filter)
    rows = list(audit.query.iter_verified(audit_filter, limit=export_max_rows()))
    truncated = len(rows) < total
    if truncated:
        logger.warning("audit.export.truncated format=%s rows=%s total=%s", fmt, len(rows), total)
    content = render_csv(rows) if fmt == "csv" else render_json(rows)
    violations = sum(1 for r in rows if not r.integrity_verified)

    with transaction.atomic():
        record_id = audit.record_access(
            Subject(type=SUBJECT_AUDIT_EXPORT, id=fmt),
            actor,
            Outcome.ok(),
            description=f"Exported {len(rows)} of {total} audit records as {fmt}",
            metadata={
                "format": fmt,
                "row_count": len(rows),
                "total_count": total,
                "truncated": truncated,
                "integrity_violations": violations,
                "filter": {k: str(v) for k, v in vars(audit_filter).items() if v is not None},
            },
        )

    return ExportResult(
        content=content,
        content_type="text/csv" if fmt == "csv" else "application/json",
        filename=f"audit_export.{fmt}",
        row_count=len(rows),
        total_count=total,
        truncated=truncated,
        export_record_id=str(record_id),
    )
