# ehr_core/audit/management/commands/verify_audit_integrity.py
from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError
from django.utils.dateparse import parse_datetime

from ehr_core.audit.exceptions import QueryConstructionError
from ehr_core.audit.query import AuditFilter, AuditQueryService
from ehr_core.audit.signing import IntegritySigner
from ehr_core.audit.store import AuditRecordStore


class Command(BaseCommand):
    help = "Re-verify audit record signatures. Exits non-zero if any record fails verification."

    def add_arguments(self, parser):
        parser.add_argument("--subject-type", type=str, default=None)
        parser.add_argument("--subject-id", type=str, default=None)
        parser.add_argument("--since", type=str, default=None, help="ISO-8601 timestamp with offset (inclusive).")
        parser.add_argument("--until", type=str, default=None, help="ISO-8601 timestamp with offset (exclusive).")

    def _when(self, raw, name):
        if raw is None:
            return None
        value = parse_datetime(raw)
        if value is None:
            raise CommandError(f"--{name}: not an ISO-8601 timestamp: {raw!r}")
        return value

    def handle(self, *args, **opts):
        audit_filter = AuditFilter(
            subject_type=opts["subject_type"],
            subject_id=opts["subject_id"],
            occurred_from=self._when(opts["since"], "since"),
            occurred_to=self._when(opts["until"], "until"),
        )
        query = AuditQueryService(AuditRecordStore(IntegritySigner.from_settings()))

        try:
            report = query.verify(audit_filter)
        except QueryConstructionError as exc:
            raise CommandError(exc.message) from exc

        self.stdout.write(f"Records checked: {report.checked}")
        if not report.ok:
            for record_id in report.violations:
                self.stderr.write(f"integrity violation: {record_id}")
            raise CommandError(f"{len(report.violations)} audit record(s) failed integrity verification.")

        self.stdout.write(self.style.SUCCESS("All audit records verified."))
