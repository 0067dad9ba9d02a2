# ehr_core/audit/management/commands/import_legacy_audit.py
from __future__ import annotations

import json
from contextlib import nullcontext

from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from ehr_core.audit.legacy import LegacyRowAdapter, LegacyRowError
from ehr_core.audit.masking import MaskingPolicy
from ehr_core.audit.services import build_audit_service


class Command(BaseCommand):
    help = "Import historical audit rows (JSON lines, one row per line) into the signed audit trail. All or nothing."

    def add_arguments(self, parser):
        parser.add_argument("path", help="Path to a .jsonl export of the legacy audit table.")
        parser.add_argument("--dry-run", action="store_true", help="Adapt and count rows; do not write.")
        parser.add_argument(
            "--skip-invalid",
            action="store_true",
            help="Skip rows that cannot be mapped instead of aborting the import.",
        )

    def handle(self, *args, **opts):
        dry = opts["dry_run"]
        skip_invalid = opts["skip_invalid"]

        audit = build_audit_service()
        adapter = LegacyRowAdapter(MaskingPolicy.from_settings())

        try:
            fh = open(opts["path"], encoding="utf-8")
        except OSError as exc:
            raise CommandError(f"Cannot read {opts['path']}: {exc}") from exc

        imported = 0
        skipped = 0
        with fh, (transaction.atomic() if not dry else nullcontext()):
            for lineno, line in enumerate(fh, start=1):
                if not line.strip():
                    continue
                try:
                    row = json.loads(line)
                    if not isinstance(row, dict):
                        raise LegacyRowError("Row is not a JSON object.")
                    record = adapter.adapt(row)
                except (ValueError, LegacyRowError) as exc:
                    if skip_invalid:
                        skipped += 1
                        self.stderr.write(f"line {lineno}: skipped ({exc})")
                        continue
                    raise CommandError(f"line {lineno}: {exc}") from exc

                if not dry:
                    audit.store.append(record)
                imported += 1

        label = "DRY RUN: rows that would be imported" if dry else "Rows imported"
        self.stdout.write(f"{label}: {imported}")
        if skipped:
            self.stdout.write(f"Rows skipped: {skipped}")
        self.stdout.write(self.style.SUCCESS("Legacy import complete."))
