# ehr_core/audit/constants.py
from django.db import models


class AuditAction(models.TextChoices):
    CREATE = "create", "Create"
    READ = "read", "Read"
    UPDATE = "update", "Update"
    DELETE = "delete", "Delete"


# Masked value markers
REDACTED = "[REDACTED]"
MODIFIED_MARKER = "<modified>"
ABSENT_MARKER = "<absent>"
MASK_CHAR = "*"

# Subject types used by the bundled apps
SUBJECT_PATIENT = "patient"
SUBJECT_ENCOUNTER = "encounter"
SUBJECT_AUDIT_EXPORT = "audit_export"

SYSTEM_USER_ID = "system"
