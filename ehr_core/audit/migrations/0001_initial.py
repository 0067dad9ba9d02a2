import django.utils.timezone
from django.db import migrations, models

import ehr_core.audit.records


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="AuditEvent",
            fields=[
                (
                    "id",
                    models.UUIDField(
                        default=ehr_core.audit.records.new_record_id,
                        editable=False,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("actor_user_id", models.CharField(db_index=True, max_length=64)),
                ("actor_display_name", models.CharField(max_length=255)),
                ("actor_role", models.CharField(blank=True, max_length=64, null=True)),
                ("subject_type", models.CharField(max_length=64)),
                ("subject_id", models.CharField(max_length=64)),
                ("linked_subject_id", models.CharField(blank=True, db_index=True, max_length=64, null=True)),
                (
                    "action",
                    models.CharField(
                        choices=[("create", "Create"), ("read", "Read"), ("update", "Update"), ("delete", "Delete")],
                        max_length=16,
                    ),
                ),
                ("occurred_at", models.DateTimeField(db_index=True)),
                ("source_ip", models.CharField(blank=True, max_length=45, null=True)),
                ("user_agent", models.TextField(blank=True, null=True)),
                ("session_id", models.CharField(blank=True, max_length=128, null=True)),
                ("changed_fields", models.JSONField(default=list)),
                ("old_values", models.JSONField(blank=True, null=True)),
                ("new_values", models.JSONField(blank=True, null=True)),
                ("success", models.BooleanField(default=True)),
                ("error_message", models.TextField(blank=True, null=True)),
                ("description", models.TextField(blank=True, default="")),
                ("metadata", models.JSONField(blank=True, default=dict)),
                ("corrects_record_id", models.UUIDField(blank=True, db_index=True, null=True)),
                ("integrity_signature", models.CharField(max_length=128)),
                (
                    "created_at",
                    models.DateTimeField(db_index=True, default=django.utils.timezone.now, editable=False),
                ),
            ],
            options={
                "db_table": "audit_audit_event",
                "ordering": ("-occurred_at", "-id"),
                "indexes": [
                    models.Index(fields=["subject_type", "subject_id", "occurred_at"], name="audit_subject_occurred_idx"),
                    models.Index(fields=["actor_user_id", "occurred_at"], name="audit_actor_occurred_idx"),
                    models.Index(fields=["action", "occurred_at"], name="audit_action_occurred_idx"),
                ],
            },
        ),
    ]
