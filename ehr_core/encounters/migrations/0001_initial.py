import uuid

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("patients", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Encounter",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("PLANNED", "Planned"),
                            ("IN_PROGRESS", "In Progress"),
                            ("FINISHED", "Finished"),
                            ("CANCELLED", "Cancelled"),
                        ],
                        db_index=True,
                        default="PLANNED",
                        max_length=16,
                    ),
                ),
                (
                    "encounter_type",
                    models.CharField(
                        choices=[
                            ("OUTPATIENT", "Outpatient"),
                            ("INPATIENT", "Inpatient"),
                            ("EMERGENCY", "Emergency"),
                            ("TELEHEALTH", "Telehealth"),
                        ],
                        default="OUTPATIENT",
                        max_length=16,
                    ),
                ),
                ("chief_complaint", models.TextField(blank=True)),
                ("clinical_notes", models.TextField(blank=True)),
                ("started_at", models.DateTimeField(blank=True, null=True)),
                ("ended_at", models.DateTimeField(blank=True, null=True)),
                (
                    "patient",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="encounters",
                        to="patients.patient",
                    ),
                ),
            ],
            options={
                "db_table": "encounters_encounter",
                "indexes": [models.Index(fields=["patient", "created_at"], name="encounter_patient_idx")],
            },
        ),
    ]
