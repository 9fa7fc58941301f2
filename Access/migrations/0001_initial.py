import django.core.serializers.json
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="PermissionMetricRecord",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("timestamp", models.DateTimeField(db_index=True)),
                (
                    "metrics_data",
                    models.JSONField(default=dict, encoder=django.core.serializers.json.DjangoJSONEncoder),
                ),
            ],
            options={
                "db_table": "permission_metrics",
                "ordering": ["timestamp"],
            },
        ),
        migrations.CreateModel(
            name="PermissionAlertRecord",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("alert_id", models.CharField(max_length=64, unique=True)),
                ("alert_type", models.CharField(db_index=True, max_length=64)),
                ("message", models.TextField()),
                (
                    "severity",
                    models.CharField(
                        choices=[("info", "Info"), ("warning", "Warning"), ("error", "Error")],
                        max_length=10,
                    ),
                ),
                ("timestamp", models.DateTimeField(db_index=True)),
                ("acknowledged", models.BooleanField(db_index=True, default=False)),
            ],
            options={
                "db_table": "permission_alerts",
                "ordering": ["-timestamp"],
            },
        ),
    ]
