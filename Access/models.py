from django.core.serializers.json import DjangoJSONEncoder
from django.db import models


class PermissionMetricRecord(models.Model):
    """Append-only summary of the permission metrics, written every few minutes."""

    timestamp = models.DateTimeField(db_index=True)
    metrics_data = models.JSONField(encoder=DjangoJSONEncoder, default=dict)

    class Meta:
        db_table = "permission_metrics"
        ordering = ["timestamp"]

    def __str__(self):
        return f"metrics@{self.timestamp.isoformat()}"


class PermissionAlertRecord(models.Model):
    SEVERITY_CHOICES = [
        ("info", "Info"),
        ("warning", "Warning"),
        ("error", "Error"),
    ]

    alert_id = models.CharField(max_length=64, unique=True)
    alert_type = models.CharField(max_length=64, db_index=True)
    message = models.TextField()
    severity = models.CharField(max_length=10, choices=SEVERITY_CHOICES)
    timestamp = models.DateTimeField(db_index=True)
    acknowledged = models.BooleanField(default=False, db_index=True)

    class Meta:
        db_table = "permission_alerts"
        ordering = ["-timestamp"]

    def __str__(self):
        return f"{self.alert_type} ({self.severity})"

    def to_dict(self):
        return {
            "id": self.alert_id,
            "type": self.alert_type,
            "message": self.message,
            "severity": self.severity,
            "timestamp": self.timestamp.isoformat(),
            "acknowledged": self.acknowledged,
        }
