from datetime import timedelta

from django.core.management.base import BaseCommand
from django.utils import timezone

from Access.models import PermissionAlertRecord, PermissionMetricRecord


class Command(BaseCommand):
    help = "Delete old persisted permission metrics and acknowledged alerts."

    def add_arguments(self, parser):
        parser.add_argument("--metrics-days", type=int, default=90, help="Delete metric summaries older than N days.")
        parser.add_argument(
            "--alert-days", type=int, default=30, help="Delete acknowledged alerts older than N days."
        )

    def handle(self, *args, **options):
        now = timezone.now()
        metrics_cutoff = now - timedelta(days=max(1, int(options["metrics_days"])))
        alert_cutoff = now - timedelta(days=max(1, int(options["alert_days"])))

        metrics_qs = PermissionMetricRecord.objects.filter(timestamp__lt=metrics_cutoff)
        alerts_qs = PermissionAlertRecord.objects.filter(acknowledged=True, timestamp__lt=alert_cutoff)

        metrics_count = metrics_qs.count()
        alert_count = alerts_qs.count()

        metrics_qs.delete()
        alerts_qs.delete()

        self.stdout.write(
            self.style.SUCCESS(f"Deleted metric summaries={metrics_count}; acknowledged alerts={alert_count}.")
        )
