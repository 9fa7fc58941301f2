from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from django.utils import timezone

from .models import PermissionAlertRecord, PermissionMetricRecord

TIME_RANGES = {
    "24h": timedelta(days=1),
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
}
METRIC_FAMILIES = ("cache", "permissions", "roles", "security", "edge_functions")


def since_for_range(time_range: str, *, now: datetime | None = None) -> datetime:
    try:
        delta = TIME_RANGES[time_range]
    except KeyError:
        raise ValueError(f"Unknown time range: {time_range!r}") from None
    return (now or timezone.now()) - delta


def metrics_history(family: str | None = None, since: datetime | None = None) -> list[dict[str, Any]]:
    """Persisted summaries in ascending time order, optionally narrowed to one family."""
    if family is not None and family not in METRIC_FAMILIES:
        raise ValueError(f"Unknown metric family: {family!r}")

    qs = PermissionMetricRecord.objects.all()
    if since is not None:
        qs = qs.filter(timestamp__gte=since)

    rows = []
    for record in qs.order_by("timestamp"):
        data = record.metrics_data if isinstance(record.metrics_data, dict) else {}
        if family is not None:
            data = data.get(family) or {}
        rows.append({**data, "timestamp": record.timestamp.isoformat()})
    return rows


def alert_history(
    since: datetime | None = None, *, include_acknowledged: bool = True
) -> list[dict[str, Any]]:
    qs = PermissionAlertRecord.objects.all()
    if since is not None:
        qs = qs.filter(timestamp__gte=since)
    if not include_acknowledged:
        qs = qs.filter(acknowledged=False)
    return [record.to_dict() for record in qs.order_by("-timestamp")]


def dashboard_history(time_range: str = "24h") -> dict[str, Any]:
    since = since_for_range(time_range)
    payload: dict[str, Any] = {
        family: metrics_history(family, since) for family in METRIC_FAMILIES
    }
    payload["alerts"] = alert_history(since)
    payload["since"] = since.isoformat()
    return payload
