import logging

from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST

from .decorators import staff_required
from .integration.health import integration_health_snapshot
from .queries import alert_history, dashboard_history, metrics_history, since_for_range
from .services import get_access_services

logger = logging.getLogger(__name__)


def _bad_request(message):
    return JsonResponse({"status": "error", "reason": message}, status=400)


@require_GET
@staff_required
def integration_health(request):
    return JsonResponse(integration_health_snapshot())


@require_GET
@staff_required
def live_metrics(request):
    monitor = get_access_services().monitor
    payload = monitor.get_metrics()
    payload["thresholds"] = monitor.thresholds_as_dict()
    payload["active_alerts"] = [alert.to_dict() for alert in monitor.get_active_alerts()]
    return JsonResponse(payload)


@require_GET
@staff_required
def metric_history(request):
    time_range = request.GET.get("range", "24h")
    family = request.GET.get("family") or None
    try:
        if family is None:
            return JsonResponse(dashboard_history(time_range))
        since = since_for_range(time_range)
        rows = metrics_history(family, since)
    except ValueError as exc:
        return _bad_request(str(exc))
    return JsonResponse({"family": family, "since": since.isoformat(), "rows": rows})


@require_GET
@staff_required
def alerts(request):
    if request.GET.get("active") in {"1", "true", "yes"}:
        active = get_access_services().monitor.get_active_alerts()
        return JsonResponse({"alerts": [alert.to_dict() for alert in active]})

    try:
        since = since_for_range(request.GET.get("range", "24h"))
    except ValueError as exc:
        return _bad_request(str(exc))
    include_acknowledged = request.GET.get("include_acknowledged", "1") not in {"0", "false", "no"}
    return JsonResponse({"alerts": alert_history(since, include_acknowledged=include_acknowledged)})


@require_POST
@staff_required
def acknowledge_alert(request, alert_id):
    found = get_access_services().monitor.acknowledge_alert(alert_id)
    logger.info("Alert %s acknowledged by %s (in_memory=%s)", alert_id, request.user.pk, found)
    return JsonResponse({"ok": True, "alert_id": alert_id, "in_memory": found})
