from __future__ import annotations

from typing import Any

from ..services import get_access_services


def integration_health_snapshot() -> dict[str, Any]:
    services = get_access_services()
    upstream = services.client.get_health()

    healthy = upstream.get("status") not in {"down"}
    return {
        "configured": services.client.is_configured(),
        "healthy": healthy,
        "upstream": upstream,
        "cache_size": len(services.cache),
        "active_alerts": len(services.monitor.get_active_alerts()),
        "monitoring_timers_running": services.monitor.timers_running,
        "last_metrics_persisted_at": (
            services.monitor.last_persisted_at.isoformat()
            if services.monitor.last_persisted_at
            else None
        ),
    }
