from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

from .cache import PermissionCache
from .evaluator import PermissionEvaluator
from .integration.client import EdgeFunctionClient
from .integration.settings import ContractSettings, get_contract_settings
from .monitoring import AlertThresholds, PermissionMonitoringService

logger = logging.getLogger(__name__)

_services: AccessServices | None = None
_services_lock = threading.Lock()


@dataclass(frozen=True, slots=True)
class AccessServices:
    config: ContractSettings
    cache: PermissionCache
    monitor: PermissionMonitoringService
    client: EdgeFunctionClient
    evaluator: PermissionEvaluator


def build_access_services(config: ContractSettings | None = None) -> AccessServices:
    """Wire a fresh, unstarted set of permission services."""
    config = config or get_contract_settings()
    monitor = PermissionMonitoringService(
        sensitive_resources=config.sensitive_resources,
        thresholds=AlertThresholds(**config.alert_thresholds),
        snapshot_interval_seconds=config.snapshot_interval_seconds,
        persist_interval_seconds=config.persist_interval_seconds,
    )
    cache = PermissionCache(default_ttl_seconds=config.permission_cache_ttl_seconds)
    client = EdgeFunctionClient(config, on_call=monitor.record_edge_function_call)
    evaluator = PermissionEvaluator(
        cache=cache,
        client=client,
        monitor=monitor,
        service_user_id=config.service_user_id,
        coalesce_remote_checks=config.coalesce_remote_checks,
    )
    return AccessServices(
        config=config,
        cache=cache,
        monitor=monitor,
        client=client,
        evaluator=evaluator,
    )


def get_access_services() -> AccessServices:
    """
    Process-wide services, created on first access.

    This is the only place the shared cache and monitor are constructed;
    the monitor's timers are started here exactly once.
    """
    global _services
    if _services is not None:
        return _services
    with _services_lock:
        if _services is None:
            services = build_access_services()
            if services.config.monitoring_timers_enabled:
                services.monitor.start()
                logger.info(
                    "Permission monitoring started snapshot=%ss persist=%ss",
                    services.config.snapshot_interval_seconds,
                    services.config.persist_interval_seconds,
                )
            _services = services
    return _services


def reset_access_services() -> None:
    global _services
    with _services_lock:
        if _services is not None:
            _services.monitor.stop()
        _services = None
