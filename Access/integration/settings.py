from __future__ import annotations

import logging
from dataclasses import dataclass, field, fields
from typing import Any

from django.conf import settings

logger = logging.getLogger(__name__)

DEFAULT_SENSITIVE_RESOURCES = ("users", "roles", "permissions", "audit_logs")


def _as_tuple(value: Any, default: tuple[str, ...]) -> tuple[str, ...]:
    if value is None:
        return default
    if isinstance(value, str):
        value = value.split(",")
    return tuple(str(item).strip() for item in value if str(item).strip())


def _threshold_overrides(value: Any) -> dict[str, float]:
    from ..monitoring import AlertThresholds

    if not isinstance(value, dict):
        if value:
            logger.warning("Ignoring ACCESS_ALERT_THRESHOLDS: expected a mapping, got %s", type(value).__name__)
        return {}

    known = {f.name for f in fields(AlertThresholds)}
    overrides = {}
    for name, raw in value.items():
        if name not in known:
            logger.warning("Ignoring unknown alert threshold %r", name)
            continue
        try:
            overrides[name] = float(raw)
        except (TypeError, ValueError):
            logger.warning("Ignoring non-numeric alert threshold %s=%r", name, raw)
    return overrides


@dataclass(frozen=True, slots=True)
class ContractSettings:
    base_url: str
    api_token: str
    timeout_seconds: int
    max_retries: int
    check_permission_function: str
    user_permissions_function: str
    manage_role_function: str
    service_user_id: str
    permission_cache_ttl_seconds: int
    sensitive_resources: tuple[str, ...]
    snapshot_interval_seconds: int
    persist_interval_seconds: int
    monitoring_timers_enabled: bool
    coalesce_remote_checks: bool
    alert_thresholds: dict[str, float] = field(default_factory=dict)


def get_contract_settings() -> ContractSettings:
    return ContractSettings(
        base_url=getattr(settings, "ACCESS_FUNCTIONS_BASE_URL", "").rstrip("/"),
        api_token=getattr(settings, "ACCESS_FUNCTIONS_API_TOKEN", ""),
        timeout_seconds=int(getattr(settings, "ACCESS_FUNCTIONS_TIMEOUT_SECONDS", 8)),
        max_retries=int(getattr(settings, "ACCESS_FUNCTIONS_MAX_RETRIES", 2)),
        check_permission_function=getattr(
            settings, "ACCESS_CHECK_PERMISSION_FUNCTION", "check_permission"
        ),
        user_permissions_function=getattr(
            settings, "ACCESS_USER_PERMISSIONS_FUNCTION", "get_user_permissions"
        ),
        manage_role_function=getattr(settings, "ACCESS_MANAGE_ROLE_FUNCTION", "manage_user_role"),
        service_user_id=str(getattr(settings, "ACCESS_SERVICE_USER_ID", "") or ""),
        permission_cache_ttl_seconds=int(
            getattr(settings, "ACCESS_PERMISSION_CACHE_TTL_SECONDS", 300)
        ),
        sensitive_resources=_as_tuple(
            getattr(settings, "ACCESS_SENSITIVE_RESOURCES", None),
            DEFAULT_SENSITIVE_RESOURCES,
        ),
        snapshot_interval_seconds=int(getattr(settings, "ACCESS_SNAPSHOT_INTERVAL_SECONDS", 60)),
        persist_interval_seconds=int(getattr(settings, "ACCESS_PERSIST_INTERVAL_SECONDS", 300)),
        monitoring_timers_enabled=bool(getattr(settings, "ACCESS_MONITORING_TIMERS_ENABLED", True)),
        coalesce_remote_checks=bool(getattr(settings, "ACCESS_COALESCE_REMOTE_CHECKS", False)),
        alert_thresholds=_threshold_overrides(getattr(settings, "ACCESS_ALERT_THRESHOLDS", None)),
    )
