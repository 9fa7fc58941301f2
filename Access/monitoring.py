"""
Permission monitoring service.

Collects counters from the permission layer (cache traffic, check outcomes,
role mutations, security-relevant denials and edge function calls), keeps a
minute-granularity history of snapshots, raises threshold alerts and
persists both summaries and alerts through the ORM.
"""

from __future__ import annotations

import copy
import logging
import secrets
import threading
from collections import deque
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Iterable

from django.db import DatabaseError, close_old_connections
from django.utils import timezone

from .integration.settings import DEFAULT_SENSITIVE_RESOURCES

logger = logging.getLogger(__name__)

SNAPSHOT_HISTORY_LIMIT = 1440
LATENCY_SAMPLE_LIMIT = 1000
FUNCTION_LATENCY_SAMPLE_LIMIT = 500
UNAUTHORIZED_WINDOW = timedelta(minutes=5)
TOP_ITEMS_LIMIT = 5

MIN_CACHE_ATTEMPTS = 20
MIN_PERMISSION_CHECKS = 20
MIN_EDGE_FUNCTION_CALLS = 10
MIN_PERMISSION_LATENCY_SAMPLES = 20
MIN_EDGE_FUNCTION_LATENCY_SAMPLES = 10


class AlertType(str, Enum):
    LOW_CACHE_HIT_RATE = "LOW_CACHE_HIT_RATE"
    HIGH_PERMISSION_DENIAL_RATE = "HIGH_PERMISSION_DENIAL_RATE"
    HIGH_EDGE_FUNCTION_ERROR_RATE = "HIGH_EDGE_FUNCTION_ERROR_RATE"
    HIGH_PERMISSION_LATENCY = "HIGH_PERMISSION_LATENCY"
    HIGH_EDGE_FUNCTION_LATENCY = "HIGH_EDGE_FUNCTION_LATENCY"
    MULTIPLE_UNAUTHORIZED_ATTEMPTS = "MULTIPLE_UNAUTHORIZED_ATTEMPTS"


class AlertSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class AlertThresholds:
    cache_hit_rate: float = 0.7
    permission_denial_rate: float = 0.1
    edge_function_error_rate: float = 0.05
    permission_latency_avg: float = 200.0
    edge_function_latency_avg: float = 500.0
    unauthorized_attempts: int = 5


@dataclass(slots=True)
class Alert:
    id: str
    type: AlertType
    message: str
    severity: AlertSeverity
    timestamp: datetime
    acknowledged: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "message": self.message,
            "severity": self.severity.value,
            "timestamp": self.timestamp.isoformat(),
            "acknowledged": self.acknowledged,
        }


@dataclass(frozen=True, slots=True)
class PermissionCheckRecord:
    resource: str
    action: str
    granted: bool
    latency_ms: float


@dataclass(slots=True)
class CacheMetrics:
    hits: int = 0
    misses: int = 0
    invalidations: int = 0
    size: int = 0


@dataclass(slots=True)
class PermissionMetrics:
    checks: int = 0
    granted: int = 0
    denied: int = 0
    by_resource: dict[str, int] = field(default_factory=dict)
    by_action: dict[str, int] = field(default_factory=dict)
    latencies: deque = field(default_factory=lambda: deque(maxlen=LATENCY_SAMPLE_LIMIT))


@dataclass(slots=True)
class RoleMetrics:
    assignments: int = 0
    removals: int = 0
    by_role: dict[str, int] = field(default_factory=dict)


@dataclass(slots=True)
class SecurityMetrics:
    unauthorized_attempts: int = 0
    denied_by_resource: dict[str, int] = field(default_factory=dict)


@dataclass(slots=True)
class FunctionMetrics:
    calls: int = 0
    errors: int = 0
    latencies: deque = field(
        default_factory=lambda: deque(maxlen=FUNCTION_LATENCY_SAMPLE_LIMIT)
    )


@dataclass(slots=True)
class EdgeFunctionMetrics:
    calls: int = 0
    errors: int = 0
    latencies: deque = field(default_factory=lambda: deque(maxlen=LATENCY_SAMPLE_LIMIT))
    by_function: dict[str, FunctionMetrics] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class MetricsSnapshot:
    timestamp: datetime
    cache: CacheMetrics
    permissions: PermissionMetrics
    roles: RoleMetrics
    security: SecurityMetrics
    edge_functions: EdgeFunctionMetrics


def _mean(values: Iterable[float]) -> float:
    values = list(values)
    return sum(values) / len(values) if values else 0.0


def _ratio(part: int, total: int) -> float:
    return part / total if total > 0 else 0.0


def _top_by_count(counts: dict[str, int], limit: int) -> dict[str, int]:
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return dict(ranked[:limit])


class RepeatingTimer:
    """Daemon thread calling ``function`` every ``interval`` seconds until stopped."""

    def __init__(self, interval: float, function: Callable[[], Any], *, name: str) -> None:
        self.interval = interval
        self.function = function
        self.name = name
        self._stopped = threading.Event()
        self._thread: threading.Thread | None = None

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_alive():
            if not self._stopped.is_set():
                return
            self._thread.join()
        self._stopped = threading.Event()
        self._thread = threading.Thread(
            target=self._run, args=(self._stopped,), name=self.name, daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        self._stopped.set()

    def _run(self, stopped: threading.Event) -> None:
        while not stopped.wait(self.interval):
            close_old_connections()
            try:
                self.function()
            except Exception:
                logger.exception("Periodic task %s failed", self.name)
            finally:
                close_old_connections()


class PermissionMonitoringService:
    """
    Aggregates permission-layer metrics for one process.

    Construct it once through ``Access.services.get_access_services``; every
    caller in the process shares that instance. Recording methods are cheap
    counter updates guarded by a single lock.
    """

    def __init__(
        self,
        *,
        sensitive_resources: Iterable[str] = DEFAULT_SENSITIVE_RESOURCES,
        thresholds: AlertThresholds | None = None,
        snapshot_interval_seconds: float = 60,
        persist_interval_seconds: float = 300,
        now: Callable[[], datetime] = timezone.now,
    ) -> None:
        self.sensitive_resources = frozenset(sensitive_resources)
        self.thresholds = thresholds or AlertThresholds()
        self._now = now
        self._lock = threading.RLock()
        self._snapshot_timer = RepeatingTimer(
            snapshot_interval_seconds, self.take_snapshot, name="permission-metrics-snapshot"
        )
        self._persist_timer = RepeatingTimer(
            persist_interval_seconds, self.persist_metrics, name="permission-metrics-persist"
        )
        self.last_persisted_at: datetime | None = None
        self._reset_state()

    def _reset_state(self) -> None:
        self.cache = CacheMetrics()
        self.permissions = PermissionMetrics()
        self.roles = RoleMetrics()
        self.security = SecurityMetrics()
        self.edge_functions = EdgeFunctionMetrics()
        self.snapshots: deque[MetricsSnapshot] = deque(maxlen=SNAPSHOT_HISTORY_LIMIT)
        self.alerts: list[Alert] = []

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def start(self) -> None:
        self._snapshot_timer.start()
        self._persist_timer.start()

    def stop(self) -> None:
        self._snapshot_timer.stop()
        self._persist_timer.stop()

    @property
    def timers_running(self) -> bool:
        return self._snapshot_timer.is_alive() and self._persist_timer.is_alive()

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record_cache_hit(self) -> None:
        with self._lock:
            self.cache.hits += 1

    def record_cache_miss(self) -> None:
        with self._lock:
            self.cache.misses += 1

    def record_cache_invalidation(self) -> None:
        with self._lock:
            self.cache.invalidations += 1

    def update_cache_size(self, size: int) -> None:
        with self._lock:
            self.cache.size = size

    def record(self, check: PermissionCheckRecord) -> None:
        self.record_permission_check(check.resource, check.action, check.granted, check.latency_ms)

    def record_permission_check(
        self, resource: str, action: str, granted: bool, latency_ms: float
    ) -> None:
        with self._lock:
            permissions = self.permissions
            permissions.checks += 1
            if granted:
                permissions.granted += 1
            else:
                permissions.denied += 1
                denied = self.security.denied_by_resource
                denied[resource] = denied.get(resource, 0) + 1
                if resource in self.sensitive_resources:
                    self.security.unauthorized_attempts += 1
            permissions.by_resource[resource] = permissions.by_resource.get(resource, 0) + 1
            permissions.by_action[action] = permissions.by_action.get(action, 0) + 1
            permissions.latencies.append(latency_ms)

    def record_role_assignment(self, role_name: str) -> None:
        with self._lock:
            self.roles.assignments += 1
            self.roles.by_role[role_name] = self.roles.by_role.get(role_name, 0) + 1

    def record_role_removal(self, role_name: str) -> None:
        with self._lock:
            self.roles.removals += 1
            current = self.roles.by_role.get(role_name, 0)
            if current > 0:
                self.roles.by_role[role_name] = current - 1

    def record_edge_function_call(self, function_name: str, success: bool, latency_ms: float) -> None:
        with self._lock:
            edge = self.edge_functions
            edge.calls += 1
            if not success:
                edge.errors += 1
            edge.latencies.append(latency_ms)

            per_function = edge.by_function.setdefault(function_name, FunctionMetrics())
            per_function.calls += 1
            if not success:
                per_function.errors += 1
            per_function.latencies.append(latency_ms)

    # ------------------------------------------------------------------
    # Snapshots and alerts
    # ------------------------------------------------------------------

    def take_snapshot(self) -> MetricsSnapshot:
        with self._lock:
            snapshot = MetricsSnapshot(
                timestamp=self._now(),
                cache=copy.deepcopy(self.cache),
                permissions=copy.deepcopy(self.permissions),
                roles=copy.deepcopy(self.roles),
                security=copy.deepcopy(self.security),
                edge_functions=copy.deepcopy(self.edge_functions),
            )
            self.snapshots.append(snapshot)
        self.check_for_alerts()
        return snapshot

    def _evaluate_rules(self, now: datetime) -> list[tuple[AlertType, AlertSeverity, str]]:
        thresholds = self.thresholds
        fired: list[tuple[AlertType, AlertSeverity, str]] = []

        attempts = self.cache.hits + self.cache.misses
        if attempts > MIN_CACHE_ATTEMPTS:
            hit_rate = self.cache.hits / attempts
            if hit_rate < thresholds.cache_hit_rate:
                fired.append((
                    AlertType.LOW_CACHE_HIT_RATE,
                    AlertSeverity.WARNING,
                    f"Cache hit rate is {hit_rate * 100:.1f}%, which is below threshold of "
                    f"{thresholds.cache_hit_rate * 100:.1f}%",
                ))

        checks = self.permissions.checks
        if checks > MIN_PERMISSION_CHECKS:
            denial_rate = self.permissions.denied / checks
            if denial_rate > thresholds.permission_denial_rate:
                fired.append((
                    AlertType.HIGH_PERMISSION_DENIAL_RATE,
                    AlertSeverity.WARNING,
                    f"Permission denial rate is {denial_rate * 100:.1f}%, which exceeds threshold of "
                    f"{thresholds.permission_denial_rate * 100:.1f}%",
                ))

        calls = self.edge_functions.calls
        if calls > MIN_EDGE_FUNCTION_CALLS:
            error_rate = self.edge_functions.errors / calls
            if error_rate > thresholds.edge_function_error_rate:
                fired.append((
                    AlertType.HIGH_EDGE_FUNCTION_ERROR_RATE,
                    AlertSeverity.ERROR,
                    f"Edge function error rate is {error_rate * 100:.1f}%, which exceeds threshold of "
                    f"{thresholds.edge_function_error_rate * 100:.1f}%",
                ))

        if len(self.permissions.latencies) > MIN_PERMISSION_LATENCY_SAMPLES:
            avg_latency = _mean(self.permissions.latencies)
            if avg_latency > thresholds.permission_latency_avg:
                fired.append((
                    AlertType.HIGH_PERMISSION_LATENCY,
                    AlertSeverity.WARNING,
                    f"Average permission check latency is {avg_latency:.1f}ms, which exceeds "
                    f"threshold of {thresholds.permission_latency_avg:g}ms",
                ))

        if len(self.edge_functions.latencies) > MIN_EDGE_FUNCTION_LATENCY_SAMPLES:
            avg_latency = _mean(self.edge_functions.latencies)
            if avg_latency > thresholds.edge_function_latency_avg:
                fired.append((
                    AlertType.HIGH_EDGE_FUNCTION_LATENCY,
                    AlertSeverity.WARNING,
                    f"Average edge function latency is {avg_latency:.1f}ms, which exceeds "
                    f"threshold of {thresholds.edge_function_latency_avg:g}ms",
                ))

        window_start = now - UNAUTHORIZED_WINDOW
        recent = [s for s in self.snapshots if s.timestamp >= window_start]
        if recent:
            attempts_in_window = sum(s.security.unauthorized_attempts for s in recent)
            if attempts_in_window >= thresholds.unauthorized_attempts:
                fired.append((
                    AlertType.MULTIPLE_UNAUTHORIZED_ATTEMPTS,
                    AlertSeverity.ERROR,
                    f"{attempts_in_window} unauthorized access attempts detected in the last 5 minutes",
                ))
        return fired

    def _new_alert_id(self, now: datetime) -> str:
        taken = {alert.id for alert in self.alerts}
        while True:
            alert_id = f"alert-{int(now.timestamp() * 1000)}-{secrets.token_hex(4)}"
            if alert_id not in taken:
                return alert_id

    def check_for_alerts(self) -> list[Alert]:
        new_alerts: list[Alert] = []
        with self._lock:
            now = self._now()
            for alert_type, severity, message in self._evaluate_rules(now):
                alert = Alert(
                    id=self._new_alert_id(now),
                    type=alert_type,
                    message=message,
                    severity=severity,
                    timestamp=now,
                )
                self.alerts.append(alert)
                new_alerts.append(alert)

        if new_alerts:
            logger.warning(
                "Permission system alerts: %s",
                ", ".join(f"{a.type.value}({a.severity.value})" for a in new_alerts),
            )
            self._persist_alerts(new_alerts)
        return new_alerts

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _persist_alerts(self, alerts: list[Alert]) -> bool:
        from .models import PermissionAlertRecord

        try:
            PermissionAlertRecord.objects.bulk_create(
                [
                    PermissionAlertRecord(
                        alert_id=alert.id,
                        alert_type=alert.type.value,
                        message=alert.message,
                        severity=alert.severity.value,
                        timestamp=alert.timestamp,
                        acknowledged=alert.acknowledged,
                    )
                    for alert in alerts
                ]
            )
        except DatabaseError:
            logger.exception("Error persisting %s permission alert(s)", len(alerts))
            return False
        return True

    def persist_metrics(self) -> bool:
        from .models import PermissionMetricRecord

        summary = self.get_metrics()["summary"]
        try:
            PermissionMetricRecord.objects.create(timestamp=self._now(), metrics_data=summary)
        except DatabaseError:
            logger.exception("Error persisting permission metrics")
            return False
        self.last_persisted_at = self._now()
        return True

    # ------------------------------------------------------------------
    # Data access
    # ------------------------------------------------------------------

    def get_active_alerts(self) -> list[Alert]:
        with self._lock:
            return [alert for alert in self.alerts if not alert.acknowledged]

    def acknowledge_alert(self, alert_id: str) -> bool:
        from .models import PermissionAlertRecord

        with self._lock:
            alert = next((a for a in self.alerts if a.id == alert_id), None)
            if alert is not None:
                alert.acknowledged = True

        try:
            PermissionAlertRecord.objects.filter(alert_id=alert_id).update(acknowledged=True)
        except DatabaseError:
            logger.exception("Error acknowledging permission alert %s", alert_id)
        return alert is not None

    def set_alert_thresholds(self, **overrides: float) -> AlertThresholds:
        with self._lock:
            self.thresholds = replace(self.thresholds, **overrides)
            return self.thresholds

    def reset_metrics(self) -> None:
        with self._lock:
            self._reset_state()

    def get_snapshots(self) -> list[MetricsSnapshot]:
        with self._lock:
            return list(self.snapshots)

    def _summary(self) -> dict[str, Any]:
        cache = self.cache
        permissions = self.permissions
        edge = self.edge_functions
        return {
            "timestamp": self._now(),
            "cache": {
                "hit_rate": _ratio(cache.hits, cache.hits + cache.misses),
                "hits": cache.hits,
                "misses": cache.misses,
                "invalidations": cache.invalidations,
                "size": cache.size,
            },
            "permissions": {
                "total": permissions.checks,
                "granted": permissions.granted,
                "denied": permissions.denied,
                "grant_rate": _ratio(permissions.granted, permissions.checks),
                "avg_latency": _mean(permissions.latencies),
                "top_resources": _top_by_count(permissions.by_resource, TOP_ITEMS_LIMIT),
                "top_actions": _top_by_count(permissions.by_action, TOP_ITEMS_LIMIT),
            },
            "roles": {
                "assignments": self.roles.assignments,
                "removals": self.roles.removals,
                "distribution": dict(self.roles.by_role),
            },
            "security": {
                "unauthorized_attempts": self.security.unauthorized_attempts,
                "total_denials": sum(self.security.denied_by_resource.values()),
                "by_resource": dict(self.security.denied_by_resource),
            },
            "edge_functions": {
                "calls": edge.calls,
                "errors": edge.errors,
                "error_rate": _ratio(edge.errors, edge.calls),
                "avg_latency": _mean(edge.latencies),
                "by_function": {
                    name: {
                        "calls": metrics.calls,
                        "errors": metrics.errors,
                        "error_rate": _ratio(metrics.errors, metrics.calls),
                        "avg_latency": _mean(metrics.latencies),
                    }
                    for name, metrics in edge.by_function.items()
                },
            },
        }

    def _historical(self) -> dict[str, Any]:
        snapshots = list(self.snapshots)
        return {
            "timestamps": [s.timestamp for s in snapshots],
            "cache": {
                "hit_rates": [_ratio(s.cache.hits, s.cache.hits + s.cache.misses) for s in snapshots],
                "sizes": [s.cache.size for s in snapshots],
            },
            "permissions": {
                "checks": [s.permissions.checks for s in snapshots],
                "grant_rates": [_ratio(s.permissions.granted, s.permissions.checks) for s in snapshots],
                "avg_latencies": [_mean(s.permissions.latencies) for s in snapshots],
            },
            "security": {
                "denials": [sum(s.security.denied_by_resource.values()) for s in snapshots],
                "unauthorized_attempts": [s.security.unauthorized_attempts for s in snapshots],
            },
            "edge_functions": {
                "error_rates": [_ratio(s.edge_functions.errors, s.edge_functions.calls) for s in snapshots],
                "avg_latencies": [_mean(s.edge_functions.latencies) for s in snapshots],
            },
        }

    def get_metrics(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            return {"summary": self._summary(), "historical": self._historical()}

    def thresholds_as_dict(self) -> dict[str, float]:
        return asdict(self.thresholds)
