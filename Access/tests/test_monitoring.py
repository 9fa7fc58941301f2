import threading
from datetime import timedelta
from unittest.mock import patch

from django.db import DatabaseError
from django.test import SimpleTestCase, TestCase

from Access.models import PermissionAlertRecord, PermissionMetricRecord
from Access.monitoring import (
    SNAPSHOT_HISTORY_LIMIT,
    AlertSeverity,
    AlertThresholds,
    AlertType,
    PermissionCheckRecord,
    PermissionMonitoringService,
    RepeatingTimer,
)

from .helpers import FakeNow


def alert_types(alerts):
    return [alert.type for alert in alerts]


class RecordingTests(SimpleTestCase):
    def setUp(self):
        self.monitor = PermissionMonitoringService()

    def test_permission_checks_are_broken_down(self):
        self.monitor.record_permission_check("users", "read", True, 12.0)
        self.monitor.record_permission_check("users", "delete", False, 8.0)
        self.monitor.record_permission_check("campaigns", "update", False, 10.0)
        self.monitor.record(PermissionCheckRecord("campaigns", "read", True, 4.0))

        permissions = self.monitor.permissions
        self.assertEqual((permissions.checks, permissions.granted, permissions.denied), (4, 2, 2))
        self.assertEqual(permissions.by_resource, {"users": 2, "campaigns": 2})
        self.assertEqual(permissions.by_action, {"read": 2, "delete": 1, "update": 1})
        self.assertEqual(self.monitor.security.denied_by_resource, {"users": 1, "campaigns": 1})
        # only the sensitive resource counts as an unauthorized attempt
        self.assertEqual(self.monitor.security.unauthorized_attempts, 1)

    def test_sensitive_resources_are_configurable(self):
        monitor = PermissionMonitoringService(sensitive_resources=["campaigns"])
        monitor.record_permission_check("users", "read", False, 1.0)
        monitor.record_permission_check("campaigns", "read", False, 1.0)
        self.assertEqual(monitor.security.unauthorized_attempts, 1)

    def test_permission_latency_samples_are_capped(self):
        for i in range(1005):
            self.monitor.record_permission_check("users", "read", True, float(i))
        latencies = self.monitor.permissions.latencies
        self.assertEqual(len(latencies), 1000)
        self.assertEqual(latencies[0], 5.0)
        self.assertEqual(latencies[-1], 1004.0)

    def test_edge_function_calls(self):
        for i in range(1200):
            self.monitor.record_edge_function_call("check_permission", i % 4 != 0, 10.0)
        self.monitor.record_edge_function_call("manage_user_role", False, 50.0)

        edge = self.monitor.edge_functions
        self.assertEqual(edge.calls, 1201)
        self.assertEqual(edge.errors, 301)
        self.assertEqual(len(edge.latencies), 1000)
        self.assertEqual(edge.by_function["check_permission"].calls, 1200)
        self.assertEqual(edge.by_function["check_permission"].errors, 300)
        self.assertEqual(len(edge.by_function["check_permission"].latencies), 500)
        self.assertEqual(edge.by_function["manage_user_role"].errors, 1)

    def test_role_counters_never_go_negative(self):
        self.monitor.record_role_assignment("admin")
        self.monitor.record_role_removal("admin")
        self.monitor.record_role_removal("admin")
        self.monitor.record_role_removal("merchant")

        self.assertEqual(self.monitor.roles.assignments, 1)
        self.assertEqual(self.monitor.roles.removals, 3)
        self.assertEqual(self.monitor.roles.by_role, {"admin": 0})

    def test_cache_counters(self):
        self.monitor.record_cache_hit()
        self.monitor.record_cache_hit()
        self.monitor.record_cache_miss()
        self.monitor.record_cache_invalidation()
        self.monitor.update_cache_size(7)
        self.assertEqual(
            (self.monitor.cache.hits, self.monitor.cache.misses, self.monitor.cache.invalidations),
            (2, 1, 1),
        )
        self.assertEqual(self.monitor.cache.size, 7)


class AlertTests(TestCase):
    def setUp(self):
        self.now = FakeNow()
        self.monitor = PermissionMonitoringService(now=self.now)

    def test_low_cache_hit_rate_alert(self):
        for _ in range(13):
            self.monitor.record_cache_hit()
        for _ in range(12):
            self.monitor.record_cache_miss()

        self.monitor.take_snapshot()
        alerts = self.monitor.get_active_alerts()

        self.assertEqual(alert_types(alerts), [AlertType.LOW_CACHE_HIT_RATE])
        self.assertIs(alerts[0].severity, AlertSeverity.WARNING)
        self.assertEqual(
            alerts[0].message, "Cache hit rate is 52.0%, which is below threshold of 70.0%"
        )
        self.assertTrue(alerts[0].id.startswith("alert-"))

    def test_no_cache_alert_without_enough_attempts(self):
        self.monitor.take_snapshot()
        for _ in range(20):
            self.monitor.record_cache_miss()
        self.monitor.take_snapshot()
        self.assertEqual(self.monitor.get_active_alerts(), [])

    def test_denial_rate_and_latency_alerts(self):
        for i in range(21):
            self.monitor.record_permission_check("campaigns", "read", i % 2 == 0, 250.0)

        alerts = self.monitor.check_for_alerts()

        self.assertEqual(
            alert_types(alerts),
            [AlertType.HIGH_PERMISSION_DENIAL_RATE, AlertType.HIGH_PERMISSION_LATENCY],
        )
        self.assertTrue(all(a.severity is AlertSeverity.WARNING for a in alerts))

    def test_edge_function_alerts(self):
        for _ in range(11):
            self.monitor.record_edge_function_call("check_permission", False, 900.0)

        alerts = self.monitor.check_for_alerts()

        self.assertEqual(
            alert_types(alerts),
            [AlertType.HIGH_EDGE_FUNCTION_ERROR_RATE, AlertType.HIGH_EDGE_FUNCTION_LATENCY],
        )
        self.assertIs(alerts[0].severity, AlertSeverity.ERROR)
        self.assertIs(alerts[1].severity, AlertSeverity.WARNING)

    def test_unauthorized_attempts_over_trailing_window(self):
        self.monitor.record_permission_check("roles", "update", False, 1.0)
        self.monitor.record_permission_check("audit_logs", "read", False, 1.0)

        self.monitor.take_snapshot()
        self.now.advance(minutes=1)
        self.monitor.take_snapshot()
        self.assertEqual(self.monitor.get_active_alerts(), [])

        self.now.advance(minutes=1)
        self.monitor.take_snapshot()
        alerts = self.monitor.get_active_alerts()
        self.assertEqual(alert_types(alerts), [AlertType.MULTIPLE_UNAUTHORIZED_ATTEMPTS])
        self.assertIs(alerts[0].severity, AlertSeverity.ERROR)
        self.assertEqual(
            alerts[0].message, "6 unauthorized access attempts detected in the last 5 minutes"
        )

        # older snapshots fall out of the window
        self.now.advance(minutes=10)
        self.assertEqual(self.monitor.check_for_alerts(), [])

    def test_one_alert_per_rule_per_cycle(self):
        for _ in range(25):
            self.monitor.record_cache_miss()

        first = self.monitor.check_for_alerts()
        second = self.monitor.check_for_alerts()

        self.assertEqual(len(first), 1)
        self.assertEqual(len(second), 1)
        self.assertNotEqual(first[0].id, second[0].id)
        self.assertEqual(len(self.monitor.alerts), 2)

    def test_thresholds_merge_partial_overrides(self):
        thresholds = self.monitor.set_alert_thresholds(cache_hit_rate=0.4)
        self.assertEqual(thresholds, AlertThresholds(cache_hit_rate=0.4))

        for _ in range(13):
            self.monitor.record_cache_hit()
        for _ in range(12):
            self.monitor.record_cache_miss()
        self.assertEqual(self.monitor.check_for_alerts(), [])

        with self.assertRaises(TypeError):
            self.monitor.set_alert_thresholds(not_a_threshold=1)

    def test_alerts_are_persisted(self):
        for _ in range(25):
            self.monitor.record_cache_miss()
        alert = self.monitor.check_for_alerts()[0]

        record = PermissionAlertRecord.objects.get(alert_id=alert.id)
        self.assertEqual(record.alert_type, "LOW_CACHE_HIT_RATE")
        self.assertEqual(record.severity, "warning")
        self.assertFalse(record.acknowledged)

    def test_alert_persistence_failure_is_logged_only(self):
        for _ in range(25):
            self.monitor.record_cache_miss()

        with patch.object(
            PermissionAlertRecord.objects, "bulk_create", side_effect=DatabaseError("down")
        ), self.assertLogs("Access.monitoring", level="ERROR"):
            alerts = self.monitor.check_for_alerts()

        self.assertEqual(len(alerts), 1)
        self.assertEqual(len(self.monitor.get_active_alerts()), 1)

    def test_acknowledge_alert(self):
        for _ in range(25):
            self.monitor.record_cache_miss()
        alert = self.monitor.check_for_alerts()[0]

        self.assertTrue(self.monitor.acknowledge_alert(alert.id))

        self.assertEqual(self.monitor.get_active_alerts(), [])
        self.assertEqual(len(self.monitor.alerts), 1)
        self.assertTrue(PermissionAlertRecord.objects.get(alert_id=alert.id).acknowledged)
        self.assertFalse(self.monitor.acknowledge_alert("alert-unknown"))


class SnapshotTests(TestCase):
    def setUp(self):
        self.now = FakeNow()
        self.monitor = PermissionMonitoringService(now=self.now)

    def test_snapshot_is_a_deep_copy(self):
        self.monitor.record_permission_check("users", "read", True, 5.0)
        self.monitor.record_edge_function_call("check_permission", True, 5.0)
        snapshot = self.monitor.take_snapshot()

        self.monitor.record_permission_check("users", "read", False, 5.0)
        self.monitor.record_edge_function_call("check_permission", False, 5.0)

        self.assertEqual(snapshot.permissions.checks, 1)
        self.assertEqual(snapshot.permissions.by_resource, {"users": 1})
        self.assertEqual(len(snapshot.permissions.latencies), 1)
        self.assertEqual(snapshot.edge_functions.by_function["check_permission"].calls, 1)

    def test_history_is_capped_fifo(self):
        first_timestamp = self.now()
        for _ in range(SNAPSHOT_HISTORY_LIMIT + 5):
            self.monitor.take_snapshot()
            self.now.advance(minutes=1)

        snapshots = self.monitor.get_snapshots()
        self.assertEqual(len(snapshots), SNAPSHOT_HISTORY_LIMIT)
        self.assertEqual(snapshots[0].timestamp, first_timestamp + timedelta(minutes=5))

    def test_metrics_summary_and_history(self):
        self.monitor.record_cache_hit()
        self.monitor.record_cache_miss()
        self.monitor.update_cache_size(3)
        self.monitor.record_permission_check("users", "read", True, 10.0)
        self.monitor.record_permission_check("users", "read", False, 30.0)
        self.monitor.record_edge_function_call("check_permission", True, 40.0)
        self.monitor.record_edge_function_call("check_permission", False, 60.0)
        self.monitor.take_snapshot()
        self.now.advance(minutes=1)
        self.monitor.record_cache_hit()
        self.monitor.take_snapshot()

        metrics = self.monitor.get_metrics()
        summary = metrics["summary"]
        self.assertEqual(summary["cache"]["hit_rate"], 2 / 3)
        self.assertEqual(summary["cache"]["size"], 3)
        self.assertEqual(summary["permissions"]["grant_rate"], 0.5)
        self.assertEqual(summary["permissions"]["avg_latency"], 20.0)
        self.assertEqual(summary["permissions"]["top_resources"], {"users": 2})
        self.assertEqual(summary["security"]["total_denials"], 1)
        self.assertEqual(summary["edge_functions"]["error_rate"], 0.5)
        self.assertEqual(summary["edge_functions"]["by_function"]["check_permission"]["avg_latency"], 50.0)

        historical = metrics["historical"]
        self.assertEqual(len(historical["timestamps"]), 2)
        self.assertEqual(historical["cache"]["hit_rates"], [0.5, 2 / 3])
        self.assertEqual(historical["permissions"]["checks"], [2, 2])
        self.assertEqual(historical["security"]["denials"], [1, 1])
        self.assertEqual(historical["edge_functions"]["avg_latencies"], [50.0, 50.0])

    def test_top_resources_are_limited(self):
        for index, resource in enumerate(["a", "b", "c", "d", "e", "f"]):
            for _ in range(index + 1):
                self.monitor.record_permission_check(resource, "read", True, 1.0)
        top = self.monitor.get_metrics()["summary"]["permissions"]["top_resources"]
        self.assertEqual(list(top), ["f", "e", "d", "c", "b"])

    def test_persist_metrics(self):
        self.monitor.record_cache_hit()
        self.assertTrue(self.monitor.persist_metrics())

        record = PermissionMetricRecord.objects.get()
        self.assertEqual(record.metrics_data["cache"]["hits"], 1)
        self.assertEqual(self.monitor.last_persisted_at, self.now())

    def test_persist_metrics_failure_is_logged_only(self):
        with patch.object(
            PermissionMetricRecord.objects, "create", side_effect=DatabaseError("down")
        ), self.assertLogs("Access.monitoring", level="ERROR"):
            self.assertFalse(self.monitor.persist_metrics())
        self.assertIsNone(self.monitor.last_persisted_at)

    def test_reset_metrics(self):
        self.monitor.record_cache_miss()
        for _ in range(25):
            self.monitor.record_cache_miss()
        self.monitor.take_snapshot()

        self.monitor.reset_metrics()

        self.assertEqual(self.monitor.cache.misses, 0)
        self.assertEqual(self.monitor.get_snapshots(), [])
        self.assertEqual(self.monitor.alerts, [])


class TimerTests(SimpleTestCase):
    def test_repeating_timer_runs_until_stopped(self):
        fired = threading.Event()
        timer = RepeatingTimer(0.01, fired.set, name="test-timer")
        timer.start()
        timer.start()
        try:
            self.assertTrue(fired.wait(2))
            self.assertTrue(timer.is_alive())
        finally:
            timer.stop()
        timer._thread.join(2)
        self.assertFalse(timer.is_alive())

    def test_monitor_timers_start_once(self):
        monitor = PermissionMonitoringService(snapshot_interval_seconds=3600, persist_interval_seconds=3600)
        monitor.start()
        thread = monitor._snapshot_timer._thread
        monitor.start()
        try:
            self.assertTrue(monitor.timers_running)
            self.assertIs(monitor._snapshot_timer._thread, thread)
        finally:
            monitor.stop()

    def test_timer_restarts_after_stop(self):
        fired = threading.Event()
        timer = RepeatingTimer(0.01, fired.set, name="test-timer")
        timer.start()
        first = timer._thread
        timer.stop()
        timer.start()
        try:
            self.assertFalse(first.is_alive())
            self.assertIsNot(timer._thread, first)
            fired.clear()
            self.assertTrue(fired.wait(2))
            self.assertTrue(timer.is_alive())
        finally:
            timer.stop()
        timer._thread.join(2)

    def test_monitor_timers_restart_after_stop(self):
        monitor = PermissionMonitoringService(snapshot_interval_seconds=3600, persist_interval_seconds=3600)
        monitor.start()
        monitor.stop()
        monitor.start()
        try:
            self.assertTrue(monitor.timers_running)
            self.assertFalse(monitor._snapshot_timer._stopped.is_set())
        finally:
            monitor.stop()
