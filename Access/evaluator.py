from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable

from .cache import PermissionCache, permission_key, permissions_key
from .integration.client import EdgeFunctionClient
from .integration.contracts import ErrorKind, Failure, Outcome, Permission, Success
from .monitoring import PermissionCheckRecord, PermissionMonitoringService

logger = logging.getLogger(__name__)

_MISSING = object()


@dataclass(slots=True)
class _InFlight:
    done: threading.Event = field(default_factory=threading.Event)
    result: bool = False


class PermissionEvaluator:
    """
    Cache-first authorization facade over the edge functions.

    Remote failures never escape: checks resolve to denied (and the denial is
    cached), permission sets resolve to empty, role mutations to ``False``.
    """

    def __init__(
        self,
        *,
        cache: PermissionCache,
        client: EdgeFunctionClient,
        monitor: PermissionMonitoringService,
        service_user_id: str = "",
        coalesce_remote_checks: bool = False,
    ) -> None:
        self.cache = cache
        self.client = client
        self.monitor = monitor
        self.service_user_id = service_user_id
        self.coalesce_remote_checks = coalesce_remote_checks
        self._inflight: dict[str, _InFlight] = {}
        self._inflight_lock = threading.Lock()

    def check_permission(self, user_id: str, resource: str, action: str) -> bool:
        if not user_id:
            return False

        key = permission_key(user_id, resource, action)
        cached = self.cache.get(key, _MISSING)
        if cached is not _MISSING:
            self.monitor.record_cache_hit()
            return bool(cached)

        self.monitor.record_cache_miss()
        if self.coalesce_remote_checks:
            return self._coalesced(key, lambda: self._check_remote(key, user_id, resource, action))
        return self._check_remote(key, user_id, resource, action)

    def has_permission(self, user_id: str, resource: str, action: str) -> bool:
        """Answer from the user's permission set, loading it once if it is not cached."""
        return any(
            permission.resource == resource and permission.allows(action)
            for permission in self.get_user_permissions(user_id)
        )

    def get_user_permissions(self, user_id: str) -> list[Permission]:
        if not user_id:
            return []

        key = permissions_key(user_id)
        cached = self.cache.get(key, _MISSING)
        if cached is not _MISSING:
            self.monitor.record_cache_hit()
            return list(cached)

        self.monitor.record_cache_miss()
        outcome = self._fetch_permissions(user_id)
        if isinstance(outcome, Failure):
            logger.warning("Permission set unavailable for %s: %s", user_id, outcome.detail)
            return []

        self.cache.set(key, tuple(outcome.value))
        self.monitor.update_cache_size(len(self.cache))
        return list(outcome.value)

    def assign_role_to_user(
        self, user_id: str, role_name: str, *, admin_user_id: str | None = None
    ) -> bool:
        return self._mutate_role(user_id, role_name, "assign", admin_user_id)

    def remove_role_from_user(
        self, user_id: str, role_name: str, *, admin_user_id: str | None = None
    ) -> bool:
        return self._mutate_role(user_id, role_name, "remove", admin_user_id)

    def invalidate_user_permission_cache(self, user_id: str) -> None:
        removed = self.cache.invalidate_user_permissions(user_id)
        self.monitor.record_cache_invalidation()
        self.monitor.update_cache_size(len(self.cache))
        logger.debug("Invalidated %s cached permission entries for %s", removed, user_id)

    def clear_permission_cache(self) -> int:
        removed = self.cache.clear()
        self.monitor.record_cache_invalidation()
        self.monitor.update_cache_size(len(self.cache))
        logger.info("Cleared %s cached permission entries", removed)
        return removed

    def _check_remote(self, key: str, user_id: str, resource: str, action: str) -> bool:
        started = time.perf_counter()
        outcome = self._remote_check(user_id, resource, action)
        latency_ms = (time.perf_counter() - started) * 1000.0

        if isinstance(outcome, Success):
            granted = outcome.value
        else:
            logger.warning(
                "Permission check failed for %s on %s:%s, denying: %s",
                user_id,
                resource,
                action,
                outcome.detail,
            )
            granted = False

        self.cache.set(key, granted)
        self.monitor.update_cache_size(len(self.cache))
        self.monitor.record(PermissionCheckRecord(resource, action, granted, latency_ms))
        return granted

    def _coalesced(self, key: str, compute: Callable[[], bool]) -> bool:
        with self._inflight_lock:
            pending = self._inflight.get(key)
            leader = pending is None
            if leader:
                pending = self._inflight[key] = _InFlight()
        if not leader:
            pending.done.wait()
            return pending.result

        try:
            pending.result = compute()
        finally:
            with self._inflight_lock:
                self._inflight.pop(key, None)
            pending.done.set()
        return pending.result

    def _remote_check(self, user_id: str, resource: str, action: str) -> Outcome[bool]:
        try:
            return Success(self.client.check_permission(user_id, resource, action))
        except Exception as exc:
            return Failure(ErrorKind.REMOTE_CHECK_FAILURE, str(exc) or type(exc).__name__)

    def _fetch_permissions(self, user_id: str) -> Outcome[list[Permission]]:
        try:
            return Success(self.client.get_user_permissions(user_id))
        except Exception as exc:
            return Failure(ErrorKind.REMOTE_CHECK_FAILURE, str(exc) or type(exc).__name__)

    def _mutate_role(
        self, user_id: str, role_name: str, operation: str, admin_user_id: str | None
    ) -> bool:
        try:
            outcome: Outcome[bool] = Success(
                self.client.manage_user_role(
                    admin_user_id=admin_user_id or self.service_user_id,
                    target_user_id=user_id,
                    role_name=role_name,
                    operation=operation,
                )
            )
        except Exception as exc:
            outcome = Failure(ErrorKind.ROLE_MUTATION_FAILURE, str(exc) or type(exc).__name__)

        if isinstance(outcome, Failure):
            logger.warning("Role %s of %s for %s failed: %s", operation, role_name, user_id, outcome.detail)
            return False
        if not outcome.value:
            logger.warning("Role %s of %s for %s was rejected", operation, role_name, user_id)
            return False

        self.invalidate_user_permission_cache(user_id)
        if operation == "assign":
            self.monitor.record_role_assignment(role_name)
        else:
            self.monitor.record_role_removal(role_name)
        return True
