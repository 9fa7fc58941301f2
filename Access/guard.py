from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)

CheckFunction = Callable[[str, str], bool]


class GuardState(str, Enum):
    PENDING = "pending"
    GRANTED = "granted"
    DENIED = "denied"


class AccessGuard:
    """
    Render-time gate for one resource/action pair.

    Starts ``PENDING`` and settles on ``GRANTED`` or ``DENIED`` once
    ``evaluate`` runs. Changing any input through ``update`` drops back to
    ``PENDING``; a check that finishes after its inputs changed is ignored.
    """

    def __init__(
        self,
        resource: str,
        action: str,
        *,
        user_id: str | None,
        check_permission: CheckFunction,
        has_permission: CheckFunction,
        force_check: bool = False,
    ) -> None:
        self.resource = resource
        self.action = action
        self.user_id = user_id
        self.check_permission = check_permission
        self.has_permission = has_permission
        self.force_check = force_check
        self._state = GuardState.PENDING
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def state(self) -> GuardState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    def update(self, **inputs: Any) -> bool:
        """Apply new inputs; returns True when they changed and a re-check is due."""
        allowed = {"resource", "action", "user_id", "check_permission", "has_permission", "force_check"}
        unknown = set(inputs) - allowed
        if unknown:
            raise TypeError(f"Unknown guard inputs: {', '.join(sorted(unknown))}")

        with self._lock:
            changed = any(getattr(self, name) != value for name, value in inputs.items())
            if not changed:
                return False
            for name, value in inputs.items():
                setattr(self, name, value)
            self._generation += 1
            self._state = GuardState.PENDING
        return True

    def evaluate(self) -> GuardState:
        with self._lock:
            generation = self._generation
            resource, action = self.resource, self.action
            user_id = self.user_id
            force_check = self.force_check
            check = self.check_permission if force_check else self.has_permission

        if not user_id:
            allowed = False
        else:
            try:
                allowed = bool(check(resource, action))
            except Exception:
                logger.exception("Guard check failed for %s:%s, denying", resource, action)
                allowed = False

        with self._lock:
            if generation != self._generation:
                logger.debug("Discarding stale guard result for %s:%s", resource, action)
                return self._state
            self._state = GuardState.GRANTED if allowed else GuardState.DENIED
            return self._state

    def render(self, children: Any, fallback: Any = "") -> Any:
        if self._state is GuardState.GRANTED:
            return children
        if self._state is GuardState.DENIED:
            return fallback
        return ""


def subject_id_for(user: Any) -> str | None:
    """Identifier the edge functions know the user by, or None when anonymous."""
    if user is None or not getattr(user, "is_authenticated", False):
        return None
    return getattr(user, "username", "") or str(user.pk)


class AccessContext:
    """The current user plus the two permission checks, as consumed by guards."""

    def __init__(self, user_id: str | None, evaluator: Any) -> None:
        self.user_id = user_id
        self.evaluator = evaluator

    def check_permission(self, resource: str, action: str) -> bool:
        if not self.user_id:
            return False
        return self.evaluator.check_permission(self.user_id, resource, action)

    def has_permission(self, resource: str, action: str) -> bool:
        if not self.user_id:
            return False
        return self.evaluator.has_permission(self.user_id, resource, action)

    def guard(self, resource: str, action: str, *, force_check: bool = False) -> AccessGuard:
        return AccessGuard(
            resource,
            action,
            user_id=self.user_id,
            check_permission=self.check_permission,
            has_permission=self.has_permission,
            force_check=force_check,
        )

    def allows(self, resource: str, action: str, *, force_check: bool = False) -> bool:
        return self.guard(resource, action, force_check=force_check).evaluate() is GuardState.GRANTED
