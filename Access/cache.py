from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

DEFAULT_TTL_SECONDS = 5 * 60


def permission_key(user_id: str, resource: str, action: str) -> str:
    return f"permission:{user_id}:{resource}:{action}"


def permissions_key(user_id: str) -> str:
    return f"permissions:{user_id}"


@dataclass(slots=True)
class CacheEntry:
    key: str
    value: Any
    expires_at: float


class PermissionCache:
    """
    In-process TTL store for permission answers.

    Expiry is lazy: an entry past its deadline is dropped the next time it is
    read, and reads treat it exactly like a key that was never set.
    """

    def __init__(
        self,
        default_ttl_seconds: float = DEFAULT_TTL_SECONDS,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl_seconds = default_ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _live_entry(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() > entry.expires_at:
            del self._entries[key]
            return None
        return entry

    def set(self, key: str, value: Any, ttl_ms: float | None = None) -> None:
        ttl_seconds = self.default_ttl_seconds if ttl_ms is None else ttl_ms / 1000.0
        with self._lock:
            self._entries[key] = CacheEntry(
                key=key,
                value=value,
                expires_at=self._clock() + ttl_seconds,
            )

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._live_entry(key)
            return default if entry is None else entry.value

    def has(self, key: str) -> bool:
        with self._lock:
            return self._live_entry(key) is not None

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def invalidate_user_permissions(self, user_id: str) -> int:
        """Drop every check and the permission set cached for ``user_id``."""
        prefix = f"permission:{user_id}:"
        aggregate = permissions_key(user_id)
        with self._lock:
            doomed = [key for key in self._entries if key == aggregate or key.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        return count
