"""
identity_gateway.services.validation_cache

Process-wide TTL cache of registry validation outcomes.

Responsibilities:
- Remember "does this audit id resolve?" booleans for a bounded time.
- Stay safe under concurrent readers/writers (single lock around the TTLCache).

Staleness contract (eventual revocation):
- A cached `True` is served until its TTL elapses, even if the underlying record
  stops resolving in the meantime. Revocation therefore takes effect within one TTL
  window, not immediately. This is accepted behavior, not a bug; tests must advance
  the cache clock past the TTL before expecting a revoked id to fail validation.
"""

from __future__ import annotations

import threading
import time
import uuid
from collections.abc import Callable
from datetime import timedelta

from cachetools import TTLCache


class ValidationCache:
    def __init__(
        self,
        *,
        ttl: timedelta,
        maxsize: int = 10_000,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_seconds = ttl.total_seconds()
        self._lock = threading.Lock()
        # Booleans only, never records, to keep memory bounded.
        self._entries: TTLCache[uuid.UUID, bool] | None = None
        if self._ttl_seconds > 0:
            self._entries = TTLCache(maxsize=maxsize, ttl=self._ttl_seconds, timer=timer)

    @property
    def enabled(self) -> bool:
        return self._entries is not None

    @property
    def ttl(self) -> timedelta:
        return timedelta(seconds=self._ttl_seconds)

    def get(self, audit_id: uuid.UUID) -> bool | None:
        if self._entries is None:
            return None
        with self._lock:
            return self._entries.get(audit_id)

    def set(self, audit_id: uuid.UUID, exists: bool) -> None:
        if self._entries is None:
            return
        with self._lock:
            self._entries[audit_id] = exists

    def invalidate(self, audit_id: uuid.UUID) -> None:
        if self._entries is None:
            return
        with self._lock:
            self._entries.pop(audit_id, None)

    def __len__(self) -> int:
        if self._entries is None:
            return 0
        with self._lock:
            return len(self._entries)


# --- Module Notes -----------------------------------------------------------
# One instance lives on `app.state` and is shared by every request-scoped registry.
