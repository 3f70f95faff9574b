"""Read-through cache for the cluster usage snapshot."""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Protocol

from vhi_usage.domain import ClusterSnapshot

logger = logging.getLogger(__name__)


class SnapshotCache(Protocol):
    """Single-slot cache contract; one cluster per deployment."""

    def get(self) -> ClusterSnapshot | None: ...

    def put(self, snapshot: ClusterSnapshot, ttl: float) -> None: ...

    def clear(self) -> None: ...


class InMemorySnapshotCache:
    """Process-local slot guarded by a lock, expiring after the TTL."""

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._snapshot: ClusterSnapshot | None = None
        self._expires_at = 0.0

    def get(self) -> ClusterSnapshot | None:
        with self._lock:
            if self._snapshot is None:
                return None
            if self._clock() >= self._expires_at:
                self._snapshot = None
                return None
            snapshot = self._snapshot
        logger.info("Cache HIT - returning cached cluster usage (ts=%s)", snapshot.timestamp.isoformat())
        return snapshot

    def put(self, snapshot: ClusterSnapshot, ttl: float) -> None:
        if ttl <= 0:
            return
        with self._lock:
            self._snapshot = snapshot
            self._expires_at = self._clock() + ttl
        logger.info("Cache SET - stored cluster usage (TTL=%ss)", ttl)

    def clear(self) -> None:
        with self._lock:
            self._snapshot = None
            self._expires_at = 0.0


class NullSnapshotCache:
    """Used when caching is disabled."""

    def get(self) -> ClusterSnapshot | None:
        return None

    def put(self, snapshot: ClusterSnapshot, ttl: float) -> None:
        return None

    def clear(self) -> None:
        return None


__all__ = ["InMemorySnapshotCache", "NullSnapshotCache", "SnapshotCache"]
