"""
Expiring cache of the discovered ingestion resources.

The cache holds one immutable ResourceSet at a time. Readers take a reference
to the current snapshot and keep using it even if a refresh swaps in a newer
one; nothing inside a snapshot ever changes.
"""

import time
from typing import Callable

from services.ingest_service.models.resources import ResourceSet


class ResourceCache:
    """
    Holds the current ResourceSet and decides when it must be refreshed.

    Args:
        ttl_seconds: Lifetime of a snapshot
        failure_backoff_seconds: Minimum wait after a failed refresh before a
            warm cache asks for another one
        clock: Monotonic clock, injectable for tests
    """

    def __init__(
        self,
        ttl_seconds: float,
        failure_backoff_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.failure_backoff_seconds = failure_backoff_seconds
        self._clock = clock
        self._snapshot: ResourceSet | None = None
        self._last_failure_at: float | None = None

    @property
    def snapshot(self) -> ResourceSet | None:
        return self._snapshot

    @property
    def is_warm(self) -> bool:
        return self._snapshot is not None

    def now(self) -> float:
        return self._clock()

    def is_stale(self) -> bool:
        """
        Whether the caller should trigger a refresh before serving.

        A cold cache is always stale. A warm cache is stale once its snapshot
        outlives the TTL, unless a refresh failed recently, in which case the
        old snapshot keeps being served until the failure back-off elapses.
        """
        if self._snapshot is None:
            return True
        now = self._clock()
        if now - self._snapshot.fetched_at < self.ttl_seconds:
            return False
        if self._last_failure_at is not None:
            return now - self._last_failure_at >= self.failure_backoff_seconds
        return True

    def swap(self, snapshot: ResourceSet) -> ResourceSet | None:
        """Replace the current snapshot and return the previous one."""
        previous = self._snapshot
        self._snapshot = snapshot
        self._last_failure_at = None
        return previous

    def record_failure(self) -> None:
        self._last_failure_at = self._clock()
