"""
Advisory read cache for catalog queries.

Search pages are cached for ``catalog_cache_ttl`` seconds. The cache is
cleared after every committed circulation or inventory change, and the
coordinator never reads from it, so it can only ever make a listing slightly
stale, never wrong about a borrow or return decision.
"""

import logging
import threading
import time
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)


class CatalogCache:
    """In-memory TTL cache keyed by query fingerprint."""

    def __init__(self, ttl: float = 60.0):
        self.ttl = ttl
        self._entries: dict[str, tuple[Any, float]] = {}
        self._lock = threading.RLock()
        # Bumped on every invalidation so results computed before a commit are not stored after it
        self._generation = 0

    @property
    def enabled(self) -> bool:
        return self.ttl > 0

    def get(self, key: str) -> Any | None:
        if not self.enabled:
            return None
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if time.monotonic() >= expires_at:
                del self._entries[key]
                return None
            return value

    def get_or_compute(self, key: str, compute: Callable[[], Any]) -> Any:
        cached = self.get(key)
        if cached is not None:
            return cached

        with self._lock:
            generation = self._generation
        value = compute()

        if self.enabled:
            with self._lock:
                if generation == self._generation:
                    self._entries[key] = (value, time.monotonic() + self.ttl)
        return value

    def invalidate(self) -> None:
        """Drop every cached page. Called after each coordinator commit."""
        with self._lock:
            self._generation += 1
            dropped = len(self._entries)
            self._entries.clear()
        if dropped:
            logger.debug("Catalog cache invalidated (%d entries dropped)", dropped)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
