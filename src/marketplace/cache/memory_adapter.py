"""In-memory cache adapter for tests and local development.

Can be told to fail so callers' handling of cache outages can be exercised.
"""

import copy
import fnmatch
import threading
import time

from marketplace.cache.port import CachePort


class CacheUnavailable(ConnectionError):
    pass


class InMemoryCache(CachePort):
    def __init__(self):
        self._entries: dict[str, tuple] = {}
        self._lock = threading.Lock()
        self.should_fail = False
        self.invalidated: list[str] = []

    def configure(self, should_fail: bool = False):
        """Configure the fake cache behavior for testing."""
        self.should_fail = should_fail

    def _check(self):
        if self.should_fail:
            raise CacheUnavailable("Cache unavailable")

    def get(self, key: str):
        self._check()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and expires_at <= time.monotonic():
                del self._entries[key]
                return None
            return copy.deepcopy(value)

    def set(self, key: str, value, ttl_seconds: int | None = None) -> None:
        self._check()
        expires_at = time.monotonic() + ttl_seconds if ttl_seconds else None
        with self._lock:
            self._entries[key] = (copy.deepcopy(value), expires_at)

    def invalidate(self, pattern: str) -> int:
        self._check()
        with self._lock:
            self.invalidated.append(pattern)
            matched = [key for key in self._entries if fnmatch.fnmatchcase(key, pattern)]
            for key in matched:
                del self._entries[key]
            return len(matched)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._entries)
