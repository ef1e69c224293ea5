"""Cache port: abstract interface for the external read cache.

The engine never depends on a cache for correctness. It only stores
serialized read views and invalidates them after every committed mutation.
"""

from abc import ABC, abstractmethod


class CachePort(ABC):
    """Abstract interface for cache adapters."""

    @abstractmethod
    def get(self, key: str):
        """Return the cached value for ``key``, or None on a miss."""
        ...

    @abstractmethod
    def set(self, key: str, value, ttl_seconds: int | None = None) -> None:
        """Store a JSON-serializable value, optionally expiring after ``ttl_seconds``."""
        ...

    @abstractmethod
    def invalidate(self, pattern: str) -> int:
        """Drop every key matching a glob ``pattern``.

        Returns:
            the number of keys removed
        """
        ...
