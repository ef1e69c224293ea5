"""Read-cache adapter abstraction: pluggable cache behind a small port."""

import os

_cache_instance = None


def get_cache():
    """Return the configured cache adapter (singleton).

    Uses InMemoryCache by default. Set CACHE_ADAPTER=redis (with REDIS_URL)
    to use Redis.
    """
    global _cache_instance
    if _cache_instance is None:
        adapter = os.environ.get("CACHE_ADAPTER", "memory")
        if adapter == "memory":
            from marketplace.cache.memory_adapter import InMemoryCache

            _cache_instance = InMemoryCache()
        elif adapter == "redis":
            from marketplace.cache.redis_adapter import RedisCache

            _cache_instance = RedisCache(os.environ.get("REDIS_URL", "redis://localhost:6379/0"))
        else:
            raise ValueError(f"Unknown cache adapter: {adapter}")
    return _cache_instance


def reset_cache():
    """Reset the cache singleton (useful for testing)."""
    global _cache_instance
    _cache_instance = None


def cache_ttl_seconds() -> int:
    return int(os.environ.get("CACHE_TTL_SECONDS", "60"))
