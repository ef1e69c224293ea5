"""Redis cache adapter.

Values are stored as JSON strings. Pattern invalidation walks the keyspace
with ``SCAN`` so it never blocks the server the way ``KEYS`` would.
"""

import json

import redis

from marketplace.cache.port import CachePort
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)


class RedisCache(CachePort):
    def __init__(self, url: str, prefix: str = "marketplace", client=None):
        self.prefix = prefix
        self.client = client or redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=5.0,
            socket_connect_timeout=5.0,
        )

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}" if self.prefix else key

    def get(self, key: str):
        data = self.client.get(self._key(key))
        if data is None:
            return None
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        return json.loads(data)

    def set(self, key: str, value, ttl_seconds: int | None = None) -> None:
        payload = json.dumps(value, default=str)
        if ttl_seconds:
            self.client.setex(self._key(key), ttl_seconds, payload)
        else:
            self.client.set(self._key(key), payload)

    def invalidate(self, pattern: str) -> int:
        keys = list(self.client.scan_iter(match=self._key(pattern), count=500))
        if not keys:
            return 0
        removed = self.client.delete(*keys)
        logger.debug("cache_invalidated", pattern=pattern, removed=removed)
        return removed
