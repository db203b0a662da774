# src/cache/redis_store.py — v2
"""Redis-based package cache (CACHE_BACKEND=redis).

Requires 'redis' package: pip install redis.
Shares cache entries, and therefore publish overwrites, between registry
instances.
"""

from __future__ import annotations

import logging

from pydantic import ValidationError

from shipyard.cache.base_cache_store import BaseCacheStore
from shipyard.registry.models import MicroAppPackage

logger = logging.getLogger(__name__)

_KEY_PREFIX = "shipyard:package:"
_INDEX_KEY = "shipyard:package:__index__"


class RedisCacheStore(BaseCacheStore):
    """Redis-backed package cache for multi-instance deployments."""

    def __init__(self, redis_url: str) -> None:
        try:
            import redis
        except ImportError as e:
            raise ImportError(
                "redis package required: pip install redis"
            ) from e

        self._client = redis.Redis.from_url(redis_url, decode_responses=True)

    async def get(self, package_name: str) -> MicroAppPackage | None:
        """Retrieve a cached package by name."""
        data = self._client.get(f"{_KEY_PREFIX}{package_name}")
        if data is None:
            return None
        try:
            return MicroAppPackage.model_validate_json(data)
        except ValidationError as e:
            logger.warning("Failed to deserialize cached package %s: %s", package_name, e)
            return None

    async def put(self, package_name: str, package: MicroAppPackage) -> None:
        """Store a cached package."""
        self._client.set(f"{_KEY_PREFIX}{package_name}", package.model_dump_json())
        # Index of names for keys() / clear()
        self._client.sadd(_INDEX_KEY, package_name)

    async def delete(self, package_name: str) -> None:
        self._client.delete(f"{_KEY_PREFIX}{package_name}")
        self._client.srem(_INDEX_KEY, package_name)

    async def clear(self) -> None:
        for name in self._client.smembers(_INDEX_KEY):
            self._client.delete(f"{_KEY_PREFIX}{name}")
        self._client.delete(_INDEX_KEY)

    async def keys(self) -> list[str]:
        return sorted(self._client.smembers(_INDEX_KEY))

    def close(self) -> None:
        """Close the Redis connection."""
        self._client.close()
