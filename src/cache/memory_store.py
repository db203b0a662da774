# src/cache/memory_store.py — v1
"""Process-local package cache (CACHE_BACKEND=memory).

Sufficient for a single registry instance; see redis_store for
multi-instance deployments.
"""

from __future__ import annotations

from shipyard.cache.base_cache_store import BaseCacheStore
from shipyard.registry.models import MicroAppPackage


class MemoryCacheStore(BaseCacheStore):
    """Dict-backed cache holding copies of packages."""

    def __init__(self) -> None:
        self._entries: dict[str, MicroAppPackage] = {}

    async def get(self, package_name: str) -> MicroAppPackage | None:
        package = self._entries.get(package_name)
        return package.model_copy(deep=True) if package else None

    async def put(self, package_name: str, package: MicroAppPackage) -> None:
        self._entries[package_name] = package.model_copy(deep=True)

    async def delete(self, package_name: str) -> None:
        self._entries.pop(package_name, None)

    async def clear(self) -> None:
        self._entries.clear()

    async def keys(self) -> list[str]:
        return sorted(self._entries)
