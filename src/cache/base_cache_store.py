# src/cache/base_cache_store.py — v2
"""Abstract package cache interface.

Maps package_name to the last fetched MicroAppPackage. Entries have no
TTL; the registry overwrites an entry when that name is published.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from shipyard.registry.models import MicroAppPackage


class BaseCacheStore(ABC):
    """Unified interface for package cache backends."""

    @abstractmethod
    async def get(self, package_name: str) -> MicroAppPackage | None:
        """Retrieve a cached package by name."""

    @abstractmethod
    async def put(self, package_name: str, package: MicroAppPackage) -> None:
        """Store or overwrite a cached package."""

    @abstractmethod
    async def delete(self, package_name: str) -> None:
        """Remove a cached package."""

    @abstractmethod
    async def clear(self) -> None:
        """Remove every cached package."""

    @abstractmethod
    async def keys(self) -> list[str]:
        """Names of all cached packages, sorted."""
