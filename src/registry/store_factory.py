# src/registry/store_factory.py — v1
"""Factories: package store and fully wired PackageRegistry from settings."""

from __future__ import annotations

from shipyard.cache.cache_factory import create_cache_store
from shipyard.config.settings import Settings
from shipyard.registry.base_store import BasePackageStore
from shipyard.registry.downloader import PackageDownloader
from shipyard.registry.service import PackageRegistry


def create_package_store(settings: Settings) -> BasePackageStore:
    """Create the package store selected by REGISTRY_BACKEND.

    Raises:
        ValueError: If the backend is not supported.
    """
    if settings.registry_backend == "memory":
        from shipyard.registry.memory_store import MemoryPackageStore

        return MemoryPackageStore()

    if settings.registry_backend == "sqlite":
        from shipyard.registry.sqlite_store import SqlitePackageStore

        return SqlitePackageStore(db_path=settings.registry_db_path)

    raise ValueError(f"Unsupported registry backend: {settings.registry_backend!r}")


def create_registry(settings: Settings) -> PackageRegistry:
    """Wire store, cache and downloader into a PackageRegistry."""
    downloader = PackageDownloader(
        install_root=settings.install_root,
        timeout_s=settings.download_timeout_s,
        verify_integrity=settings.verify_integrity,
    )
    return PackageRegistry(
        store=create_package_store(settings),
        cache=create_cache_store(settings),
        downloader=downloader,
    )
