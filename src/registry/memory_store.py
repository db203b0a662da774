# src/registry/memory_store.py — v1
"""Process-local package store (REGISTRY_BACKEND=memory).

Every mutating method completes without awaiting, so each one is atomic
with respect to other coroutines on the event loop.
"""

from __future__ import annotations

from datetime import datetime, timezone

from shipyard.core.errors import RegistryError
from shipyard.registry.base_store import BasePackageStore
from shipyard.registry.models import MicroAppPackage, PackageStatus, PackageVersion


class MemoryPackageStore(BasePackageStore):
    """Dict-backed store holding copies of records."""

    def __init__(self) -> None:
        self._packages: dict[str, MicroAppPackage] = {}
        self._names: dict[str, str] = {}
        self._versions: dict[str, dict[str, PackageVersion]] = {}

    async def get_package_by_name(self, package_name: str) -> MicroAppPackage | None:
        package_id = self._names.get(package_name)
        return await self.get_package_by_id(package_id) if package_id else None

    async def get_package_by_id(self, package_id: str) -> MicroAppPackage | None:
        package = self._packages.get(package_id)
        return package.model_copy(deep=True) if package else None

    async def list_packages(self, status: PackageStatus | None = None) -> list[MicroAppPackage]:
        return [
            p.model_copy(deep=True)
            for p in self._packages.values()
            if status is None or p.status == status
        ]

    async def list_versions(self, package_id: str) -> list[PackageVersion]:
        # Newest insertion first among equal timestamps.
        versions = [v.model_copy() for v in reversed(self._versions.get(package_id, {}).values())]
        versions.sort(key=lambda v: v.published_at, reverse=True)
        return versions

    async def get_version(self, package_id: str, version: str) -> PackageVersion | None:
        found = self._versions.get(package_id, {}).get(version)
        return found.model_copy() if found else None

    async def get_latest_version(self, package_id: str) -> PackageVersion | None:
        for version in self._versions.get(package_id, {}).values():
            if version.is_latest:
                return version.model_copy()
        return None

    async def create_package(self, package: MicroAppPackage, version: PackageVersion) -> None:
        if package.package_name in self._names:
            raise RegistryError.conflict(package.package_name)
        self._packages[package.id] = package.model_copy(deep=True)
        self._names[package.package_name] = package.id
        self._versions[package.id] = {
            version.version: version.model_copy(update={"is_latest": True})
        }

    async def add_version(self, package: MicroAppPackage, version: PackageVersion) -> None:
        versions = self._versions.setdefault(package.id, {})
        if version.version in versions:
            raise RegistryError.conflict(package.package_name, version.version)
        for existing in versions.values():
            existing.is_latest = False
        versions[version.version] = version.model_copy(update={"is_latest": True})
        self._packages[package.id] = package.model_copy(deep=True)

    async def update_package(self, package: MicroAppPackage) -> None:
        self._packages[package.id] = package.model_copy(deep=True)

    async def increment_install_metrics(self, package_id: str) -> bool:
        package = self._packages.get(package_id)
        if package is None:
            return False
        package.total_downloads += 1
        package.weekly_downloads += 1
        package.install_count += 1
        package.updated_at = datetime.now(timezone.utc)
        return True

    async def increment_version_downloads(self, package_id: str, version: str) -> None:
        found = self._versions.get(package_id, {}).get(version)
        if found is not None:
            found.download_count += 1
