# src/registry/base_store.py — v1
"""Abstract package store: MicroAppPackage and PackageVersion records.

Uniqueness: package_name across packages, (package_id, version) across
versions. Implementations apply create_package() and add_version() as
single atomic updates.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from shipyard.registry.models import MicroAppPackage, PackageStatus, PackageVersion


class BasePackageStore(ABC):
    """Unified interface for registry persistence backends."""

    @abstractmethod
    async def get_package_by_name(self, package_name: str) -> MicroAppPackage | None:
        """Fetch a package by its unique name."""

    @abstractmethod
    async def get_package_by_id(self, package_id: str) -> MicroAppPackage | None:
        """Fetch a package by id."""

    @abstractmethod
    async def list_packages(self, status: PackageStatus | None = None) -> list[MicroAppPackage]:
        """List packages, optionally restricted to one status."""

    @abstractmethod
    async def list_versions(self, package_id: str) -> list[PackageVersion]:
        """List versions of a package, most recently published first."""

    @abstractmethod
    async def get_version(self, package_id: str, version: str) -> PackageVersion | None:
        """Fetch one exact version."""

    @abstractmethod
    async def get_latest_version(self, package_id: str) -> PackageVersion | None:
        """Fetch the version flagged is_latest."""

    @abstractmethod
    async def create_package(self, package: MicroAppPackage, version: PackageVersion) -> None:
        """Insert a new package together with its first (latest) version.

        Raises:
            RegistryError: CONFLICT if the package name already exists.
        """

    @abstractmethod
    async def add_version(self, package: MicroAppPackage, version: PackageVersion) -> None:
        """Insert a new latest version and update the package row atomically.

        The previous latest version loses its flag in the same update.

        Raises:
            RegistryError: CONFLICT if the version already exists.
        """

    @abstractmethod
    async def update_package(self, package: MicroAppPackage) -> None:
        """Replace the package row (metadata and status changes)."""

    @abstractmethod
    async def increment_install_metrics(self, package_id: str) -> bool:
        """Add one to total_downloads, weekly_downloads and install_count.

        Returns False if the package does not exist.
        """

    @abstractmethod
    async def increment_version_downloads(self, package_id: str, version: str) -> None:
        """Add one to a version's download_count."""
