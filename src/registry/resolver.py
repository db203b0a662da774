# src/registry/resolver.py — v1
"""Install resolution: exact version or latest, applied recursively.

"latest", "*" and an empty string select the version flagged is_latest;
any other string must match a published version exactly. Runtime and
peer dependencies are resolved with the same rule. A package reached
twice is resolved once; a second, different requirement for it is
reported as a warning and the first resolution wins.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from shipyard.core.errors import RegistryError
from shipyard.registry.base_store import BasePackageStore
from shipyard.registry.models import MicroAppPackage, PackageVersion, ResolvedPackage

logger = logging.getLogger(__name__)

LATEST_ALIASES = frozenset({"latest", "*", ""})


@dataclass
class Resolution:
    """Root package plus its transitive dependencies, in install order."""

    root: ResolvedPackage
    dependencies: list[ResolvedPackage] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def all_packages(self) -> list[ResolvedPackage]:
        return [self.root, *self.dependencies]


def _resolved(package: MicroAppPackage, version: PackageVersion) -> ResolvedPackage:
    return ResolvedPackage(
        name=package.package_name,
        version=version.version,
        package_id=package.id,
        dist_url=version.dist_url,
        dist_tarball_url=version.dist_tarball_url,
        dist_integrity_hash=version.dist_integrity_hash,
    )


class DependencyResolver:
    """Resolve install requests against a package store."""

    def __init__(self, store: BasePackageStore) -> None:
        self._store = store

    async def resolve_version(
        self, package_name: str, requested: str = "latest"
    ) -> tuple[MicroAppPackage, PackageVersion]:
        """Resolve one package/version requirement.

        Raises:
            RegistryError: PACKAGE_NOT_FOUND or VERSION_NOT_FOUND.
        """
        package = await self._store.get_package_by_name(package_name)
        if package is None:
            raise RegistryError.package_not_found(package_name)

        requested = (requested or "").strip()
        if requested in LATEST_ALIASES:
            version = await self._store.get_latest_version(package.id)
        else:
            version = await self._store.get_version(package.id, requested)
        if version is None:
            raise RegistryError.version_not_found(package_name, requested or "latest")
        return package, version

    async def resolve(self, package_name: str, requested: str = "latest") -> Resolution:
        """Resolve a package and its dependency closure."""
        package, version = await self.resolve_version(package_name, requested)
        resolution = Resolution(root=_resolved(package, version))
        seen: dict[str, str] = {package.package_name: version.version}
        await self._walk(version, seen, resolution)
        return resolution

    async def _walk(
        self,
        version: PackageVersion,
        seen: dict[str, str],
        resolution: Resolution,
    ) -> None:
        requirements = {**version.dependencies, **version.peer_dependencies}
        for name, requested in requirements.items():
            if name in seen:
                if requested not in LATEST_ALIASES and requested != seen[name]:
                    message = (
                        f"{name}@{requested} requested but {name}@{seen[name]} "
                        "already resolved"
                    )
                    logger.warning("%s", message)
                    resolution.warnings.append(message)
                continue
            dep_package, dep_version = await self.resolve_version(name, requested)
            seen[name] = dep_version.version
            resolution.dependencies.append(_resolved(dep_package, dep_version))
            await self._walk(dep_version, seen, resolution)
