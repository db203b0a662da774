# src/registry/service.py — v1
"""Package registry service.

Search, lookup, install resolution and publishing of micro-app packages.
The registry is shared by concurrent pipeline completions and install
requests: publishes of one package name are serialized so that exactly
one version carries is_latest at any time.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from shipyard.cache.base_cache_store import BaseCacheStore
from shipyard.cache.memory_store import MemoryCacheStore
from shipyard.core.errors import RegistryError, RegistryErrorKind, ShipyardError
from shipyard.core.models import DeveloperSubmissionForm, PackageDescriptor
from shipyard.registry.base_store import BasePackageStore
from shipyard.registry.downloader import PackageDownloader
from shipyard.registry.locks import KeyedLock
from shipyard.registry.models import (
    BuildArtifacts,
    CacheStats,
    MicroAppPackage,
    PackageConfig,
    PackageInstallOptions,
    PackageInstallResult,
    PackageManifest,
    PackageSearchFilters,
    PackageSearchResult,
    PackageStatus,
    PackageVersion,
    PlatformMetadata,
    PublishRequest,
    RepositoryRef,
)
from shipyard.registry.resolver import LATEST_ALIASES, DependencyResolver
from shipyard.registry.search import search_packages

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _types_path(entry_point: str) -> str:
    stem = entry_point.rsplit(".", 1)[0] if "." in entry_point else entry_point
    return f"{stem}.d.ts"


def request_from_submission(
    submission: DeveloperSubmissionForm,
    artifacts: BuildArtifacts,
    repository_id: str | None = None,
) -> PublishRequest:
    """Build the publish payload of a submission's build output."""
    app, tech = submission.app_info, submission.technical
    manifest = PackageManifest(
        name=tech.package_name,
        version=tech.version,
        description=app.description,
        keywords=[app.category] if app.category else [],
        license=submission.legal.license,
        repository=RepositoryRef(type=submission.repository.type, url=submission.repository.url),
        dependencies=tech.dependencies,
        peer_dependencies=tech.peer_dependencies,
        platform=PlatformMetadata(
            category=app.category,
            micro_app_type=app.category,
            permissions=tech.permissions,
            compatible_brands=app.target_brands,
        ),
    )
    return PublishRequest(
        repository_id=repository_id,
        package_name=tech.package_name,
        display_name=app.name,
        description=app.description,
        version=tech.version,
        package_config=PackageConfig(
            entry=tech.entry_point, types=_types_path(tech.entry_point)
        ),
        manifest=manifest,
        dist_url=artifacts.dist_url,
        dist_tarball_url=artifacts.tarball_url,
        dist_integrity_hash=artifacts.integrity_hash,
        dependencies=tech.dependencies,
        peer_dependencies=tech.peer_dependencies,
        compatible_brands=app.target_brands,
    )


class PackageRegistry:
    """Registry of micro-app packages.

    Args:
        store: Package/version persistence backend.
        cache: Package cache (name -> package). Defaults to in-memory.
        downloader: Dist downloader used by install_package(). Without one,
            installs resolve and record metrics but fetch nothing.
    """

    def __init__(
        self,
        store: BasePackageStore,
        cache: BaseCacheStore | None = None,
        downloader: PackageDownloader | None = None,
    ) -> None:
        self._store = store
        self._cache = cache or MemoryCacheStore()
        self._downloader = downloader
        self._resolver = DependencyResolver(store)
        self._locks = KeyedLock()

    @property
    def store(self) -> BasePackageStore:
        return self._store

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def search_packages(
        self, filters: PackageSearchFilters | None = None
    ) -> PackageSearchResult:
        """Search published packages with facets over all matches."""
        packages = await self._store.list_packages(status="published")
        return search_packages(packages, filters)

    async def get_package(self, package_name: str) -> MicroAppPackage | None:
        """Cached lookup by name; None when the package does not exist."""
        cached = await self._cache.get(package_name)
        if cached is not None:
            return cached
        package = await self._store.get_package_by_name(package_name)
        if package is not None:
            await self._cache.put(package_name, package)
        return package

    async def get_package_versions(self, package_name: str) -> list[PackageVersion]:
        """Versions, newest first; empty when the package does not exist."""
        package = await self.get_package(package_name)
        if package is None:
            return []
        return await self._store.list_versions(package.id)

    async def get_package_version(
        self, package_name: str, version: str
    ) -> PackageVersion | None:
        """Exact version (or 'latest'); None when absent."""
        package = await self.get_package(package_name)
        if package is None:
            return None
        if version in LATEST_ALIASES:
            return await self._store.get_latest_version(package.id)
        return await self._store.get_version(package.id, version)

    # ------------------------------------------------------------------
    # Install
    # ------------------------------------------------------------------

    async def install_package(
        self, package_name: str, options: PackageInstallOptions | None = None
    ) -> PackageInstallResult:
        """Resolve, download and install a package with its dependencies.

        Raises:
            RegistryError: PACKAGE_NOT_FOUND or VERSION_NOT_FOUND for the
                package or any of its dependencies.
        """
        options = options or PackageInstallOptions()
        resolution = await self._resolver.resolve(package_name, options.version)
        root = resolution.root
        warnings = list(resolution.warnings)

        install_path = root.dist_url
        if self._downloader is None:
            warnings.append("No downloader configured; package files were not fetched")
        else:
            try:
                install_dir = await self._downloader.download(root)
                for dependency in resolution.dependencies:
                    await self._downloader.download(dependency)
                self._downloader.write_install_manifest(install_dir, root, options)
            except (ShipyardError, OSError) as e:
                logger.error("Install of %s@%s failed: %s", root.name, root.version, e)
                return PackageInstallResult(
                    success=False,
                    package_id=root.package_id,
                    version=root.version,
                    install_path="",
                    warnings=warnings,
                    errors=[str(e)],
                )
            install_path = str(install_dir)

        for resolved in resolution.all_packages:
            await self._record_install_best_effort(resolved.package_id, resolved.version)

        logger.info(
            "Installed %s@%s with %d dependencies",
            root.name, root.version, len(resolution.dependencies),
        )
        return PackageInstallResult(
            success=True,
            package_id=root.package_id,
            version=root.version,
            install_path=install_path,
            dependencies=[d.name for d in resolution.dependencies],
            warnings=warnings,
        )

    async def record_install(self, package_id: str) -> bool:
        """Increment install counters; False if the package id is unknown."""
        return await self._store.increment_install_metrics(package_id)

    async def _record_install_best_effort(self, package_id: str, version: str) -> None:
        try:
            await self._store.increment_install_metrics(package_id)
            await self._store.increment_version_downloads(package_id, version)
        except Exception as e:
            logger.warning("Failed to record install metrics for %s: %s", package_id, e)

    # ------------------------------------------------------------------
    # Publish
    # ------------------------------------------------------------------

    async def publish_package(
        self,
        submission: DeveloperSubmissionForm,
        artifacts: BuildArtifacts,
        *,
        first_publish: bool = False,
        author_id: str = "",
        quality_score: float | None = None,
        repository_id: str | None = None,
    ) -> MicroAppPackage:
        """Publish a submission's build output as a new package or version."""
        request = request_from_submission(submission, artifacts, repository_id)
        request.first_publish = first_publish
        return await self.publish(request, author_id=author_id, quality_score=quality_score)

    async def publish_build(
        self,
        submission: DeveloperSubmissionForm,
        package_info: PackageDescriptor,
        quality_score: float | None = None,
        author_id: str = "",
    ) -> str:
        """Deploy-step entry point: publish and return the dist URL."""
        artifacts = BuildArtifacts(
            dist_url=package_info.dist_url,
            tarball_url=package_info.tarball_url,
            integrity_hash=package_info.integrity_hash,
            size_bytes=package_info.size_bytes,
        )
        package = await self.publish_package(
            submission, artifacts, author_id=author_id, quality_score=quality_score,
        )
        return package.dist_url

    async def publish(
        self,
        request: PublishRequest,
        author_id: str = "",
        quality_score: float | None = None,
    ) -> MicroAppPackage:
        """Create the package (first publish) or add a new latest version.

        Raises:
            RegistryError: CONFLICT when first_publish is set for an existing
                name, the version already exists, the package is archived or
                belongs to another author.
        """
        name = request.package_name
        version = PackageVersion(
            package_id="",
            version=request.version,
            changelog=request.changelog,
            is_prerelease="-" in request.version,
            is_latest=True,
            dist_url=request.dist_url,
            dist_tarball_url=request.dist_tarball_url,
            dist_integrity_hash=request.dist_integrity_hash,
            dependencies=request.dependencies,
            peer_dependencies=request.peer_dependencies,
        )

        async with self._locks.hold(name):
            existing = await self._store.get_package_by_name(name)
            if existing is None:
                package = self._new_package(request, author_id, quality_score)
                version.package_id = package.id
                await self._store.create_package(package, version)
                logger.info("Published new package %s@%s", name, request.version)
            else:
                self._check_can_add_version(existing, request, author_id)
                package = self._next_package(existing, request, quality_score)
                version.package_id = package.id
                await self._store.add_version(package, version)
                logger.info(
                    "Published %s@%s (previous latest %s)",
                    name, request.version, existing.version,
                )
            await self._cache.put(name, package)
        return package

    @staticmethod
    def _new_package(
        request: PublishRequest, author_id: str, quality_score: float | None,
    ) -> MicroAppPackage:
        now = _now()
        return MicroAppPackage(
            repository_id=request.repository_id,
            package_name=request.package_name,
            display_name=request.display_name,
            description=request.description,
            version=request.version,
            author_id=author_id,
            package_config=request.package_config,
            manifest=request.manifest,
            dist_url=request.dist_url,
            dist_tarball_url=request.dist_tarball_url,
            dist_integrity_hash=request.dist_integrity_hash,
            dependencies=request.dependencies,
            peer_dependencies=request.peer_dependencies,
            compatible_brands=request.compatible_brands,
            tags=request.tags,
            status="published",
            quality_score=quality_score or 0.0,
            published_at=now,
            created_at=now,
            updated_at=now,
        )

    @staticmethod
    def _check_can_add_version(
        existing: MicroAppPackage, request: PublishRequest, author_id: str,
    ) -> None:
        name = existing.package_name
        if request.first_publish:
            raise RegistryError.conflict(name)
        if existing.status == "archived":
            raise RegistryError(
                RegistryErrorKind.CONFLICT, f"Package {name} is archived", name,
            )
        if existing.author_id and author_id and existing.author_id != author_id:
            raise RegistryError(
                RegistryErrorKind.CONFLICT,
                f"Package {name} belongs to another author",
                name,
            )

    @staticmethod
    def _next_package(
        existing: MicroAppPackage, request: PublishRequest, quality_score: float | None,
    ) -> MicroAppPackage:
        now = _now()
        update = {
            "display_name": request.display_name or existing.display_name,
            "description": request.description,
            "version": request.version,
            "package_config": request.package_config,
            "manifest": request.manifest,
            "dist_url": request.dist_url,
            "dist_tarball_url": request.dist_tarball_url,
            "dist_integrity_hash": request.dist_integrity_hash,
            "dependencies": request.dependencies,
            "peer_dependencies": request.peer_dependencies,
            "compatible_brands": request.compatible_brands,
            "tags": request.tags or existing.tags,
            "published_at": now,
            "updated_at": now,
        }
        if existing.status == "draft":
            update["status"] = "published"
        if quality_score is not None:
            update["quality_score"] = quality_score
        return existing.model_copy(update=update, deep=True)

    # ------------------------------------------------------------------
    # Lifecycle / cache
    # ------------------------------------------------------------------

    async def set_status(self, package_name: str, status: PackageStatus) -> MicroAppPackage:
        """Transition a package (e.g. deprecate or archive it).

        Raises:
            RegistryError: PACKAGE_NOT_FOUND.
        """
        async with self._locks.hold(package_name):
            package = await self._store.get_package_by_name(package_name)
            if package is None:
                raise RegistryError.package_not_found(package_name)
            package.status = status
            package.updated_at = _now()
            await self._store.update_package(package)
            await self._cache.put(package_name, package)
        logger.info("Package %s is now %s", package_name, status)
        return package

    async def clear_cache(self) -> None:
        await self._cache.clear()

    async def get_cache_stats(self) -> CacheStats:
        keys = await self._cache.keys()
        return CacheStats(size=len(keys), keys=keys)
