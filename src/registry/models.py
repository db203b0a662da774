# src/registry/models.py — v1
"""Registry data models: packages, versions, search and install contracts."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import Field, field_validator

from shipyard.core.models import WireModel, validate_package_name, validate_version

PackageStatus = Literal["draft", "published", "deprecated", "archived"]
SortOrder = Literal["relevance", "downloads", "rating", "updated", "created"]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> str:
    return str(uuid.uuid4())


# === PACKAGE ===


class PackageConfig(WireModel):
    entry: str = "index.js"
    types: str | None = None


class PlatformMetadata(WireModel):
    """Marketplace-specific manifest section."""

    category: str = ""
    micro_app_type: str = ""
    permissions: list[str] = Field(default_factory=list)
    compatible_brands: list[str] = Field(default_factory=list)


class RepositoryRef(WireModel):
    type: str = "git"
    url: str = ""


class PackageManifest(WireModel):
    name: str
    version: str
    description: str = ""
    keywords: list[str] = Field(default_factory=list)
    license: str = ""
    repository: RepositoryRef | None = None
    dependencies: dict[str, str] = Field(default_factory=dict)
    peer_dependencies: dict[str, str] = Field(default_factory=dict)
    platform: PlatformMetadata = Field(default_factory=PlatformMetadata)


class MicroAppPackage(WireModel):
    """Registered package. package_name is globally unique and immutable."""

    id: str = Field(default_factory=_uuid)
    repository_id: str | None = None
    package_name: str
    display_name: str = ""
    description: str = ""
    version: str
    author_id: str = ""
    package_config: PackageConfig = Field(default_factory=PackageConfig)
    manifest: PackageManifest
    dist_url: str = ""
    dist_tarball_url: str | None = None
    dist_integrity_hash: str | None = None
    dependencies: dict[str, str] = Field(default_factory=dict)
    peer_dependencies: dict[str, str] = Field(default_factory=dict)
    compatible_brands: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    status: PackageStatus = "published"
    is_template: bool = False
    is_featured: bool = False
    quality_score: float = 0.0
    install_count: int = 0
    weekly_downloads: int = 0
    total_downloads: int = 0
    published_at: datetime | None = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    @property
    def category(self) -> str:
        return self.manifest.platform.category

    @property
    def license(self) -> str:
        return self.manifest.license


class PackageVersion(WireModel):
    """Immutable published version. Exactly one per package has is_latest."""

    id: str = Field(default_factory=_uuid)
    package_id: str
    version: str
    changelog: str | None = None
    is_prerelease: bool = False
    is_latest: bool = False
    dist_url: str = ""
    dist_tarball_url: str | None = None
    dist_integrity_hash: str | None = None
    dependencies: dict[str, str] = Field(default_factory=dict)
    peer_dependencies: dict[str, str] = Field(default_factory=dict)
    download_count: int = 0
    published_at: datetime = Field(default_factory=_now)
    created_at: datetime = Field(default_factory=_now)


# === PUBLISH ===


class BuildArtifacts(WireModel):
    """Dist locations of a built package handed to publish."""

    dist_url: str
    tarball_url: str | None = None
    integrity_hash: str | None = None
    size_bytes: int = 0


class PublishRequest(WireModel):
    """Body of POST /packages."""

    repository_id: str | None = None
    package_name: str
    display_name: str
    description: str = ""
    version: str
    package_config: PackageConfig = Field(default_factory=PackageConfig)
    manifest: PackageManifest
    dist_url: str
    dist_tarball_url: str | None = None
    dist_integrity_hash: str | None = None
    dependencies: dict[str, str] = Field(default_factory=dict)
    peer_dependencies: dict[str, str] = Field(default_factory=dict)
    compatible_brands: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    changelog: str | None = None
    first_publish: bool = False

    @field_validator("package_name")
    @classmethod
    def check_package_name(cls, value: str) -> str:
        return validate_package_name(value)

    @field_validator("version")
    @classmethod
    def check_version(cls, value: str) -> str:
        return validate_version(value)


# === SEARCH ===


class PackageSearchFilters(WireModel):
    query: str | None = None
    category: str | None = None
    brand: str | None = None
    author: str | None = None
    is_template: bool | None = None
    is_featured: bool | None = None
    min_quality_score: float | None = None
    license: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    sort: SortOrder = "relevance"
    limit: int = Field(default=20, ge=1, le=100)
    offset: int = Field(default=0, ge=0)


class FacetCount(WireModel):
    name: str
    count: int


class SearchFacets(WireModel):
    categories: list[FacetCount] = Field(default_factory=list)
    licenses: list[FacetCount] = Field(default_factory=list)
    authors: list[FacetCount] = Field(default_factory=list)
    tags: list[FacetCount] = Field(default_factory=list)


class PackageSearchResult(WireModel):
    packages: list[MicroAppPackage] = Field(default_factory=list)
    total_count: int = 0
    facets: SearchFacets = Field(default_factory=SearchFacets)
    suggestions: list[str] = Field(default_factory=list)


# === INSTALL ===


class PackageInstallOptions(WireModel):
    version: str = "latest"
    environment: Literal["development", "staging", "production"] = "production"
    customizations: dict[str, Any] | None = None
    enabled_modules: list[str] | None = None
    configuration: dict[str, Any] | None = None


class ResolvedPackage(WireModel):
    """One node of a resolved install graph."""

    name: str
    version: str
    package_id: str
    dist_url: str = ""
    dist_tarball_url: str | None = None
    dist_integrity_hash: str | None = None


class PackageInstallResult(WireModel):
    success: bool
    package_id: str
    version: str
    install_path: str
    dependencies: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class CacheStats(WireModel):
    size: int
    keys: list[str]
