# src/api/routes.py — v1
"""HTTP routes: package registry and submission intake."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status

from shipyard.api.deps import (
    get_registry,
    get_submissions,
    require_developer,
    require_service_key,
)
from shipyard.registry.models import (
    MicroAppPackage,
    PackageSearchFilters,
    PackageSearchResult,
    PackageVersion,
    PublishRequest,
    SortOrder,
)
from shipyard.registry.service import PackageRegistry
from shipyard.submission.models import SubmissionRequest, SubmissionStatus
from shipyard.submission.service import SubmissionService

logger = logging.getLogger(__name__)

packages_router = APIRouter(prefix="/packages", tags=["packages"])
submissions_router = APIRouter(prefix="/submissions", tags=["submissions"])


def _split(value: str | None) -> list[str]:
    return [v.strip() for v in (value or "").split(",") if v.strip()]


# === PACKAGES ===


@packages_router.get("/search", response_model=PackageSearchResult)
async def search_packages(
    q: str | None = None,
    category: str | None = None,
    brand: str | None = None,
    author: str | None = None,
    template: bool | None = None,
    featured: bool | None = None,
    quality: float | None = Query(default=None, ge=0, le=100),
    license: str | None = None,
    tags: str | None = None,
    sort: SortOrder = "relevance",
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
    registry: PackageRegistry = Depends(get_registry),
) -> PackageSearchResult:
    filters = PackageSearchFilters(
        query=q,
        category=category,
        brand=brand,
        author=author,
        is_template=template,
        is_featured=featured,
        min_quality_score=quality,
        license=_split(license),
        tags=_split(tags),
        sort=sort,
        limit=limit,
        offset=offset,
    )
    return await registry.search_packages(filters)


@packages_router.get("/{name}", response_model=MicroAppPackage)
async def get_package(
    name: str, registry: PackageRegistry = Depends(get_registry),
) -> MicroAppPackage:
    package = await registry.get_package(name)
    if package is None:
        raise HTTPException(status_code=404, detail=f"Package {name} not found")
    return package


@packages_router.get("/{name}/versions", response_model=list[PackageVersion])
async def get_package_versions(
    name: str, registry: PackageRegistry = Depends(get_registry),
) -> list[PackageVersion]:
    if await registry.get_package(name) is None:
        raise HTTPException(status_code=404, detail=f"Package {name} not found")
    return await registry.get_package_versions(name)


@packages_router.get("/{name}/versions/{version}", response_model=PackageVersion)
async def get_package_version(
    name: str, version: str, registry: PackageRegistry = Depends(get_registry),
) -> PackageVersion:
    found = await registry.get_package_version(name, version)
    if found is None:
        raise HTTPException(
            status_code=404, detail=f"Version {version} not found for package {name}",
        )
    return found


@packages_router.post(
    "", response_model=MicroAppPackage, status_code=status.HTTP_201_CREATED,
)
async def publish_package(
    request: PublishRequest,
    developer_id: str = Depends(require_developer),
    registry: PackageRegistry = Depends(get_registry),
) -> MicroAppPackage:
    return await registry.publish(request, author_id=developer_id)


@packages_router.post(
    "/{package_id}/metrics/install", dependencies=[Depends(require_service_key)],
)
async def record_install(
    package_id: str, registry: PackageRegistry = Depends(get_registry),
) -> dict[str, Any]:
    if not await registry.record_install(package_id):
        raise HTTPException(status_code=404, detail=f"Package {package_id} not found")
    return {"success": True}


# === SUBMISSIONS ===


@submissions_router.post("", status_code=status.HTTP_202_ACCEPTED)
async def submit(
    request: SubmissionRequest,
    developer_id: str = Depends(require_developer),
    submissions: SubmissionService = Depends(get_submissions),
) -> dict[str, str]:
    repository_id = await submissions.submit(
        request.submission_data, request.pipeline_template, developer_id,
    )
    return {"repositoryId": repository_id}


@submissions_router.get("/{repository_id}/status", response_model=SubmissionStatus)
async def submission_status(
    repository_id: str,
    submissions: SubmissionService = Depends(get_submissions),
) -> SubmissionStatus:
    found = await submissions.get_status(repository_id)
    if found is None:
        raise HTTPException(status_code=404, detail=f"Submission {repository_id} not found")
    return found


@submissions_router.post("/{repository_id}/cancel")
async def cancel_submission(
    repository_id: str,
    developer_id: str = Depends(require_developer),
    submissions: SubmissionService = Depends(get_submissions),
) -> dict[str, bool]:
    cancelled = submissions.cancel(repository_id, f"Cancelled by {developer_id}")
    if not cancelled:
        raise HTTPException(
            status_code=409, detail=f"Submission {repository_id} is not running",
        )
    return {"cancelled": True}
