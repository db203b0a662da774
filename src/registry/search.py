# src/registry/search.py — v1
"""Package search: filtering, ranking, facets and pagination.

Runs over the published packages returned by the store. Facets are
computed over every matching package before pagination; packages without
a category, license or author are counted under "unknown" so each
dimension sums to total_count.
"""

from __future__ import annotations

import difflib
from collections import Counter
from typing import Iterable

from shipyard.registry.models import (
    FacetCount,
    MicroAppPackage,
    PackageSearchFilters,
    PackageSearchResult,
    SearchFacets,
)

UNKNOWN = "unknown"


def _searchable_fields(package: MicroAppPackage) -> list[tuple[str, int]]:
    """(text, weight) pairs used for query matching."""
    return [
        (package.package_name, 5),
        (package.display_name, 4),
        (" ".join(package.tags), 3),
        (" ".join(package.manifest.keywords), 2),
        (package.description, 1),
    ]


def query_score(package: MicroAppPackage, query: str) -> int:
    """Weighted count of query terms found in the package; 0 means no match.

    Every term must occur in at least one field.
    """
    terms = query.lower().split()
    if not terms:
        return 0
    fields = [(text.lower(), weight) for text, weight in _searchable_fields(package)]
    score = 0
    for term in terms:
        hits = [weight for text, weight in fields if term in text]
        if not hits:
            return 0
        score += sum(hits)
    return score


def matches(package: MicroAppPackage, filters: PackageSearchFilters) -> bool:
    if package.status != "published":
        return False
    if filters.query and query_score(package, filters.query) == 0:
        return False
    if filters.category and package.category != filters.category:
        return False
    if filters.brand and filters.brand not in package.compatible_brands:
        return False
    if filters.author and package.author_id != filters.author:
        return False
    if filters.is_template is not None and package.is_template != filters.is_template:
        return False
    if filters.is_featured is not None and package.is_featured != filters.is_featured:
        return False
    if (
        filters.min_quality_score is not None
        and package.quality_score < filters.min_quality_score
    ):
        return False
    if filters.license and package.license not in filters.license:
        return False
    if filters.tags and not set(filters.tags) & set(package.tags):
        return False
    return True


def sort_packages(
    packages: list[MicroAppPackage], filters: PackageSearchFilters
) -> list[MicroAppPackage]:
    """Order matches; ties fall back to package name for stable paging."""
    by_name = sorted(packages, key=lambda p: p.package_name)
    if filters.sort == "downloads":
        return sorted(by_name, key=lambda p: p.total_downloads, reverse=True)
    if filters.sort == "updated":
        return sorted(by_name, key=lambda p: p.updated_at, reverse=True)
    if filters.sort == "created":
        return sorted(by_name, key=lambda p: p.created_at, reverse=True)
    if filters.sort == "relevance" and filters.query:
        return sorted(
            by_name,
            key=lambda p: (query_score(p, filters.query or ""), p.quality_score),
            reverse=True,
        )
    # 'rating' and query-less 'relevance': quality score is the relevance proxy
    return sorted(by_name, key=lambda p: p.quality_score, reverse=True)


def _facet(values: Iterable[str]) -> list[FacetCount]:
    counts = Counter(v or UNKNOWN for v in values)
    return [
        FacetCount(name=name, count=count)
        for name, count in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    ]


def compute_facets(packages: list[MicroAppPackage]) -> SearchFacets:
    return SearchFacets(
        categories=_facet(p.category for p in packages),
        licenses=_facet(p.license for p in packages),
        authors=_facet(p.author_id for p in packages),
        tags=_facet(tag for p in packages for tag in p.tags),
    )


def suggest(packages: list[MicroAppPackage], query: str, limit: int = 5) -> list[str]:
    """Close package names for a query that matched nothing."""
    names = [p.package_name for p in packages if p.status == "published"]
    return difflib.get_close_matches(query.lower(), names, n=limit, cutoff=0.5)


def search_packages(
    packages: list[MicroAppPackage], filters: PackageSearchFilters | None = None
) -> PackageSearchResult:
    """Filter, rank, facet and paginate a package list."""
    filters = filters or PackageSearchFilters()
    matching = [p for p in packages if matches(p, filters)]
    ranked = sort_packages(matching, filters)
    page = ranked[filters.offset : filters.offset + filters.limit]
    suggestions = (
        suggest(packages, filters.query) if filters.query and not matching else []
    )
    return PackageSearchResult(
        packages=page,
        total_count=len(matching),
        facets=compute_facets(matching),
        suggestions=suggestions,
    )
