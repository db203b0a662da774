# tests/unit/registry/test_registry_service.py — v1
"""Tests for registry/service.py — publishing, lookup, lifecycle and cache."""

from __future__ import annotations

import asyncio

import pytest
from pydantic import ValidationError

from shipyard.core.errors import RegistryError, RegistryErrorKind
from shipyard.registry.models import BuildArtifacts
from shipyard.registry.service import request_from_submission


class TestPublish:
    @pytest.mark.asyncio
    async def test_new_package(self, registry, make_request):
        package = await registry.publish(make_request(), author_id="alice", quality_score=88)

        assert package.package_name == "weather-widget"
        assert package.status == "published"
        assert package.author_id == "alice"
        assert package.quality_score == 88
        assert package.published_at is not None
        versions = await registry.get_package_versions("weather-widget")
        assert [(v.version, v.is_latest) for v in versions] == [("1.0.0", True)]

    @pytest.mark.asyncio
    async def test_new_version_becomes_latest(self, registry, make_request):
        await registry.publish(make_request(version="1.0.0"), author_id="alice")
        package = await registry.publish(make_request(version="1.1.0"), author_id="alice")

        assert package.version == "1.1.0"
        latest = await registry.get_package_version("weather-widget", "latest")
        assert latest.version == "1.1.0"
        versions = await registry.get_package_versions("weather-widget")
        assert sum(v.is_latest for v in versions) == 1
        old = await registry.get_package_version("weather-widget", "1.0.0")
        assert old.is_latest is False

    @pytest.mark.asyncio
    async def test_prerelease_flag(self, registry, make_request):
        await registry.publish(make_request(version="2.0.0-beta.1"))
        version = await registry.get_package_version("weather-widget", "2.0.0-beta.1")
        assert version.is_prerelease is True

    @pytest.mark.asyncio
    async def test_duplicate_version_conflicts(self, registry, make_request):
        await registry.publish(make_request())
        with pytest.raises(RegistryError) as exc_info:
            await registry.publish(make_request())
        assert exc_info.value.kind is RegistryErrorKind.CONFLICT
        assert exc_info.value.version == "1.0.0"

    @pytest.mark.asyncio
    async def test_first_publish_of_existing_name_conflicts(self, registry, make_request):
        await registry.publish(make_request())
        with pytest.raises(RegistryError, match="already exists"):
            await registry.publish(make_request(version="2.0.0", first_publish=True))

    @pytest.mark.asyncio
    async def test_archived_package_rejects_versions(self, registry, make_request):
        await registry.publish(make_request())
        await registry.set_status("weather-widget", "archived")
        with pytest.raises(RegistryError, match="archived"):
            await registry.publish(make_request(version="1.0.1"))

    @pytest.mark.asyncio
    async def test_other_author_rejected(self, registry, make_request):
        await registry.publish(make_request(), author_id="alice")
        with pytest.raises(RegistryError, match="another author"):
            await registry.publish(make_request(version="1.0.1"), author_id="mallory")

    @pytest.mark.asyncio
    async def test_anonymous_publish_allowed(self, registry, make_request):
        await registry.publish(make_request(), author_id="alice")
        package = await registry.publish(make_request(version="1.0.1"))
        assert package.author_id == "alice"

    @pytest.mark.asyncio
    async def test_draft_becomes_published(self, registry, make_request):
        await registry.publish(make_request())
        await registry.set_status("weather-widget", "draft")
        package = await registry.publish(make_request(version="1.0.1"))
        assert package.status == "published"

    @pytest.mark.asyncio
    async def test_quality_score_kept_when_not_given(self, registry, make_request):
        await registry.publish(make_request(), quality_score=91)
        package = await registry.publish(make_request(version="1.0.1"))
        assert package.quality_score == 91


class TestConcurrentPublish:
    @pytest.mark.asyncio
    async def test_same_version_one_winner(self, registry, make_request):
        results = await asyncio.gather(
            *(registry.publish(make_request()) for _ in range(5)),
            return_exceptions=True,
        )
        errors = [r for r in results if isinstance(r, RegistryError)]
        assert len(errors) == 4
        assert all(e.kind is RegistryErrorKind.CONFLICT for e in errors)

    @pytest.mark.asyncio
    async def test_distinct_versions_keep_one_latest(self, registry, make_request):
        versions = [f"1.{i}.0" for i in range(6)]
        await asyncio.gather(*(registry.publish(make_request(version=v)) for v in versions))

        stored = await registry.get_package_versions("weather-widget")
        assert sorted(v.version for v in stored) == sorted(versions)
        latest = [v for v in stored if v.is_latest]
        assert len(latest) == 1
        package = await registry.get_package("weather-widget")
        assert package.version == latest[0].version


class TestLookup:
    @pytest.mark.asyncio
    async def test_missing_package(self, registry):
        assert await registry.get_package("nope") is None
        assert await registry.get_package_versions("nope") == []
        assert await registry.get_package_version("nope", "1.0.0") is None

    @pytest.mark.asyncio
    async def test_missing_version(self, registry, make_request):
        await registry.publish(make_request())
        assert await registry.get_package_version("weather-widget", "9.9.9") is None

    @pytest.mark.asyncio
    async def test_star_alias(self, registry, make_request):
        await registry.publish(make_request())
        version = await registry.get_package_version("weather-widget", "*")
        assert version.version == "1.0.0"


class TestLifecycleAndCache:
    @pytest.mark.asyncio
    async def test_set_status_updates_cache(self, registry, make_request):
        await registry.publish(make_request())
        assert (await registry.get_package("weather-widget")).status == "published"
        await registry.set_status("weather-widget", "deprecated")
        assert (await registry.get_package("weather-widget")).status == "deprecated"

    @pytest.mark.asyncio
    async def test_set_status_unknown(self, registry):
        with pytest.raises(RegistryError) as exc_info:
            await registry.set_status("ghost", "archived")
        assert exc_info.value.kind is RegistryErrorKind.PACKAGE_NOT_FOUND

    @pytest.mark.asyncio
    async def test_publish_overwrites_cache(self, registry, make_request):
        await registry.publish(make_request())
        await registry.get_package("weather-widget")
        await registry.publish(make_request(version="1.2.0"))
        assert (await registry.get_package("weather-widget")).version == "1.2.0"

    @pytest.mark.asyncio
    async def test_cache_stats_and_clear(self, registry, make_request):
        await registry.publish(make_request("alpha"))
        await registry.publish(make_request("beta"))
        stats = await registry.get_cache_stats()
        assert stats.size == 2
        assert sorted(stats.keys) == ["alpha", "beta"]

        await registry.clear_cache()
        assert (await registry.get_cache_stats()).size == 0
        assert await registry.get_package("alpha") is not None

    @pytest.mark.asyncio
    async def test_record_install(self, registry, make_request):
        package = await registry.publish(make_request())
        assert await registry.record_install(package.id) is True
        assert await registry.record_install("unknown-id") is False
        stored = await registry.store.get_package_by_id(package.id)
        assert (stored.install_count, stored.total_downloads, stored.weekly_downloads) == (1, 1, 1)


class TestSubmissionPublish:
    def test_request_from_submission(self, sample_form):
        artifacts = BuildArtifacts(
            dist_url="https://cdn.example.com/weather-widget/1.0.0/index.js",
            tarball_url="https://cdn.example.com/weather-widget/1.0.0/package.tgz",
            integrity_hash="sha256-abc",
        )
        request = request_from_submission(sample_form, artifacts, repository_id="repo-9")

        assert request.package_name == "weather-widget"
        assert request.display_name == "Weather Widget"
        assert request.repository_id == "repo-9"
        assert request.package_config.types == "index.d.ts"
        assert request.manifest.keywords == ["utilities"]
        assert request.manifest.platform.permissions == ["geolocation"]
        assert request.manifest.platform.compatible_brands == ["brand-a"]
        assert request.manifest.repository.url == "https://github.com/acme/weather-widget"
        assert request.dist_integrity_hash == "sha256-abc"

    @pytest.mark.asyncio
    async def test_publish_package_first_publish(self, registry, sample_form):
        artifacts = BuildArtifacts(dist_url="https://cdn.example.com/w/index.js")
        await registry.publish_package(sample_form, artifacts, first_publish=True)
        with pytest.raises(RegistryError):
            await registry.publish_package(sample_form, artifacts, first_publish=True)


@pytest.mark.parametrize("version", ["latest", "*", ""])
def test_selector_versions_cannot_be_published(make_request, version):
    with pytest.raises(ValidationError, match="reserved"):
        make_request(version=version)


@pytest.mark.asyncio
async def test_every_published_version_stays_reachable(registry, make_request):
    await registry.publish(make_request(version="1.0.0"))
    await registry.publish(make_request(version="2.0.0"))
    assert (await registry.get_package_version("weather-widget", "1.0.0")).version == "1.0.0"
    assert (await registry.get_package_version("weather-widget", "latest")).version == "2.0.0"
