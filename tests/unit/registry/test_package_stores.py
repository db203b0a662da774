# tests/unit/registry/test_package_stores.py — v1
"""Tests for the memory and SQLite package stores and the store factory."""

from __future__ import annotations

import sqlite3

import pytest

from shipyard.config.settings import Settings
from shipyard.core.errors import RegistryError, RegistryErrorKind
from shipyard.registry.memory_store import MemoryPackageStore
from shipyard.registry.models import MicroAppPackage, PackageManifest, PackageVersion
from shipyard.registry.service import PackageRegistry
from shipyard.registry.sqlite_store import SqlitePackageStore
from shipyard.registry.store_factory import create_package_store, create_registry


def _package(name: str = "weather-widget", version: str = "1.0.0") -> MicroAppPackage:
    return MicroAppPackage(
        package_name=name,
        version=version,
        manifest=PackageManifest(name=name, version=version),
    )


def _version(package: MicroAppPackage, version: str) -> PackageVersion:
    return PackageVersion(package_id=package.id, version=version, is_latest=True)


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        yield MemoryPackageStore()
    else:
        sqlite_store = SqlitePackageStore(tmp_path / "registry.db")
        yield sqlite_store
        sqlite_store.close()


class TestPackageStores:
    @pytest.mark.asyncio
    async def test_create_and_read(self, store):
        package = _package()
        await store.create_package(package, _version(package, "1.0.0"))

        by_name = await store.get_package_by_name("weather-widget")
        by_id = await store.get_package_by_id(package.id)
        assert by_name.id == by_id.id == package.id
        latest = await store.get_latest_version(package.id)
        assert latest.version == "1.0.0"
        assert latest.is_latest is True

    @pytest.mark.asyncio
    async def test_duplicate_name(self, store):
        first = _package()
        await store.create_package(first, _version(first, "1.0.0"))
        second = _package()
        with pytest.raises(RegistryError) as exc_info:
            await store.create_package(second, _version(second, "1.0.0"))
        assert exc_info.value.kind is RegistryErrorKind.CONFLICT

    @pytest.mark.asyncio
    async def test_add_version_moves_latest(self, store):
        package = _package()
        await store.create_package(package, _version(package, "1.0.0"))
        package.version = "1.1.0"
        await store.add_version(package, _version(package, "1.1.0"))

        versions = await store.list_versions(package.id)
        assert [v.version for v in versions] == ["1.1.0", "1.0.0"]
        assert [v.is_latest for v in versions] == [True, False]
        assert (await store.get_package_by_id(package.id)).version == "1.1.0"

    @pytest.mark.asyncio
    async def test_duplicate_version_leaves_latest(self, store):
        package = _package()
        await store.create_package(package, _version(package, "1.0.0"))
        with pytest.raises(RegistryError):
            await store.add_version(package, _version(package, "1.0.0"))
        latest = await store.get_latest_version(package.id)
        assert latest.version == "1.0.0"

    @pytest.mark.asyncio
    async def test_list_by_status(self, store):
        a, b = _package("a"), _package("b")
        await store.create_package(a, _version(a, "1.0.0"))
        await store.create_package(b, _version(b, "1.0.0"))
        b.status = "deprecated"
        await store.update_package(b)

        assert [p.package_name for p in await store.list_packages(status="published")] == ["a"]
        assert len(await store.list_packages()) == 2

    @pytest.mark.asyncio
    async def test_counters(self, store):
        package = _package()
        await store.create_package(package, _version(package, "1.0.0"))
        assert await store.increment_install_metrics(package.id) is True
        assert await store.increment_install_metrics(package.id) is True
        assert await store.increment_install_metrics("missing") is False
        await store.increment_version_downloads(package.id, "1.0.0")

        stored = await store.get_package_by_id(package.id)
        assert (stored.install_count, stored.total_downloads, stored.weekly_downloads) == (2, 2, 2)
        assert (await store.get_version(package.id, "1.0.0")).download_count == 1

    @pytest.mark.asyncio
    async def test_update_keeps_counters(self, store):
        package = _package()
        await store.create_package(package, _version(package, "1.0.0"))
        await store.increment_install_metrics(package.id)
        stale = package.model_copy(update={"description": "edited"})
        await store.update_package(stale)
        stored = await store.get_package_by_id(package.id)
        assert stored.description == "edited"
        if isinstance(store, SqlitePackageStore):
            assert stored.install_count == 1


class TestSqliteSchema:
    def test_one_latest_per_package(self, tmp_path):
        store = SqlitePackageStore(tmp_path / "registry.db")
        conn = store._conn
        conn.execute(
            "INSERT INTO package_versions (id, package_id, version, is_latest, published_at, data) "
            "VALUES ('v1', 'p1', '1.0.0', 1, '2024-01-01', '{}')"
        )
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute(
                "INSERT INTO package_versions (id, package_id, version, is_latest, published_at, data) "
                "VALUES ('v2', 'p1', '1.1.0', 1, '2024-01-02', '{}')"
            )
        store.close()

    @pytest.mark.asyncio
    async def test_persists_across_connections(self, tmp_path):
        path = tmp_path / "registry.db"
        first = SqlitePackageStore(path)
        package = _package()
        await first.create_package(package, _version(package, "1.0.0"))
        first.close()

        second = SqlitePackageStore(path)
        assert (await second.get_package_by_name("weather-widget")).id == package.id
        second.close()


class TestStoreFactory:
    def test_memory(self):
        store = create_package_store(Settings(_env_file=None, registry_backend="memory"))
        assert isinstance(store, MemoryPackageStore)

    def test_sqlite(self, tmp_path):
        settings = Settings(
            _env_file=None, registry_backend="sqlite", registry_db_path=tmp_path / "r.db"
        )
        store = create_package_store(settings)
        assert isinstance(store, SqlitePackageStore)
        store.close()

    def test_create_registry(self, tmp_path):
        registry = create_registry(Settings(_env_file=None, install_root=tmp_path / "i"))
        assert isinstance(registry, PackageRegistry)
