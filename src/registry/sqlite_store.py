# src/registry/sqlite_store.py — v1
"""SQLite-backed package store (REGISTRY_BACKEND=sqlite).

Uses stdlib sqlite3. Each row keeps the full JSON payload next to the
indexed columns. The schema enforces the registry invariants: unique
package names, unique (package_id, version) pairs and at most one latest
version per package (partial unique index).
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from shipyard.core.errors import RegistryError
from shipyard.registry.base_store import BasePackageStore
from shipyard.registry.models import MicroAppPackage, PackageStatus, PackageVersion

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS micro_app_packages (
    id TEXT PRIMARY KEY,
    package_name TEXT NOT NULL UNIQUE,
    status TEXT NOT NULL,
    total_downloads INTEGER NOT NULL DEFAULT 0,
    weekly_downloads INTEGER NOT NULL DEFAULT 0,
    install_count INTEGER NOT NULL DEFAULT 0,
    data TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS package_versions (
    id TEXT PRIMARY KEY,
    package_id TEXT NOT NULL REFERENCES micro_app_packages(id),
    version TEXT NOT NULL,
    is_latest INTEGER NOT NULL DEFAULT 0,
    download_count INTEGER NOT NULL DEFAULT 0,
    published_at TEXT NOT NULL,
    data TEXT NOT NULL,
    UNIQUE (package_id, version)
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_versions_one_latest
    ON package_versions(package_id) WHERE is_latest = 1;
"""

_PACKAGE_COLUMNS = "data, total_downloads, weekly_downloads, install_count"
_VERSION_COLUMNS = "data, is_latest, download_count"


def _iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat()


class SqlitePackageStore(BasePackageStore):
    """Durable package store for single-instance deployments."""

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = Path(db_path).expanduser()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)

    # --- Reads ---

    async def get_package_by_name(self, package_name: str) -> MicroAppPackage | None:
        row = self._conn.execute(
            f"SELECT {_PACKAGE_COLUMNS} FROM micro_app_packages WHERE package_name = ?",
            (package_name,),
        ).fetchone()
        return _package_from_row(row) if row else None

    async def get_package_by_id(self, package_id: str) -> MicroAppPackage | None:
        row = self._conn.execute(
            f"SELECT {_PACKAGE_COLUMNS} FROM micro_app_packages WHERE id = ?",
            (package_id,),
        ).fetchone()
        return _package_from_row(row) if row else None

    async def list_packages(self, status: PackageStatus | None = None) -> list[MicroAppPackage]:
        if status is None:
            rows = self._conn.execute(
                f"SELECT {_PACKAGE_COLUMNS} FROM micro_app_packages"
            ).fetchall()
        else:
            rows = self._conn.execute(
                f"SELECT {_PACKAGE_COLUMNS} FROM micro_app_packages WHERE status = ?",
                (status,),
            ).fetchall()
        return [_package_from_row(r) for r in rows]

    async def list_versions(self, package_id: str) -> list[PackageVersion]:
        rows = self._conn.execute(
            f"""SELECT {_VERSION_COLUMNS} FROM package_versions
                WHERE package_id = ? ORDER BY published_at DESC, rowid DESC""",
            (package_id,),
        ).fetchall()
        return [_version_from_row(r) for r in rows]

    async def get_version(self, package_id: str, version: str) -> PackageVersion | None:
        row = self._conn.execute(
            f"SELECT {_VERSION_COLUMNS} FROM package_versions WHERE package_id = ? AND version = ?",
            (package_id, version),
        ).fetchone()
        return _version_from_row(row) if row else None

    async def get_latest_version(self, package_id: str) -> PackageVersion | None:
        row = self._conn.execute(
            f"SELECT {_VERSION_COLUMNS} FROM package_versions WHERE package_id = ? AND is_latest = 1",
            (package_id,),
        ).fetchone()
        return _version_from_row(row) if row else None

    # --- Writes ---

    async def create_package(self, package: MicroAppPackage, version: PackageVersion) -> None:
        try:
            with self._conn:
                self._insert_package(package)
                self._insert_version(version, is_latest=True)
        except sqlite3.IntegrityError as e:
            raise RegistryError.conflict(package.package_name) from e

    async def add_version(self, package: MicroAppPackage, version: PackageVersion) -> None:
        try:
            with self._conn:
                self._conn.execute(
                    "UPDATE package_versions SET is_latest = 0 WHERE package_id = ? AND is_latest = 1",
                    (package.id,),
                )
                self._insert_version(version, is_latest=True)
                self._replace_package(package)
        except sqlite3.IntegrityError as e:
            raise RegistryError.conflict(package.package_name, version.version) from e

    async def update_package(self, package: MicroAppPackage) -> None:
        with self._conn:
            self._replace_package(package)

    async def increment_install_metrics(self, package_id: str) -> bool:
        with self._conn:
            cursor = self._conn.execute(
                """UPDATE micro_app_packages
                   SET total_downloads = total_downloads + 1,
                       weekly_downloads = weekly_downloads + 1,
                       install_count = install_count + 1,
                       updated_at = ?
                   WHERE id = ?""",
                (_iso(datetime.now(timezone.utc)), package_id),
            )
        return cursor.rowcount > 0

    async def increment_version_downloads(self, package_id: str, version: str) -> None:
        with self._conn:
            self._conn.execute(
                """UPDATE package_versions SET download_count = download_count + 1
                   WHERE package_id = ? AND version = ?""",
                (package_id, version),
            )

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    # --- Helpers ---

    def _insert_package(self, package: MicroAppPackage) -> None:
        self._conn.execute(
            """INSERT INTO micro_app_packages
               (id, package_name, status, total_downloads, weekly_downloads,
                install_count, data, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                package.id,
                package.package_name,
                package.status,
                package.total_downloads,
                package.weekly_downloads,
                package.install_count,
                package.model_dump_json(),
                _iso(package.updated_at),
            ),
        )

    def _replace_package(self, package: MicroAppPackage) -> None:
        # Counters are owned by the columns; keep them out of the update.
        self._conn.execute(
            """UPDATE micro_app_packages SET status = ?, data = ?, updated_at = ?
               WHERE id = ?""",
            (package.status, package.model_dump_json(), _iso(package.updated_at), package.id),
        )

    def _insert_version(self, version: PackageVersion, is_latest: bool) -> None:
        self._conn.execute(
            """INSERT INTO package_versions
               (id, package_id, version, is_latest, download_count, published_at, data)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                version.id,
                version.package_id,
                version.version,
                int(is_latest),
                version.download_count,
                _iso(version.published_at),
                version.model_dump_json(),
            ),
        )


def _package_from_row(row: tuple) -> MicroAppPackage:
    data, total, weekly, installs = row
    package = MicroAppPackage.model_validate_json(data)
    package.total_downloads = total
    package.weekly_downloads = weekly
    package.install_count = installs
    return package


def _version_from_row(row: tuple) -> PackageVersion:
    data, is_latest, downloads = row
    version = PackageVersion.model_validate_json(data)
    version.is_latest = bool(is_latest)
    version.download_count = downloads
    return version
