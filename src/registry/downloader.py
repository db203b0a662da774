# src/registry/downloader.py — v1
"""Download resolved packages into the local install root.

Dist artifacts are fetched over HTTP(S) with httpx, or read directly for
file:// URLs (local dist storage). Tarballs are integrity-checked and
unpacked to <install_root>/<name>/<version>; other artifacts are stored
as a single file in that directory.
"""

from __future__ import annotations

import io
import json
import logging
import shutil
import tarfile
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Any
from urllib.parse import unquote, urlsplit

import httpx

from shipyard.builder.package_builder import integrity_of_bytes
from shipyard.core.errors import IntegrityError, ShipyardError
from shipyard.registry.models import PackageInstallOptions, ResolvedPackage

logger = logging.getLogger(__name__)

INSTALL_MANIFEST = ".shipyard-install.json"
_TARBALL_SUFFIXES = (".tgz", ".tar.gz")


class DownloadError(ShipyardError):
    """A dist artifact could not be fetched or unpacked."""


def _safe_members(tar: tarfile.TarFile) -> list[tarfile.TarInfo]:
    members = []
    for member in tar.getmembers():
        path = PurePosixPath(member.name)
        if path.is_absolute() or ".." in path.parts:
            raise DownloadError(f"Unsafe path in tarball: {member.name}")
        if member.isfile() or member.isdir():
            members.append(member)
    return members


class PackageDownloader:
    """Fetch, verify and unpack dist artifacts.

    Args:
        install_root: Directory receiving installed packages.
        timeout_s: HTTP timeout per download.
        verify_integrity: Compare the sha256 SRI hash when one is published.
        transport: Optional httpx transport (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        install_root: Path | str,
        timeout_s: float = 30.0,
        verify_integrity: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._root = Path(install_root).expanduser()
        self._timeout_s = timeout_s
        self._verify = verify_integrity
        self._transport = transport

    @property
    def install_root(self) -> Path:
        return self._root

    def install_path(self, name: str, version: str) -> Path:
        """<install_root>/<name>/<version>; DownloadError if it leaves the root."""
        root = self._root.resolve()
        path = (root / name / version).resolve()
        if root not in path.parents:
            raise DownloadError(f"Install path escapes install root: {name}@{version}")
        return path

    async def download(self, package: ResolvedPackage) -> Path:
        """Fetch and unpack one package; return its install directory.

        Raises:
            IntegrityError: If the artifact does not match its hash.
            DownloadError: If fetching or unpacking fails.
        """
        url = package.dist_tarball_url or package.dist_url
        if not url:
            raise DownloadError(f"No dist URL for {package.name}@{package.version}")

        data = await self._fetch(url)
        if self._verify and package.dist_integrity_hash and package.dist_tarball_url:
            actual = integrity_of_bytes(data)
            if actual != package.dist_integrity_hash:
                raise IntegrityError(url, package.dist_integrity_hash, actual)

        target = self.install_path(package.name, package.version)
        staging = target.with_name(target.name + ".partial")
        if staging.exists():
            shutil.rmtree(staging)
        staging.mkdir(parents=True)
        try:
            if urlsplit(url).path.endswith(_TARBALL_SUFFIXES):
                self._unpack(data, staging)
            else:
                filename = PurePosixPath(urlsplit(url).path).name or "index.js"
                (staging / filename).write_bytes(data)
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise

        if target.exists():
            shutil.rmtree(target)
        staging.rename(target)
        logger.info("Installed %s@%s into %s", package.name, package.version, target)
        return target

    def write_install_manifest(
        self, install_path: Path, package: ResolvedPackage, options: PackageInstallOptions,
    ) -> Path:
        """Record customizations and enabled modules next to the installed files."""
        manifest: dict[str, Any] = {
            "package": package.name,
            "version": package.version,
            "environment": options.environment,
            "customizations": options.customizations or {},
            "enabledModules": options.enabled_modules,
            "configuration": options.configuration or {},
            "installedAt": datetime.now(timezone.utc).isoformat(),
        }
        path = install_path / INSTALL_MANIFEST
        path.write_text(json.dumps(manifest, indent=2), encoding="utf-8")
        return path

    async def _fetch(self, url: str) -> bytes:
        parts = urlsplit(url)
        if parts.scheme == "file":
            try:
                return Path(unquote(parts.path)).read_bytes()
            except OSError as e:
                raise DownloadError(f"Cannot read {url}: {e}") from e
        if parts.scheme not in ("http", "https"):
            raise DownloadError(f"Unsupported dist URL scheme: {url}")
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout_s, transport=self._transport, follow_redirects=True,
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
                return response.content
        except httpx.HTTPError as e:
            raise DownloadError(f"Download of {url} failed: {e}") from e

    @staticmethod
    def _unpack(data: bytes, destination: Path) -> None:
        try:
            with tarfile.open(fileobj=io.BytesIO(data), mode="r:gz") as tar:
                members = _safe_members(tar)
                if hasattr(tarfile, "data_filter"):
                    tar.extractall(destination, members=members, filter="data")
                else:
                    tar.extractall(destination, members=members)
        except tarfile.TarError as e:
            raise DownloadError(f"Corrupt tarball: {e}") from e

        # npm-style tarballs keep everything under package/
        inner = destination / "package"
        if inner.is_dir():
            for child in inner.iterdir():
                child.rename(destination / child.name)
            inner.rmdir()
