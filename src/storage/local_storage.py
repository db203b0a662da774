# src/storage/local_storage.py — v1
"""Local filesystem dist storage (default DIST_STORAGE=local)."""

from __future__ import annotations

import shutil
from pathlib import Path

from shipyard.storage.base_artifact_storage import BaseArtifactStorage


class LocalArtifactStorage(BaseArtifactStorage):
    """Store dist artifacts under a root directory.

    URLs default to file:// URIs of the stored files; pass base_url when the
    directory is served over HTTP (e.g. behind a CDN).
    """

    def __init__(self, root: Path | str, base_url: str | None = None) -> None:
        self._root = Path(root).expanduser()
        self._root.mkdir(parents=True, exist_ok=True)
        self._base_url = (base_url or self._root.resolve().as_uri()).rstrip("/")

    @property
    def root(self) -> Path:
        return self._root

    def _resolve(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if self._root.resolve() not in path.parents:
            raise ValueError(f"Key escapes storage root: {key!r}")
        return path

    async def put_bytes(self, key: str, data: bytes) -> str:
        path = self._resolve(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return self.url_for(key)

    async def put_file(self, key: str, path: Path) -> str:
        target = self._resolve(key)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(str(path), str(target))
        return self.url_for(key)

    async def get(self, key: str) -> bytes:
        return self._resolve(key).read_bytes()

    async def exists(self, key: str) -> bool:
        return self._resolve(key).is_file()

    def url_for(self, key: str) -> str:
        return f"{self._base_url}/{key.lstrip('/')}"
