# src/storage/base_artifact_storage.py — v1
"""Abstract dist artifact storage (the package distribution endpoint)."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path


class BaseArtifactStorage(ABC):
    """Unified interface for dist artifact storage backends.

    Keys are relative, slash-separated paths such as
    'my-app/1.2.0/package.tgz'. Every stored object has a public URL.
    """

    @abstractmethod
    async def put_bytes(self, key: str, data: bytes) -> str:
        """Store bytes under key and return the public URL."""

    @abstractmethod
    async def put_file(self, key: str, path: Path) -> str:
        """Upload a local file under key and return the public URL."""

    @abstractmethod
    async def get(self, key: str) -> bytes:
        """Read an object back."""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check whether an object exists."""

    @abstractmethod
    def url_for(self, key: str) -> str:
        """Public URL of an object (whether or not it exists yet)."""
