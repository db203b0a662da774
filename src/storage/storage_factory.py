# src/storage/storage_factory.py — v1
"""Factories: dist artifact storage and pipeline run store from settings."""

from __future__ import annotations

from shipyard.config.settings import Settings
from shipyard.storage.base_artifact_storage import BaseArtifactStorage
from shipyard.storage.local_storage import LocalArtifactStorage
from shipyard.storage.run_store import BaseRunStore, MemoryRunStore


def create_artifact_storage(settings: Settings) -> BaseArtifactStorage:
    """Create the dist storage backend selected by DIST_STORAGE.

    Raises:
        ValueError: If the backend is not supported.
    """
    if settings.dist_storage == "local":
        return LocalArtifactStorage(
            root=settings.dist_root,
            base_url=settings.dist_base_url or None,
        )

    if settings.dist_storage == "s3":
        from shipyard.storage.s3_storage import S3ArtifactStorage

        return S3ArtifactStorage(
            bucket=settings.dist_s3_bucket,
            prefix=settings.dist_s3_prefix,
            region=settings.dist_s3_region or None,
            endpoint_url=settings.dist_s3_endpoint_url or None,
            base_url=settings.dist_base_url or None,
        )

    raise ValueError(f"Unsupported dist storage: {settings.dist_storage!r}")


def create_run_store(settings: Settings) -> BaseRunStore:
    """Create the pipeline run store selected by RUN_STORE_BACKEND."""
    if settings.run_store_backend == "memory":
        return MemoryRunStore()

    if settings.run_store_backend == "sqlite":
        from shipyard.storage.sqlite_run_store import SqliteRunStore

        return SqliteRunStore(db_path=settings.run_store_path)

    raise ValueError(f"Unsupported run store: {settings.run_store_backend!r}")
