# src/storage/s3_storage.py — v1
"""S3-compatible dist storage (DIST_STORAGE=s3).

Supports AWS S3, MinIO, and other S3-compatible storage.
Requires 'boto3' package: pip install boto3.
"""

from __future__ import annotations

import logging
from pathlib import Path

from shipyard.storage.base_artifact_storage import BaseArtifactStorage

logger = logging.getLogger(__name__)


class S3ArtifactStorage(BaseArtifactStorage):
    """Upload dist artifacts to an S3 bucket."""

    def __init__(
        self,
        bucket: str,
        prefix: str = "packages/",
        region: str | None = None,
        endpoint_url: str | None = None,
        base_url: str | None = None,
    ) -> None:
        """Initialize S3 storage.

        Args:
            bucket: S3 bucket name.
            prefix: Key prefix for all objects (e.g. "packages/").
            region: AWS region (optional, uses boto3 default if not set).
            endpoint_url: Custom endpoint for MinIO/compatible storage.
            base_url: Public URL prefix (CDN); defaults to the bucket URL.
        """
        try:
            import boto3
        except ImportError as e:
            raise ImportError(
                "boto3 package required for S3 storage: pip install boto3"
            ) from e

        kwargs: dict = {}
        if region:
            kwargs["region_name"] = region
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url

        self._s3 = boto3.client("s3", **kwargs)
        self._bucket = bucket
        self._prefix = prefix.strip("/") + "/" if prefix else ""
        if base_url:
            self._base_url = base_url.rstrip("/")
        elif endpoint_url:
            self._base_url = f"{endpoint_url.rstrip('/')}/{bucket}/{self._prefix}".rstrip("/")
        else:
            self._base_url = f"https://{bucket}.s3.amazonaws.com/{self._prefix}".rstrip("/")

    def _full_key(self, key: str) -> str:
        return f"{self._prefix}{key.lstrip('/')}"

    async def put_bytes(self, key: str, data: bytes) -> str:
        full_key = self._full_key(key)
        self._s3.put_object(Bucket=self._bucket, Key=full_key, Body=data)
        logger.debug("S3 upload: s3://%s/%s (%d bytes)", self._bucket, full_key, len(data))
        return self.url_for(key)

    async def put_file(self, key: str, path: Path) -> str:
        full_key = self._full_key(key)
        self._s3.upload_file(str(path), self._bucket, full_key)
        logger.debug("S3 upload: %s -> s3://%s/%s", path, self._bucket, full_key)
        return self.url_for(key)

    async def get(self, key: str) -> bytes:
        response = self._s3.get_object(Bucket=self._bucket, Key=self._full_key(key))
        return response["Body"].read()

    async def exists(self, key: str) -> bool:
        try:
            self._s3.head_object(Bucket=self._bucket, Key=self._full_key(key))
            return True
        except self._s3.exceptions.ClientError:
            return False

    def url_for(self, key: str) -> str:
        return f"{self._base_url}/{key.lstrip('/')}"
