# tests/unit/storage/test_artifact_storage.py — v1
"""Tests for storage/local_storage.py, storage/s3_storage.py and storage_factory."""

from __future__ import annotations

import io
from unittest.mock import MagicMock, patch

import pytest

from shipyard.config.settings import Settings
from shipyard.storage.local_storage import LocalArtifactStorage
from shipyard.storage.s3_storage import S3ArtifactStorage
from shipyard.storage.sqlite_run_store import SqliteRunStore
from shipyard.storage.run_store import MemoryRunStore
from shipyard.storage.storage_factory import create_artifact_storage, create_run_store


@pytest.fixture
def mock_s3_storage():
    """Create S3ArtifactStorage with mocked boto3 client."""
    storage: dict[str, bytes] = {}

    mock_client = MagicMock()

    def put_object(Bucket, Key, Body, **kwargs):
        storage[Key] = Body

    def upload_file(Filename, Bucket, Key):
        with open(Filename, "rb") as fh:
            storage[Key] = fh.read()

    def get_object(Bucket, Key):
        return {"Body": io.BytesIO(storage[Key])}

    def head_object(Bucket, Key):
        if Key not in storage:
            raise mock_client.exceptions.ClientError()

    mock_client.put_object = put_object
    mock_client.upload_file = upload_file
    mock_client.get_object = get_object
    mock_client.head_object = head_object
    mock_client.exceptions = MagicMock()
    mock_client.exceptions.ClientError = type("ClientError", (Exception,), {})

    with patch("shipyard.storage.s3_storage.S3ArtifactStorage.__init__", return_value=None):
        s3 = S3ArtifactStorage.__new__(S3ArtifactStorage)
        s3._s3 = mock_client
        s3._bucket = "test-bucket"
        s3._prefix = "packages/"
        s3._base_url = "https://cdn.example.com/packages"

    return s3, storage


class TestLocalArtifactStorage:
    @pytest.mark.asyncio
    async def test_put_and_get(self, tmp_path):
        store = LocalArtifactStorage(tmp_path / "dist")
        url = await store.put_bytes("app/1.0.0/index.js", b"export {};")
        assert url == (tmp_path / "dist").resolve().as_uri() + "/app/1.0.0/index.js"
        assert await store.get("app/1.0.0/index.js") == b"export {};"
        assert await store.exists("app/1.0.0/index.js")
        assert not await store.exists("app/1.0.0/other.js")

    @pytest.mark.asyncio
    async def test_put_file_with_base_url(self, tmp_path):
        source = tmp_path / "package.tgz"
        source.write_bytes(b"tar")
        store = LocalArtifactStorage(tmp_path / "dist", base_url="https://cdn.example.com/")
        url = await store.put_file("app/1.0.0/package.tgz", source)
        assert url == "https://cdn.example.com/app/1.0.0/package.tgz"
        assert (store.root / "app" / "1.0.0" / "package.tgz").read_bytes() == b"tar"

    @pytest.mark.asyncio
    async def test_rejects_escaping_keys(self, tmp_path):
        store = LocalArtifactStorage(tmp_path / "dist")
        with pytest.raises(ValueError, match="escapes"):
            await store.put_bytes("../outside.js", b"x")


class TestS3ArtifactStorage:
    @pytest.mark.asyncio
    async def test_put_bytes_and_get(self, mock_s3_storage):
        s3, storage = mock_s3_storage
        url = await s3.put_bytes("app/1.0.0/index.js", b"hello")
        assert url == "https://cdn.example.com/packages/app/1.0.0/index.js"
        assert storage["packages/app/1.0.0/index.js"] == b"hello"
        assert await s3.get("app/1.0.0/index.js") == b"hello"

    @pytest.mark.asyncio
    async def test_put_file(self, mock_s3_storage, tmp_path):
        s3, storage = mock_s3_storage
        path = tmp_path / "package.tgz"
        path.write_bytes(b"tarball")
        await s3.put_file("app/1.0.0/package.tgz", path)
        assert storage["packages/app/1.0.0/package.tgz"] == b"tarball"

    @pytest.mark.asyncio
    async def test_exists(self, mock_s3_storage):
        s3, _ = mock_s3_storage
        await s3.put_bytes("present", b"x")
        assert await s3.exists("present") is True
        assert await s3.exists("absent") is False

    def test_default_urls(self):
        with patch("boto3.client") as client:
            s3 = S3ArtifactStorage(bucket="dist", prefix="/pkgs/")
            assert s3.url_for("a/b.js") == "https://dist.s3.amazonaws.com/pkgs/a/b.js"
            minio = S3ArtifactStorage(bucket="dist", endpoint_url="http://minio:9000/")
            assert minio.url_for("a.js") == "http://minio:9000/dist/packages/a.js"
        assert client.call_args.kwargs == {"endpoint_url": "http://minio:9000/"}


class TestStorageFactory:
    def test_local(self, tmp_path):
        settings = Settings(_env_file=None, dist_root=tmp_path / "dist")
        assert isinstance(create_artifact_storage(settings), LocalArtifactStorage)

    def test_s3_requires_bucket(self):
        with pytest.raises(Exception, match="DIST_S3_BUCKET"):
            Settings(_env_file=None, dist_storage="s3")

    def test_s3(self):
        settings = Settings(_env_file=None, dist_storage="s3", dist_s3_bucket="dist")
        with patch("boto3.client"):
            assert isinstance(create_artifact_storage(settings), S3ArtifactStorage)

    def test_run_stores(self, tmp_path):
        assert isinstance(create_run_store(Settings(_env_file=None)), MemoryRunStore)
        store = create_run_store(
            Settings(_env_file=None, run_store_backend="sqlite", run_store_path=tmp_path / "p.db")
        )
        assert isinstance(store, SqliteRunStore)
        store.close()
