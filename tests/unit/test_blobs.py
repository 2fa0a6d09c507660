"""
Unit tests for attachment blob stores.

Tests cover:
- Local directory store: write, collision bumping, remove, serve
- S3 store against an in-memory fake client
- Location/name validation
"""

import os
import tempfile

import pytest
from botocore.exceptions import ClientError

from backend.memberdb_server.config import BlobBackend, BlobConfig, S3Config, ServerConfig
from backend.memberdb_server.errors import BlobNotFound, BlobStoreError
from backend.memberdb_server.store.blobs import (
    LocalBlobStore,
    S3BlobStore,
    candidate_name,
    create_blob_store,
    guess_content_type,
)


class FakeBody:
    """Stand-in for aiobotocore's streaming body."""

    def __init__(self, data: bytes):
        self._data = data

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def read(self) -> bytes:
        return self._data


class FakeS3Client:
    """In-memory S3 client covering the calls S3BlobStore makes."""

    def __init__(self):
        self.objects: dict[tuple[str, str], bytes] = {}
        self.content_types: dict[str, str] = {}
        self.fail_deletes = False

    @staticmethod
    def _missing(operation: str) -> ClientError:
        return ClientError({"Error": {"Code": "404", "Message": "Not Found"}}, operation)

    async def head_object(self, Bucket, Key):
        if (Bucket, Key) not in self.objects:
            raise self._missing("HeadObject")
        return {}

    async def put_object(self, Bucket, Key, Body, ContentType):
        self.objects[(Bucket, Key)] = Body
        self.content_types[Key] = ContentType
        return {}

    async def delete_object(self, Bucket, Key):
        if self.fail_deletes:
            raise ClientError({"Error": {"Code": "AccessDenied", "Message": "no"}}, "DeleteObject")
        self.objects.pop((Bucket, Key), None)
        return {}

    async def get_object(self, Bucket, Key):
        if (Bucket, Key) not in self.objects:
            raise ClientError({"Error": {"Code": "NoSuchKey", "Message": "x"}}, "GetObject")
        return {"Body": FakeBody(self.objects[(Bucket, Key)])}


class TestNames:
    """Tests for naming helpers."""

    def test_candidate_name(self):
        assert candidate_name("picture-1.jpg", 0) == "picture-1.jpg"
        assert candidate_name("picture-1.jpg", 3) == "picture-1-3.jpg"

    def test_guess_content_type(self):
        assert guess_content_type("uploads/picture-1.png") == "image/png"
        assert guess_content_type("uploads/picture-1") == "application/octet-stream"


class TestLocalBlobStore:
    """Tests for LocalBlobStore."""

    @pytest.fixture
    def upload_dir(self):
        """Create temporary upload directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield tmpdir

    @pytest.fixture
    def blobs(self, upload_dir):
        return LocalBlobStore(upload_dir)

    @pytest.mark.asyncio
    async def test_store_and_serve(self, blobs, upload_dir):
        location = await blobs.store(b"jpeg-bytes", "picture-1697712345678.jpg")

        assert location == "uploads/picture-1697712345678.jpg"
        assert os.path.exists(os.path.join(upload_dir, "picture-1697712345678.jpg"))
        assert await blobs.serve(location) == b"jpeg-bytes"

    @pytest.mark.asyncio
    async def test_store_never_overwrites(self, blobs):
        """A taken name is bumped instead of overwritten."""
        first = await blobs.store(b"one", "picture-1.jpg")
        second = await blobs.store(b"two", "picture-1.jpg")

        assert first == "uploads/picture-1.jpg"
        assert second == "uploads/picture-1-1.jpg"
        assert await blobs.serve(first) == b"one"

    @pytest.mark.asyncio
    async def test_remove(self, blobs):
        location = await blobs.store(b"x", "picture-2.jpg")

        await blobs.remove(location)

        with pytest.raises(BlobNotFound):
            await blobs.serve(location)

    @pytest.mark.asyncio
    async def test_remove_missing(self, blobs):
        with pytest.raises(BlobNotFound):
            await blobs.remove("uploads/nothing.jpg")

    @pytest.mark.asyncio
    async def test_location_outside_prefix(self, blobs):
        with pytest.raises(BlobStoreError, match="outside"):
            await blobs.serve("etc/passwd")

    @pytest.mark.asyncio
    async def test_traversal_rejected(self, blobs):
        with pytest.raises(BlobStoreError):
            await blobs.serve("uploads/../secret")
        with pytest.raises(BlobStoreError):
            await blobs.store(b"x", "../escape.jpg")

    @pytest.mark.asyncio
    async def test_open_creates_dir(self, upload_dir):
        root = os.path.join(upload_dir, "deeper")
        await LocalBlobStore(root).open()
        assert os.path.isdir(root)


class TestS3BlobStore:
    """Tests for S3BlobStore with a fake client."""

    @pytest.fixture
    def client(self):
        return FakeS3Client()

    @pytest.fixture
    def blobs(self, client):
        return S3BlobStore(S3Config(bucket="memberdb"), client=client)

    @pytest.mark.asyncio
    async def test_store_and_serve(self, blobs, client):
        location = await blobs.store(b"png", "picture-5.png")

        assert location == "uploads/picture-5.png"
        assert client.objects[("memberdb", "uploads/picture-5.png")] == b"png"
        assert client.content_types[location] == "image/png"
        assert await blobs.serve(location) == b"png"

    @pytest.mark.asyncio
    async def test_store_bumps_taken_key(self, blobs):
        await blobs.store(b"one", "picture-5.png")
        assert await blobs.store(b"two", "picture-5.png") == "uploads/picture-5-1.png"

    @pytest.mark.asyncio
    async def test_serve_missing(self, blobs):
        with pytest.raises(BlobNotFound):
            await blobs.serve("uploads/missing.png")

    @pytest.mark.asyncio
    async def test_remove_failure_is_blob_store_error(self, blobs, client):
        location = await blobs.store(b"x", "picture-6.png")
        client.fail_deletes = True

        with pytest.raises(BlobStoreError, match="Failed to remove"):
            await blobs.remove(location)

    @pytest.mark.asyncio
    async def test_unopened_store_fails(self):
        blobs = S3BlobStore(S3Config(bucket="memberdb"))

        with pytest.raises(BlobStoreError, match="not open"):
            await blobs.store(b"x", "picture-7.png")


class TestCreateBlobStore:
    """Tests for backend selection."""

    def test_local_default(self):
        store = create_blob_store(ServerConfig())
        assert isinstance(store, LocalBlobStore)
        assert store.prefix == "uploads"

    def test_s3(self):
        config = ServerConfig(
            blobs=BlobConfig(backend=BlobBackend.S3),
            s3=S3Config(bucket="memberdb"),
        )
        assert isinstance(create_blob_store(config), S3BlobStore)
