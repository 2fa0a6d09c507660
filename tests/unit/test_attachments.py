"""
Unit tests for the attachment coordinator.

Tests cover:
- Blob naming
- Staging uploads for attachment entities
- Best-effort release
"""

import logging
import tempfile

import pytest

from backend.memberdb_server.errors import BlobStoreError, ValidationError
from backend.memberdb_server.schema.entities import Payment, User
from backend.memberdb_server.store.attachments import AttachmentCoordinator, Upload, blob_name
from backend.memberdb_server.store.blobs import LocalBlobStore


class BrokenBlobStore(LocalBlobStore):
    """Local store whose remove() always fails."""

    async def remove(self, location: str) -> None:
        raise BlobStoreError("disk on fire", location)


class TestBlobName:
    """Tests for blob_name."""

    def test_keeps_extension(self):
        assert blob_name("picture", "receipt.jpg", now_ms=1697712345678) == (
            "picture-1697712345678.jpg"
        )

    def test_no_extension(self):
        assert blob_name("picture", "receipt", now_ms=5) == "picture-5"

    def test_client_path_ignored(self):
        assert blob_name("picture", "C:/photos/../me.png", now_ms=5) == "picture-5.png"

    def test_odd_extension_dropped(self):
        assert blob_name("picture", "x.j/pg", now_ms=5) == "picture-5"

    def test_uses_current_time(self):
        name = blob_name("picture", "a.gif")
        stamp = name[len("picture-"):-len(".gif")]
        assert stamp.isdigit()


class TestAttachmentCoordinator:
    """Tests for AttachmentCoordinator."""

    @pytest.fixture
    def upload_dir(self):
        """Create temporary upload directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield tmpdir

    @pytest.fixture
    def blobs(self, upload_dir):
        return LocalBlobStore(upload_dir)

    @pytest.fixture
    def coordinator(self, blobs):
        return AttachmentCoordinator(blobs)

    @pytest.mark.asyncio
    async def test_stage_nothing(self, coordinator):
        assert await coordinator.stage(Payment, None) is None

    @pytest.mark.asyncio
    async def test_stage_upload(self, coordinator, blobs):
        upload = Upload(field_name="picture", filename="receipt.jpg", data=b"img")

        location = await coordinator.stage(Payment, upload)

        assert location.startswith("uploads/picture-")
        assert location.endswith(".jpg")
        assert await blobs.serve(location) == b"img"

    @pytest.mark.asyncio
    async def test_entity_without_attachment_rejects_upload(self, coordinator):
        upload = Upload(field_name="picture", filename="me.jpg", data=b"img")

        with pytest.raises(ValidationError, match="does not accept file uploads"):
            await coordinator.stage(User, upload)

    @pytest.mark.asyncio
    async def test_wrong_field_rejected(self, coordinator):
        upload = Upload(field_name="avatar", filename="me.jpg", data=b"img")

        with pytest.raises(ValidationError, match="expected 'picture'"):
            await coordinator.stage(Payment, upload)

    @pytest.mark.asyncio
    async def test_release_removes_blob(self, coordinator, blobs):
        location = await blobs.store(b"x", "picture-1.jpg")

        assert await coordinator.release(location) is True
        assert not blobs.path_for(location).exists()

    @pytest.mark.asyncio
    async def test_release_nothing(self, coordinator):
        assert await coordinator.release(None) is True

    @pytest.mark.asyncio
    async def test_release_missing_is_logged_not_raised(self, coordinator, caplog):
        """A blob that is already gone is a cleanup failure, not an error."""
        with caplog.at_level(logging.WARNING):
            assert await coordinator.release("uploads/gone.jpg") is False

        assert "Failed to remove attachment uploads/gone.jpg" in caplog.text

    @pytest.mark.asyncio
    async def test_release_failure_never_raises(self, upload_dir):
        coordinator = AttachmentCoordinator(BrokenBlobStore(upload_dir))

        assert await coordinator.release("uploads/picture-1.jpg") is False
