"""
Attachment coordination for entities with a managed attachment column.

The coordinator keeps the attachment column consistent with the blobs
that actually exist, around the row operations the entity service runs:

    create: stage(upload) -> INSERT -> (on failure) discard(staged)
    update: stage(upload) -> UPDATE -> release(old) | discard(staged)
    delete: DELETE -> release(old)

Invariants:
    - A new blob is written before the row references it
    - An old blob is removed only after the row stops referencing it
    - Removal is best-effort: failures are logged as
      AttachmentCleanupFailure and never raised
    - No upload means the attachment column is not touched

How to change safely:
    - Keep release()/discard() non-raising; row results are authoritative
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass

from ..errors import AttachmentCleanupFailure, BlobStoreError, ValidationError
from ..schema.types import EntityDef
from .blobs import BlobStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Upload:
    """A binary payload carried by a create/update request.

    Attributes:
        field_name: Form field the file arrived in
        filename: Client-side file name (only its extension is kept)
        data: File contents
        content_type: Declared MIME type, if any
    """

    field_name: str
    filename: str
    data: bytes
    content_type: str | None = None


def blob_name(field_name: str, filename: str, now_ms: int | None = None) -> str:
    """Build "<field>-<unix ms><ext>" from the upload.

    Example:
        >>> blob_name("picture", "receipt.JPG", now_ms=1697712345678)
        'picture-1697712345678.JPG'
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    ext = os.path.splitext(os.path.basename(filename or ""))[1]
    if not ext[1:].isalnum():
        ext = ""
    return f"{field_name}-{now_ms}{ext}"


class AttachmentCoordinator:
    """Writes, replaces and releases attachment blobs for entity rows.

    Example:
        >>> coordinator = AttachmentCoordinator(LocalBlobStore("uploads"))
        >>> location = await coordinator.stage(Payment, upload)
        >>> # ... INSERT with {"picture": location} ...
    """

    def __init__(self, blob_store: BlobStore) -> None:
        self.blob_store = blob_store

    async def stage(self, entity: EntityDef, upload: Upload | None) -> str | None:
        """Persist an upload for entity and return its location.

        Returns:
            The new location, or None when no upload was carried

        Raises:
            ValidationError: If the entity has no attachment column or the
                file arrived under another field name
            BlobStoreError: If the blob could not be written
        """
        if upload is None:
            return None
        if entity.attachment is None:
            raise ValidationError(
                f"'{entity.table}' does not accept file uploads",
                field_name=upload.field_name,
            )
        if upload.field_name != entity.attachment:
            raise ValidationError(
                f"Unexpected file field '{upload.field_name}', expected '{entity.attachment}'",
                field_name=upload.field_name,
            )

        location = await self.blob_store.store(
            upload.data, blob_name(upload.field_name, upload.filename)
        )
        logger.info(
            "Stored attachment",
            extra={"table": entity.table, "location": location, "size": len(upload.data)},
        )
        return location

    async def release(self, location: str | None) -> bool:
        """Remove a blob the row no longer references (best-effort).

        Returns:
            True if the blob was removed or there was nothing to remove
        """
        if not location:
            return True
        try:
            await self.blob_store.remove(location)
        except BlobStoreError as e:
            failure = AttachmentCleanupFailure(location, e.message)
            logger.warning(failure.message, extra={"location": location, "code": failure.code})
            return False
        logger.debug("Released attachment", extra={"location": location})
        return True

    async def discard(self, location: str | None) -> bool:
        """Remove a staged blob whose row operation did not happen."""
        if location:
            logger.info("Discarding unused attachment", extra={"location": location})
        return await self.release(location)
