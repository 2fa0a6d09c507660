"""
Blob stores for managed attachments.

A blob store persists attachment bytes and hands back a location string
that the owning row keeps in its attachment column. Two backends:
- LocalBlobStore: files in a directory on disk (the default)
- S3BlobStore: objects in an S3-compatible bucket via aiobotocore

Locations look the same for both backends: "<prefix>/<name>", e.g.
"uploads/picture-1697712345678.jpg", so GET /uploads/<name> can serve
either.

Invariants:
    - store() never overwrites an existing blob; it picks a fresh name
    - Names are plain file names: no separators, no leading dot
    - remove() and serve() only accept locations under the store prefix

How to change safely:
    - Keep location format stable; rows already reference it
    - Callers treat remove() failures as best-effort (see attachments.py)
"""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from aiobotocore.session import get_session
from botocore.exceptions import BotoCoreError, ClientError

from ..config import BlobBackend, S3Config, ServerConfig
from ..errors import BlobNotFound, BlobStoreError

logger = logging.getLogger(__name__)

MAX_NAME_ATTEMPTS = 100


def candidate_name(suggested_name: str, attempt: int) -> str:
    """Name to try on the given attempt; attempt 0 is the suggestion itself.

    Example:
        >>> candidate_name("picture-1697712345678.jpg", 2)
        'picture-1697712345678-2.jpg'
    """
    if attempt == 0:
        return suggested_name
    stem, ext = os.path.splitext(suggested_name)
    return f"{stem}-{attempt}{ext}"


def _check_name(name: str) -> str:
    if not name or name != os.path.basename(name) or name.startswith(".") or "\\" in name:
        raise BlobStoreError(f"Invalid blob name: {name!r}")
    return name


def guess_content_type(location: str) -> str:
    return mimetypes.guess_type(location)[0] or "application/octet-stream"


class BlobStore(ABC):
    """Interface the attachment coordinator and HTTP layer rely on."""

    def __init__(self, prefix: str = "uploads") -> None:
        self.prefix = prefix.strip("/")

    def location_for(self, name: str) -> str:
        return f"{self.prefix}/{_check_name(name)}"

    def name_of(self, location: str) -> str:
        """Extract the blob name from a location under this store's prefix.

        Raises:
            BlobStoreError: If the location is outside the prefix
        """
        head, sep, name = location.partition("/")
        if not sep or head != self.prefix:
            raise BlobStoreError(f"Location outside {self.prefix}/: {location!r}", location)
        return _check_name(name)

    async def open(self) -> None:
        """Acquire backend resources. No-op by default."""

    async def close(self) -> None:
        """Release backend resources. No-op by default."""

    @abstractmethod
    async def store(self, data: bytes, suggested_name: str) -> str:
        """Persist bytes under a fresh name and return the location."""

    @abstractmethod
    async def remove(self, location: str) -> None:
        """Delete the blob at location.

        Raises:
            BlobNotFound: If nothing is stored there
            BlobStoreError: On any other backend failure
        """

    @abstractmethod
    async def serve(self, location: str) -> bytes:
        """Read back the blob at location.

        Raises:
            BlobNotFound: If nothing is stored there
        """


class LocalBlobStore(BlobStore):
    """Blob store backed by a directory on the local filesystem.

    Example:
        >>> blobs = LocalBlobStore("./uploads")
        >>> location = await blobs.store(b"...", "picture-1697712345678.jpg")
        >>> location
        'uploads/picture-1697712345678.jpg'
    """

    def __init__(self, root_dir: str, prefix: str = "uploads") -> None:
        super().__init__(prefix)
        self.root_dir = Path(root_dir)

    def path_for(self, location: str) -> Path:
        return self.root_dir / self.name_of(location)

    async def open(self) -> None:
        self.root_dir.mkdir(parents=True, exist_ok=True)

    async def store(self, data: bytes, suggested_name: str) -> str:
        _check_name(suggested_name)

        def _write() -> str:
            self.root_dir.mkdir(parents=True, exist_ok=True)
            for attempt in range(MAX_NAME_ATTEMPTS):
                name = candidate_name(suggested_name, attempt)
                try:
                    with open(self.root_dir / name, "xb") as fh:
                        fh.write(data)
                    return name
                except FileExistsError:
                    continue
            raise BlobStoreError(f"No free name for {suggested_name!r}")

        try:
            name = await asyncio.get_event_loop().run_in_executor(None, _write)
        except OSError as e:
            raise BlobStoreError(f"Failed to write blob: {e}") from e

        location = self.location_for(name)
        logger.debug("Stored blob", extra={"location": location, "size": len(data)})
        return location

    async def remove(self, location: str) -> None:
        path = self.path_for(location)
        try:
            await asyncio.get_event_loop().run_in_executor(None, path.unlink)
        except FileNotFoundError:
            raise BlobNotFound(location) from None
        except OSError as e:
            raise BlobStoreError(f"Failed to remove blob: {e}", location) from e
        logger.debug("Removed blob", extra={"location": location})

    async def serve(self, location: str) -> bytes:
        path = self.path_for(location)
        try:
            return await asyncio.get_event_loop().run_in_executor(None, path.read_bytes)
        except FileNotFoundError:
            raise BlobNotFound(location) from None
        except OSError as e:
            raise BlobStoreError(f"Failed to read blob: {e}", location) from e


def _is_missing(error: ClientError) -> bool:
    code = str(error.response.get("Error", {}).get("Code", ""))
    return code in ("404", "NoSuchKey", "NotFound")


class S3BlobStore(BlobStore):
    """Blob store backed by an S3 bucket.

    Object keys equal locations, so "uploads/picture-1.jpg" is stored at
    s3://<bucket>/uploads/picture-1.jpg.

    Args:
        s3_config: Bucket, region, endpoint and credentials
        prefix: Key prefix (and location prefix)
        client: Pre-built client, mainly for tests; open() creates one
            when omitted
    """

    def __init__(self, s3_config: S3Config, prefix: str = "uploads", client: Any = None) -> None:
        super().__init__(prefix)
        self.s3_config = s3_config
        self._s3_client = client
        self._s3_ctx: Any = None

    async def open(self) -> None:
        if self._s3_client is not None:
            return

        session = get_session()
        client_kwargs: dict[str, Any] = {"region_name": self.s3_config.region}
        if self.s3_config.endpoint_url:
            client_kwargs["endpoint_url"] = self.s3_config.endpoint_url
        if self.s3_config.access_key_id:
            client_kwargs["aws_access_key_id"] = self.s3_config.access_key_id
            client_kwargs["aws_secret_access_key"] = self.s3_config.secret_access_key

        self._s3_ctx = session.create_client("s3", **client_kwargs)
        self._s3_client = await self._s3_ctx.__aenter__()
        logger.info("Connected blob store", extra={"bucket": self.s3_config.bucket})

    async def close(self) -> None:
        if self._s3_ctx is not None:
            await self._s3_ctx.__aexit__(None, None, None)
            self._s3_ctx = None
        self._s3_client = None

    def _client(self) -> Any:
        if self._s3_client is None:
            raise BlobStoreError("S3 blob store is not open")
        return self._s3_client

    async def _exists(self, key: str) -> bool:
        try:
            await self._client().head_object(Bucket=self.s3_config.bucket, Key=key)
        except ClientError as e:
            if _is_missing(e):
                return False
            raise
        return True

    async def store(self, data: bytes, suggested_name: str) -> str:
        _check_name(suggested_name)
        try:
            for attempt in range(MAX_NAME_ATTEMPTS):
                location = self.location_for(candidate_name(suggested_name, attempt))
                if await self._exists(location):
                    continue
                await self._client().put_object(
                    Bucket=self.s3_config.bucket,
                    Key=location,
                    Body=data,
                    ContentType=guess_content_type(location),
                )
                logger.debug("Stored blob", extra={"location": location, "size": len(data)})
                return location
        except (ClientError, BotoCoreError) as e:
            raise BlobStoreError(f"Failed to upload blob: {e}") from e
        raise BlobStoreError(f"No free name for {suggested_name!r}")

    async def remove(self, location: str) -> None:
        self.name_of(location)
        try:
            await self._client().delete_object(Bucket=self.s3_config.bucket, Key=location)
        except ClientError as e:
            if _is_missing(e):
                raise BlobNotFound(location) from None
            raise BlobStoreError(f"Failed to remove blob: {e}", location) from e
        except BotoCoreError as e:
            raise BlobStoreError(f"Failed to remove blob: {e}", location) from e
        logger.debug("Removed blob", extra={"location": location})

    async def serve(self, location: str) -> bytes:
        self.name_of(location)
        try:
            response = await self._client().get_object(Bucket=self.s3_config.bucket, Key=location)
            async with response["Body"] as stream:
                return await stream.read()
        except ClientError as e:
            if _is_missing(e):
                raise BlobNotFound(location) from None
            raise BlobStoreError(f"Failed to read blob: {e}", location) from e
        except BotoCoreError as e:
            raise BlobStoreError(f"Failed to read blob: {e}", location) from e


def create_blob_store(config: ServerConfig) -> BlobStore:
    """Create the blob store selected by BLOB_BACKEND."""
    if config.blobs.backend == BlobBackend.S3:
        return S3BlobStore(config.s3, prefix=config.blobs.prefix)
    return LocalBlobStore(config.blobs.upload_dir, prefix=config.blobs.prefix)
