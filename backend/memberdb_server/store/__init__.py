"""
Store module for MemberDB - statements, execution and attachments.

This module handles:
- Parameterized statement construction (query.py)
- The SQLite connection and statement execution (entity_store.py)
- Attachment blob storage on disk or S3 (blobs.py)
- Keeping attachment columns and blobs in step (attachments.py)

Invariants:
    - Values are always bound, never formatted into SQL
    - One SQLite connection, opened at startup and closed at shutdown
    - Blob cleanup never fails a row operation
"""

from .attachments import AttachmentCoordinator, Upload, blob_name
from .blobs import BlobStore, LocalBlobStore, S3BlobStore, create_blob_store
from .entity_store import EntityStore
from .query import (
    Statement,
    build_delete,
    build_insert,
    build_select_all,
    build_select_by_id,
    build_select_matching,
    build_update,
)

__all__ = [
    "Statement",
    "build_select_all",
    "build_select_by_id",
    "build_select_matching",
    "build_insert",
    "build_update",
    "build_delete",
    "EntityStore",
    "BlobStore",
    "LocalBlobStore",
    "S3BlobStore",
    "create_blob_store",
    "AttachmentCoordinator",
    "Upload",
    "blob_name",
]
