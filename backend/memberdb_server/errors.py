"""
Error types for MemberDB Server.

This module defines every exception raised by the entity access layer:
- MemberDbError: Base exception
- EntityNotFound: No row for the requested identifier
- StoreFailure: The SQLite backend rejected or failed a statement
- AttachmentCleanupFailure: Best-effort blob removal failed
- AuthMismatch: Login email/password pair matched nothing
- ValidationError / UnknownFieldError: Request body rejected
- UnknownEntityError: Registry asked for an unregistered entity
- BlobStoreError / BlobNotFound: Blob store failures

Invariants:
    - All errors inherit from MemberDbError
    - Errors carry a stable code for the HTTP boundary
    - AuthMismatch never reveals which credential was wrong
"""

from __future__ import annotations

from typing import Any


class MemberDbError(Exception):
    """Base exception for all MemberDB errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "MEMBERDB_ERROR"
        self.details = details or {}


class EntityNotFound(MemberDbError):
    """No row exists for the requested identifier.

    This is an outcome, not a fault: it maps to 404 and is never
    logged as an error.
    """

    def __init__(self, table: str, entity_id: Any) -> None:
        super().__init__(
            f"{table} not found",
            code="NOT_FOUND",
            details={"table": table, "id": entity_id},
        )
        self.table = table
        self.entity_id = entity_id


class StoreFailure(MemberDbError):
    """The relational backend rejected or failed a statement.

    Raised when:
    - The statement is malformed
    - The connection is closed or was never opened
    - A constraint is violated
    """

    def __init__(self, message: str, statement: str | None = None) -> None:
        super().__init__(
            message,
            code="STORE_FAILURE",
            details={"statement": statement},
        )
        self.statement = statement


class AttachmentCleanupFailure(MemberDbError):
    """Removing a blob during delete/replace failed.

    Only ever logged; the row-level result stays authoritative.
    """

    def __init__(self, location: str, reason: str) -> None:
        super().__init__(
            f"Failed to remove attachment {location}: {reason}",
            code="ATTACHMENT_CLEANUP_FAILURE",
            details={"location": location},
        )
        self.location = location
        self.reason = reason


class AuthMismatch(MemberDbError):
    """No user matches the given email/password pair."""

    def __init__(self) -> None:
        super().__init__("Invalid email or password", code="AUTH_MISMATCH")


class ValidationError(MemberDbError):
    """Request payload failed validation.

    Raised when:
    - A field is unknown to the entity
    - A field value has the wrong type
    - The identifier or a managed attachment column is set directly
    """

    def __init__(
        self,
        message: str,
        field_name: str | None = None,
        errors: list[str] | None = None,
    ) -> None:
        super().__init__(
            message,
            code="VALIDATION_ERROR",
            details={"field": field_name, "errors": errors or []},
        )
        self.field_name = field_name
        self.errors = errors or []


class UnknownFieldError(ValidationError):
    """A column name is not part of the entity definition.

    Includes suggestions for similar column names.
    """

    def __init__(
        self,
        field_name: str,
        table: str,
        suggestions: list[str] | None = None,
    ) -> None:
        suggestions = suggestions or []
        msg = f"Unknown field '{field_name}' in '{table}'"
        if suggestions:
            msg += f". Did you mean: {', '.join(suggestions)}?"
        super().__init__(msg, field_name=field_name, errors=[msg])
        self.code = "UNKNOWN_FIELD"
        self.table = table
        self.suggestions = suggestions


class UnknownEntityError(MemberDbError):
    """An entity kind or route has no registered definition.

    For kinds this is a programming error; for routes the HTTP layer
    never gets here because only registered routes are mounted.
    """

    def __init__(self, key: Any) -> None:
        super().__init__(f"No entity registered for {key!r}", code="UNKNOWN_ENTITY")
        self.key = key


class BlobStoreError(MemberDbError):
    """A blob store operation failed."""

    def __init__(self, message: str, location: str | None = None) -> None:
        super().__init__(message, code="BLOB_STORE_ERROR", details={"location": location})
        self.location = location


class BlobNotFound(BlobStoreError):
    """No blob exists at the given location."""

    def __init__(self, location: str) -> None:
        super().__init__(f"Blob not found: {location}", location=location)
        self.code = "BLOB_NOT_FOUND"
