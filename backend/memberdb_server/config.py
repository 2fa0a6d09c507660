"""
Configuration management for MemberDB Server.

All configuration is done via environment variables. This module
provides typed, frozen configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that keep existing deployments working
    - Document new variables in the class docstring
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


class BlobBackend(Enum):
    """Supported attachment blob backends."""

    LOCAL = "local"
    S3 = "s3"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class HttpConfig:
    """HTTP server configuration.

    Attributes:
        host: Address to bind
        port: Port to listen on
        cors_origins: Allowed CORS origins ("*" allows any)
        max_upload_bytes: Largest accepted request body (aiohttp client_max_size)
    """

    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: tuple[str, ...] = ("*",)
    max_upload_bytes: int = 10 * 1024 * 1024  # 10MB

    @classmethod
    def from_env(cls) -> HttpConfig:
        origins = os.getenv("CORS_ORIGINS", "*")
        return cls(
            host=os.getenv("HTTP_HOST", "0.0.0.0"),
            port=int(os.getenv("HTTP_PORT", "3000")),
            cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
            max_upload_bytes=int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024))),
        )


@dataclass(frozen=True)
class StorageConfig:
    """SQLite storage configuration.

    Attributes:
        database_path: SQLite database file
        wal_mode: SQLite WAL mode enabled
        busy_timeout_ms: SQLite busy timeout in milliseconds
    """

    database_path: str = "mydatabase.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000

    @classmethod
    def from_env(cls) -> StorageConfig:
        return cls(
            database_path=os.getenv("DATABASE_PATH", "mydatabase.db"),
            wal_mode=_env_bool("SQLITE_WAL_MODE", "true"),
            busy_timeout_ms=int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "5000")),
        )


@dataclass(frozen=True)
class BlobConfig:
    """Attachment storage configuration.

    Attributes:
        backend: Where attachment bytes live
        upload_dir: Directory for the local backend
        prefix: Location prefix, also the URL path uploads are served from
    """

    backend: BlobBackend = BlobBackend.LOCAL
    upload_dir: str = "uploads"
    prefix: str = "uploads"

    @classmethod
    def from_env(cls) -> BlobConfig:
        backend_str = os.getenv("BLOB_BACKEND", "local").lower()
        try:
            backend = BlobBackend(backend_str)
        except ValueError:
            raise ValueError(f"Invalid BLOB_BACKEND '{backend_str}'. Must be one of: local, s3")
        return cls(
            backend=backend,
            upload_dir=os.getenv("UPLOAD_DIR", "uploads"),
            prefix=os.getenv("UPLOAD_PREFIX", "uploads"),
        )


@dataclass(frozen=True)
class S3Config:
    """S3 configuration for the s3 blob backend.

    Attributes:
        bucket: S3 bucket name
        region: AWS region
        endpoint_url: Custom endpoint URL (for MinIO)
        access_key_id: AWS access key ID (optional, uses AWS credential chain)
        secret_access_key: AWS secret access key (optional)
    """

    bucket: str = ""
    region: str = "us-east-1"
    endpoint_url: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = None

    @classmethod
    def from_env(cls) -> S3Config:
        return cls(
            bucket=os.getenv("S3_BUCKET", ""),
            region=os.getenv("S3_REGION", os.getenv("AWS_REGION", "us-east-1")),
            endpoint_url=os.getenv("S3_ENDPOINT"),
            access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
            secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ServerConfig:
    """Complete server configuration.

    Attributes:
        http: HTTP server configuration
        storage: SQLite configuration
        blobs: Attachment storage configuration
        s3: S3 configuration (if blobs.backend is S3)
        observability: Logging configuration
    """

    http: HttpConfig = field(default_factory=HttpConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    blobs: BlobConfig = field(default_factory=BlobConfig)
    s3: S3Config = field(default_factory=S3Config)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is missing or invalid.
        """
        config = cls(
            http=HttpConfig.from_env(),
            storage=StorageConfig.from_env(),
            blobs=BlobConfig.from_env(),
            s3=S3Config.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not 0 < self.http.port < 65536:
            raise ValueError(f"HTTP_PORT must be between 1 and 65535, got {self.http.port}")
        if self.http.max_upload_bytes <= 0:
            raise ValueError("MAX_UPLOAD_BYTES must be positive")
        if not self.storage.database_path:
            raise ValueError("DATABASE_PATH cannot be empty")
        if not self.blobs.prefix.strip("/") or "/" in self.blobs.prefix.strip("/"):
            raise ValueError(f"UPLOAD_PREFIX must be a single path segment, got '{self.blobs.prefix}'")
        if self.blobs.backend == BlobBackend.S3 and not self.s3.bucket:
            raise ValueError("S3_BUCKET is required when BLOB_BACKEND=s3")
        if self.observability.log_format not in ("json", "text"):
            raise ValueError(f"LOG_FORMAT must be json or text, got '{self.observability.log_format}'")

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Server configuration loaded",
            extra={
                "http_bind": f"{self.http.host}:{self.http.port}",
                "database_path": self.storage.database_path,
                "blob_backend": self.blobs.backend.value,
                "upload_dir": self.blobs.upload_dir
                if self.blobs.backend == BlobBackend.LOCAL
                else None,
                "s3_bucket": self.s3.bucket if self.blobs.backend == BlobBackend.S3 else None,
                "log_level": self.observability.log_level,
            },
        )
