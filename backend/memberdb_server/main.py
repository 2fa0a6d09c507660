"""
MemberDB Server - Main entry point.

This module starts the server with all components:
- SQLite entity store (schema created if absent)
- Blob store for attachments (local directory or S3)
- Entity services and login lookup
- aiohttp JSON API

Usage:
    python -m backend.memberdb_server.main

Configuration is entirely via environment variables.
See config.py for all available settings.

Invariants:
    - The schema exists before the HTTP server accepts requests
    - Shutdown stops HTTP first, then closes the blob store and database

How to change safely:
    - Keep startup order: store -> blobs -> services -> HTTP
    - Test shutdown sequence on SIGINT and SIGTERM
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

import json_log_formatter

from .api import HttpServer, create_http_app
from .config import ServerConfig
from .schema import build_registry
from .services import CredentialLookup, build_services
from .store import AttachmentCoordinator, BlobStore, EntityStore, create_blob_store

logger = logging.getLogger(__name__)


def setup_logging(config: ServerConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: Server configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("aiobotocore").setLevel(logging.WARNING)


class Server:
    """MemberDB Server orchestrator.

    Attributes:
        config: Server configuration
        store: SQLite entity store
        blob_store: Attachment blob store
        http_server: aiohttp server

    Example:
        >>> server = Server()
        >>> await server.start()
        >>> # Server is running
        >>> await server.stop()
    """

    def __init__(self, config: ServerConfig | None = None) -> None:
        self.config = config or ServerConfig.from_env()
        self._running = False
        self._shutdown_event = asyncio.Event()

        # Components (initialized in start())
        self.store: EntityStore | None = None
        self.blob_store: BlobStore | None = None
        self.http_server: HttpServer | None = None

    async def start(self) -> None:
        """Start the server and wait for a shutdown request."""
        if self._running:
            logger.warning("Server already running")
            return

        logger.info("Starting MemberDB server")
        self.config.log_config()

        try:
            registry = build_registry()
            logger.info(f"Schema registry frozen, fingerprint: {registry.fingerprint}")

            self.store = EntityStore(
                self.config.storage.database_path,
                wal_mode=self.config.storage.wal_mode,
                busy_timeout_ms=self.config.storage.busy_timeout_ms,
            )
            await self.store.open()
            await self.store.create_schema(registry)

            self.blob_store = create_blob_store(self.config)
            await self.blob_store.open()

            services = build_services(registry, self.store, AttachmentCoordinator(self.blob_store))
            app = create_http_app(
                services,
                CredentialLookup(self.store),
                self.blob_store,
                self.config.http,
            )
            self.http_server = HttpServer(app, self.config.http.host, self.config.http.port)
            await self.http_server.start()

            self._running = True
            logger.info("MemberDB server started successfully")

            await self._shutdown_event.wait()

        except Exception as e:
            logger.error(f"Server startup failed: {e}", exc_info=True)
            await self._close_components()
            raise

    async def stop(self) -> None:
        """Stop the server gracefully."""
        if not self._running:
            return

        logger.info("Stopping MemberDB server")
        await self._close_components()
        self._running = False
        logger.info("MemberDB server stopped")

    async def _close_components(self) -> None:
        if self.http_server:
            await self.http_server.stop()

        if self.blob_store:
            await self.blob_store.close()

        if self.store:
            await self.store.close()

    def request_shutdown(self) -> None:
        """Request graceful shutdown."""
        self._shutdown_event.set()


def main() -> None:
    """Main entry point."""
    try:
        config = ServerConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    server = Server(config)

    def handle_signal(sig: int) -> None:
        logger.info(f"Received signal {sig}, initiating shutdown")
        server.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, handle_signal, sig)

    try:
        loop.run_until_complete(server.start())
    except KeyboardInterrupt:
        pass
    finally:
        loop.run_until_complete(server.stop())
        loop.close()


if __name__ == "__main__":
    main()
