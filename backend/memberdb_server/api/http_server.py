"""
HTTP server implementation for MemberDB.

This module exposes every registered entity over a uniform JSON API:

    GET    /api/<route>          list rows
    POST   /api/<route>          create a row
    GET    /api/<route>/{id}     read one row
    PUT    /api/<route>/{id}     partial update
    DELETE /api/<route>/{id}     delete a row
    POST   /api/login            email/password lookup
    GET    /uploads/{name}       serve a stored attachment
    GET    /health               liveness

Create and update accept JSON, multipart/form-data or urlencoded bodies.
A multipart body may carry one file under the entity's attachment column
name ("picture").

Invariants:
    - Handlers never build SQL; they call EntityService/CredentialLookup
    - Domain errors are mapped to status codes in error_middleware only
    - Every response carries CORS headers

How to change safely:
    - Keep response bodies stable; existing web clients read them
    - New routes go through the same two middlewares
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable, Mapping
from functools import partial
from typing import Any

from aiohttp import web

from .._version import __version__
from ..config import HttpConfig
from ..errors import (
    AuthMismatch,
    BlobNotFound,
    BlobStoreError,
    EntityNotFound,
    MemberDbError,
    StoreFailure,
    ValidationError,
)
from ..schema.types import EntityKind
from ..schema.validate import coerce_fields
from ..services.credentials import CredentialLookup
from ..services.entity_service import EntityService
from ..store.attachments import Upload
from ..store.blobs import BlobStore, guess_content_type

logger = logging.getLogger(__name__)

FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")


def create_http_app(
    services: Mapping[EntityKind, EntityService],
    credentials: CredentialLookup,
    blob_store: BlobStore,
    config: HttpConfig | None = None,
) -> web.Application:
    """Create the aiohttp application.

    Args:
        services: One EntityService per entity kind
        credentials: Login lookup
        blob_store: Store attachments are served from
        config: HTTP server configuration

    Returns:
        aiohttp Application instance
    """
    config = config or HttpConfig()
    app = web.Application(client_max_size=config.max_upload_bytes)

    for service in services.values():
        base = f"/api/{service.entity.route}"
        app.router.add_get(base, partial(handle_list, service=service))
        app.router.add_post(base, partial(handle_create, service=service))
        app.router.add_get(base + "/{id}", partial(handle_get, service=service))
        app.router.add_put(base + "/{id}", partial(handle_update, service=service))
        app.router.add_delete(base + "/{id}", partial(handle_delete, service=service))

    app.router.add_post("/api/login", partial(handle_login, credentials=credentials))
    app.router.add_get(
        f"/{blob_store.prefix}/{{name}}", partial(handle_upload, blob_store=blob_store)
    )
    app.router.add_get("/health", partial(handle_health, services=services))

    # Outermost: error responses get CORS headers too
    @web.middleware
    async def cors_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
        if request.method == "OPTIONS":
            response = web.Response()
        else:
            try:
                response = await handler(request)
            except web.HTTPException as e:
                e.headers.update(_cors_headers(request, config))
                raise

        response.headers.update(_cors_headers(request, config))
        return response

    @web.middleware
    async def error_middleware(request: web.Request, handler: Callable) -> web.StreamResponse:
        try:
            return await handler(request)
        except web.HTTPException:
            raise
        except EntityNotFound as e:
            return web.json_response({"message": e.message}, status=404)
        except ValidationError as e:
            return web.json_response(
                {"error": e.message, "error_code": e.code, "errors": e.errors},
                status=400,
            )
        except AuthMismatch as e:
            return web.json_response({"error": e.message}, status=401)
        except StoreFailure as e:
            return web.json_response({"error": e.message}, status=500)
        except MemberDbError as e:
            logger.error(f"HTTP handler error: {e.message}", extra={"code": e.code})
            return web.json_response({"error": e.message, "error_code": e.code}, status=500)
        except Exception as e:
            logger.error(f"HTTP handler error: {e}", exc_info=True)
            return web.json_response(
                {"error": str(e), "error_code": "INTERNAL"},
                status=500,
            )

    app.middlewares.append(cors_middleware)
    app.middlewares.append(error_middleware)

    return app


def _cors_headers(request: web.Request, config: HttpConfig) -> dict[str, str]:
    origin = request.headers.get("Origin", "*")
    headers = {
        "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type",
    }
    if "*" in config.cors_origins or origin in config.cors_origins:
        headers["Access-Control-Allow-Origin"] = origin
    return headers


def _bad_request(message: str) -> web.HTTPBadRequest:
    return web.HTTPBadRequest(
        text=json.dumps({"error": message}),
        content_type="application/json",
    )


async def read_payload(request: web.Request) -> tuple[dict[str, Any], list[Upload], bool]:
    """Decode a request body.

    Returns:
        Tuple of (fields, uploads, from_form). Form values are strings.

    Raises:
        web.HTTPBadRequest: If a JSON body is malformed or not an object
    """
    if request.content_type in FORM_CONTENT_TYPES:
        form = await request.post()
        fields: dict[str, Any] = {}
        uploads: list[Upload] = []
        for name, value in form.items():
            if isinstance(value, web.FileField):
                uploads.append(
                    Upload(
                        field_name=name,
                        filename=value.filename,
                        data=await asyncio.get_event_loop().run_in_executor(
                            None, value.file.read
                        ),
                        content_type=value.content_type,
                    )
                )
            else:
                fields[name] = value
        return fields, uploads, True

    text = await request.text()
    if not text.strip():
        return {}, [], False
    try:
        body = json.loads(text)
    except json.JSONDecodeError:
        raise _bad_request("Invalid JSON body")
    if not isinstance(body, dict):
        raise _bad_request("JSON body must be an object")
    return body, [], False


async def read_entity_body(
    request: web.Request, service: EntityService
) -> tuple[dict[str, Any], Upload | None]:
    """Decode and validate a create/update body for service's entity."""
    payload, uploads, from_form = await read_payload(request)
    if len(uploads) > 1:
        raise ValidationError("Only one file may be uploaded per request")
    fields = coerce_fields(service.entity, payload, from_form=from_form)
    return fields, (uploads[0] if uploads else None)


async def handle_list(request: web.Request, service: EntityService) -> web.Response:
    """Handle GET /api/<route> - All rows."""
    return web.json_response(await service.list())


async def handle_get(request: web.Request, service: EntityService) -> web.Response:
    """Handle GET /api/<route>/{id} - One row by id."""
    return web.json_response(await service.get(request.match_info["id"]))


async def handle_create(request: web.Request, service: EntityService) -> web.Response:
    """Handle POST /api/<route> - Create a row."""
    fields, upload = await read_entity_body(request, service)
    created = await service.create(fields, upload)

    body: dict[str, Any] = {"id": created.id}
    if service.entity.attachment:
        body[service.entity.attachment] = created.attachment
    return web.json_response(body, status=201)


async def handle_update(request: web.Request, service: EntityService) -> web.Response:
    """Handle PUT /api/<route>/{id} - Partial update."""
    fields, upload = await read_entity_body(request, service)
    updated = await service.update(request.match_info["id"], fields, upload)

    body: dict[str, Any] = {
        "message": f"{service.table} updated successfully",
        "changed": updated.changed,
    }
    if updated.attachment is not None:
        body[service.entity.attachment] = updated.attachment
    return web.json_response(body)


async def handle_delete(request: web.Request, service: EntityService) -> web.Response:
    """Handle DELETE /api/<route>/{id} - Delete a row and its attachment."""
    await service.delete(request.match_info["id"])
    return web.json_response({"message": f"{service.table} deleted successfully"})


async def handle_login(request: web.Request, credentials: CredentialLookup) -> web.Response:
    """Handle POST /api/login - Return the matching user without password."""
    payload, _, _ = await read_payload(request)
    email = payload.get("email")
    password = payload.get("password")
    if not isinstance(email, str) or not isinstance(password, str):
        raise AuthMismatch()
    return web.json_response(await credentials.authenticate(email, password))


async def handle_upload(request: web.Request, blob_store: BlobStore) -> web.Response:
    """Handle GET /uploads/{name} - Serve a stored attachment."""
    try:
        location = blob_store.location_for(request.match_info["name"])
        data = await blob_store.serve(location)
    except BlobNotFound:
        return web.json_response({"message": "File not found"}, status=404)
    except BlobStoreError as e:
        if e.location is None:
            # invalid name, nothing could be stored under it
            return web.json_response({"message": "File not found"}, status=404)
        logger.error(f"Failed to serve {e.location}: {e.message}")
        raise
    return web.Response(body=data, content_type=guess_content_type(location))


async def handle_health(
    request: web.Request, services: Mapping[EntityKind, EntityService]
) -> web.Response:
    """Handle GET /health - Liveness."""
    store_open = all(service.store.is_open for service in services.values())
    result = {
        "healthy": store_open,
        "version": __version__,
        "entities": sorted(service.entity.route for service in services.values()),
    }
    return web.json_response(result, status=200 if store_open else 503)


class HttpServer:
    """aiohttp server wrapper for MemberDB.

    Example:
        >>> server = HttpServer(app, port=3000)
        >>> await server.start()
        >>> # Server is now running
        >>> await server.stop()
    """

    def __init__(self, app: web.Application, host: str = "0.0.0.0", port: int = 3000) -> None:
        self.app = app
        self.host = host
        self.port = port
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        if self._runner is not None:
            logger.warning("HTTP server already running")
            return

        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        logger.info(
            f"Server running at http://{self.host}:{self.port}/",
            extra={"host": self.host, "port": self.port},
        )

    async def stop(self) -> None:
        if self._runner is None:
            return
        await self._runner.cleanup()
        self._runner = None
        logger.info("HTTP server stopped")
