"""
API module for MemberDB server.

This module provides the external interface: an aiohttp JSON API over
the entity services, plus attachment serving and a health check.

Invariants:
    - Handlers only talk to the service layer
    - Status codes are assigned in one place (error_middleware)
"""

from .http_server import HttpServer, create_http_app

__all__ = [
    "HttpServer",
    "create_http_app",
]
