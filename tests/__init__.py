"""
MemberDB Test Suite.

This package contains:
- unit/: Unit tests (schema, statements, store, blobs, config)
- integration/: Integration tests (services and HTTP API over SQLite)
"""
