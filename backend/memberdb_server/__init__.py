"""
MemberDB Server - JSON over HTTP for a small membership shop.

This package exposes six relational entities (products, users,
subscriptions, payments, promotions, contacts) through one generic,
schema-driven CRUD layer:

    ┌─────────────┐     ┌─────────────┐     ┌─────────────────┐
    │   Client    │────▶│  HTTP API   │────▶│  EntityService  │
    └─────────────┘     │  (aiohttp)  │     │  (per entity)   │
                        └─────────────┘     └────────┬────────┘
                                                     │
                        ┌────────────────────────────┼───────────────┐
                        │                            │               │
                        ▼                            ▼               ▼
                  ┌───────────┐              ┌─────────────┐   ┌───────────┐
                  │  Query    │─────────────▶│ EntityStore │   │Attachment │
                  │  Builder  │              │  (SQLite)   │   │Coordinator│
                  └───────────┘              └─────────────┘   └─────┬─────┘
                                                                     ▼
                                                              ┌────────────┐
                                                              │ BlobStore  │
                                                              │ (disk/S3)  │
                                                              └────────────┘

Invariants:
    - Entity definitions are a closed, frozen set (see schema.entities)
    - SQL text is built only from registry identifiers; values are bound
    - Foreign keys are stored, never enforced
    - A row owns at most one attachment blob; deleting the row releases it

How to change safely:
    - Add columns to an EntityDef and restart (CREATE TABLE IF NOT EXISTS
      does not migrate existing tables)
    - Keep attachment cleanup best-effort; never fail a row operation on it

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
