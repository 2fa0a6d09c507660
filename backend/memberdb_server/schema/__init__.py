"""
Schema module for MemberDB.

This module provides the static description of every entity:
- Type definitions (EntityKind, ColumnKind, ColumnDef, EntityDef)
- The frozen registry mapping kinds and routes to definitions
- Request body validation/coercion against a definition

Invariants:
    - The set of entities is closed and fixed at startup
    - Table and column identifiers come only from these definitions

How to change safely:
    - Add columns/entities in entities.py only
    - Existing tables are not migrated; new columns need a manual ALTER
"""

from .entities import (
    ALL_ENTITIES,
    Contact,
    Payment,
    Product,
    Promotion,
    Subscription,
    User,
    build_registry,
)
from .registry import DuplicateRegistrationError, RegistryFrozenError, SchemaRegistry
from .types import ID_COLUMN, ColumnDef, ColumnKind, EntityDef, EntityKind, column
from .validate import coerce_fields

__all__ = [
    # Types
    "ID_COLUMN",
    "ColumnDef",
    "ColumnKind",
    "EntityDef",
    "EntityKind",
    "column",
    # Registry
    "SchemaRegistry",
    "RegistryFrozenError",
    "DuplicateRegistrationError",
    "build_registry",
    # Entities
    "ALL_ENTITIES",
    "Product",
    "User",
    "Subscription",
    "Payment",
    "Promotion",
    "Contact",
    # Validation
    "coerce_fields",
]
