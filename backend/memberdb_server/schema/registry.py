"""
Schema Registry for MemberDB.

The SchemaRegistry is the single authority for entity definitions.
It provides:
- Registration of entity definitions during startup
- Lookup by EntityKind (programming errors raise) or by route
- DDL for every registered table
- Schema fingerprinting, logged at startup

Invariants:
    - Registry is mutable during construction, frozen before serving
    - Once frozen, no new entities can be registered
    - Each EntityKind, table and route is registered at most once
    - Lookup of an unregistered kind raises UnknownEntityError

How to change safely:
    - Register all entities before calling freeze()
    - Pass the registry explicitly; there is no process-global instance

Example:
    >>> registry = SchemaRegistry()
    >>> registry.register(Contact)
    >>> registry.freeze()
    >>> registry.get(EntityKind.CONTACT)
    EntityDef(kind=<EntityKind.CONTACT: 'contact'>, table='contact', ...)
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from collections.abc import Iterator

from ..errors import UnknownEntityError
from .types import EntityDef, EntityKind

logger = logging.getLogger(__name__)


class RegistryFrozenError(Exception):
    """Raised when attempting to modify a frozen registry."""

    pass


class DuplicateRegistrationError(Exception):
    """Raised when an entity kind, table or route is registered twice."""

    pass


class SchemaRegistry:
    """Registry of all entity definitions.

    Thread-safety:
        - Registration is guarded by an internal lock
        - Lookups after freeze are lock-free

    Attributes:
        frozen: Whether the registry is frozen (immutable)
        fingerprint: SHA-256 hash of the schema (computed on freeze)
    """

    def __init__(self) -> None:
        self._entities: dict[EntityKind, EntityDef] = {}
        self._by_route: dict[str, EntityDef] = {}
        self._tables: set[str] = set()
        self._frozen = False
        self._fingerprint: str | None = None
        self._lock = threading.Lock()

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def fingerprint(self) -> str | None:
        return self._fingerprint

    def register(self, entity: EntityDef) -> None:
        """Register an entity definition.

        Raises:
            RegistryFrozenError: If registry is frozen
            DuplicateRegistrationError: If kind, table or route is taken
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError(
                    f"Cannot register entity '{entity.table}': registry is frozen"
                )
            if entity.kind in self._entities:
                raise DuplicateRegistrationError(f"{entity.kind} already registered")
            if entity.table in self._tables:
                raise DuplicateRegistrationError(f"Table '{entity.table}' already registered")
            if entity.route in self._by_route:
                raise DuplicateRegistrationError(f"Route '{entity.route}' already registered")

            self._entities[entity.kind] = entity
            self._by_route[entity.route] = entity
            self._tables.add(entity.table)
            logger.debug(f"Registered entity: {entity.table} (route={entity.route})")

    def get(self, kind: EntityKind) -> EntityDef:
        """Get the definition for an entity kind.

        Raises:
            UnknownEntityError: If the kind was never registered
        """
        try:
            return self._entities[kind]
        except KeyError:
            raise UnknownEntityError(kind) from None

    def get_by_route(self, route: str) -> EntityDef | None:
        """Get the definition mounted at /api/<route>, if any."""
        return self._by_route.get(route)

    def entities(self) -> Iterator[EntityDef]:
        """Iterate over registered entities in registration order."""
        yield from self._entities.values()

    def ddl_statements(self) -> list[str]:
        """CREATE TABLE IF NOT EXISTS statements for every entity."""
        return [entity.ddl() for entity in self._entities.values()]

    def freeze(self) -> str:
        """Freeze the registry and compute its fingerprint.

        Raises:
            RegistryFrozenError: If already frozen
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError("Registry is already frozen")

            self._fingerprint = self._compute_fingerprint()
            self._frozen = True
            logger.info(
                f"Schema registry frozen with {len(self._entities)} entities, "
                f"fingerprint={self._fingerprint}"
            )
            return self._fingerprint

    def _compute_fingerprint(self) -> str:
        canonical = json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))
        return f"sha256:{hashlib.sha256(canonical.encode('utf-8')).hexdigest()}"

    def to_dict(self) -> dict:
        return {
            "entities": [
                self._entities[kind].to_dict()
                for kind in sorted(self._entities, key=lambda k: k.value)
            ]
        }
