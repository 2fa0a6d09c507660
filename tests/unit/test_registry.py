"""
Unit tests for schema registry.

Tests cover:
- Entity registration and lookup
- Registry freezing
- Fingerprint generation
- Duplicate detection
"""

import pytest

from backend.memberdb_server.errors import UnknownEntityError
from backend.memberdb_server.schema.entities import ALL_ENTITIES, build_registry
from backend.memberdb_server.schema.registry import (
    DuplicateRegistrationError,
    RegistryFrozenError,
    SchemaRegistry,
)
from backend.memberdb_server.schema.types import EntityDef, EntityKind, column


def contact(route="contacts", table="contact", *columns):
    return EntityDef(
        kind=EntityKind.CONTACT,
        table=table,
        route=route,
        columns=columns or (column("title", "text"),),
    )


class TestSchemaRegistry:
    """Tests for SchemaRegistry."""

    def test_register_entity(self):
        """Can register and look up an entity."""
        registry = SchemaRegistry()
        Contact = contact()

        registry.register(Contact)

        assert registry.get(EntityKind.CONTACT) == Contact
        assert registry.get_by_route("contacts") == Contact

    def test_unknown_kind_raises(self):
        """Looking up an unregistered kind raises UnknownEntityError."""
        registry = SchemaRegistry()

        with pytest.raises(UnknownEntityError):
            registry.get(EntityKind.USER)

    def test_unknown_route_is_none(self):
        """Unknown routes resolve to None."""
        registry = SchemaRegistry()
        assert registry.get_by_route("nope") is None

    def test_duplicate_kind_raises(self):
        """Registering the same kind twice raises error."""
        registry = SchemaRegistry()
        registry.register(contact())

        with pytest.raises(DuplicateRegistrationError, match="already registered"):
            registry.register(contact(route="other", table="other"))

    def test_duplicate_route_raises(self):
        """Registering a taken route raises error."""
        registry = SchemaRegistry()
        registry.register(contact())
        Other = EntityDef(kind=EntityKind.USER, table="user", route="contacts")

        with pytest.raises(DuplicateRegistrationError, match="Route 'contacts'"):
            registry.register(Other)

    def test_freeze_registry(self):
        """Can freeze registry."""
        registry = SchemaRegistry()
        registry.register(contact())

        fingerprint = registry.freeze()

        assert registry.frozen is True
        assert fingerprint.startswith("sha256:")
        assert registry.fingerprint == fingerprint

    def test_freeze_twice_raises(self):
        """Freezing twice raises error."""
        registry = SchemaRegistry()
        registry.freeze()

        with pytest.raises(RegistryFrozenError):
            registry.freeze()

    def test_register_after_freeze_raises(self):
        """Registering after freeze raises error."""
        registry = SchemaRegistry()
        registry.freeze()

        with pytest.raises(RegistryFrozenError):
            registry.register(contact())

    def test_fingerprint_deterministic(self):
        """Same schema produces same fingerprint."""
        assert build_registry().fingerprint == build_registry().fingerprint

    def test_fingerprint_changes_with_schema(self):
        """Different schema produces different fingerprint."""
        registry1 = SchemaRegistry()
        registry2 = SchemaRegistry()

        registry1.register(contact("contacts", "contact", column("title", "text")))
        registry2.register(
            contact("contacts", "contact", column("title", "text"), column("detail", "text"))
        )

        assert registry1.freeze() != registry2.freeze()


class TestBuiltRegistry:
    """Tests for the registry holding the six served entities."""

    def test_all_entities_registered(self):
        """Every kind has a definition and the registry is frozen."""
        registry = build_registry()

        assert registry.frozen is True
        assert {e.kind for e in registry.entities()} == set(EntityKind)
        assert len(list(registry.entities())) == len(ALL_ENTITIES)

    def test_routes(self):
        """Entities are mounted on their plural routes."""
        registry = build_registry()
        routes = sorted(e.route for e in registry.entities())

        assert routes == [
            "contacts",
            "payments",
            "products",
            "promotions",
            "subscriptions",
            "users",
        ]

    def test_ddl_statements(self):
        """One CREATE TABLE IF NOT EXISTS per entity."""
        statements = build_registry().ddl_statements()

        assert len(statements) == 6
        assert all(s.startswith("CREATE TABLE IF NOT EXISTS") for s in statements)

    def test_to_dict(self):
        """Serialized registry lists entities sorted by kind."""
        d = build_registry().to_dict()

        tables = [e["table"] for e in d["entities"]]
        assert tables == sorted(tables)
        payment = next(e for e in d["entities"] if e["table"] == "payment")
        assert payment["attachment"] == "picture"
