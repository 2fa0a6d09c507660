"""
Generic CRUD service, one instance per entity kind.

Every entity exposes exactly the same five operations. Table-specific
behaviour comes only from the EntityDef (columns, attachment column).

Row lifecycle:
    absent -> created -> (updated)* -> deleted

Invariants:
    - get/update/delete on an absent id raise EntityNotFound
    - An update without fields or upload issues no SQL and reports
      changed=0 when the row exists
    - An update without upload leaves the attachment column untouched
    - Concurrent updates are last-write-wins (no version check)

How to change safely:
    - Keep blob ordering as documented in store/attachments.py
    - Callers coerce request bodies first (schema.validate.coerce_fields)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from ..errors import EntityNotFound
from ..schema.registry import SchemaRegistry
from ..schema.types import EntityDef, EntityKind
from ..store.attachments import AttachmentCoordinator, Upload
from ..store.entity_store import EntityStore
from ..store.query import (
    build_delete,
    build_insert,
    build_select_all,
    build_select_by_id,
    build_update,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Created:
    """Result of a create: the new id and the stored attachment, if any."""

    id: int
    attachment: str | None = None


@dataclass(frozen=True)
class Updated:
    """Result of an update: rows changed and the new attachment, if replaced."""

    changed: int
    attachment: str | None = None


class EntityService:
    """CRUD operations for one entity.

    Example:
        >>> products = EntityService(Product, store, coordinator)
        >>> created = await products.create({"name": "Gym Pass", "price": 49.99})
        >>> await products.get(created.id)
        {'id': 1, 'package_id': None, 'name': 'Gym Pass', 'price': 49.99, ...}
    """

    def __init__(
        self,
        entity: EntityDef,
        store: EntityStore,
        coordinator: AttachmentCoordinator,
    ) -> None:
        self.entity = entity
        self.store = store
        self.coordinator = coordinator

    @property
    def table(self) -> str:
        return self.entity.table

    def _not_found(self, entity_id: Any) -> EntityNotFound:
        logger.debug("Row not found", extra={"table": self.table, "id": entity_id})
        return EntityNotFound(self.table, entity_id)

    async def list(self) -> list[dict[str, Any]]:
        return await self.store.fetch_all(build_select_all(self.entity))

    async def get(self, entity_id: Any) -> dict[str, Any]:
        row = await self.store.fetch_one(build_select_by_id(self.entity, entity_id))
        if row is None:
            raise self._not_found(entity_id)
        return row

    async def create(
        self,
        fields: Mapping[str, Any],
        upload: Upload | None = None,
    ) -> Created:
        """Insert a row, storing the upload first when one is carried.

        If the insert fails, the freshly stored blob is discarded before
        the error propagates.
        """
        location = await self.coordinator.stage(self.entity, upload)
        values = dict(fields)
        if location is not None:
            values[self.entity.attachment] = location

        try:
            new_id = await self.store.insert(build_insert(self.entity, values))
        except Exception:
            await self.coordinator.discard(location)
            raise

        logger.info("Created row", extra={"table": self.table, "id": new_id})
        return Created(id=new_id, attachment=location)

    async def update(
        self,
        entity_id: Any,
        fields: Mapping[str, Any],
        upload: Upload | None = None,
    ) -> Updated:
        """Apply a partial update, replacing the attachment if one is carried.

        Raises:
            EntityNotFound: If no row has this id
        """
        if not fields and upload is None:
            await self.get(entity_id)
            return Updated(changed=0)

        old_location = None
        if upload is not None:
            row = await self.get(entity_id)
            old_location = row.get(self.entity.attachment) if self.entity.attachment else None

        location = await self.coordinator.stage(self.entity, upload)
        values = dict(fields)
        if location is not None:
            values[self.entity.attachment] = location

        try:
            changed = await self.store.update(build_update(self.entity, entity_id, values))
        except Exception:
            await self.coordinator.discard(location)
            raise

        if changed == 0:
            await self.coordinator.discard(location)
            raise self._not_found(entity_id)

        if location is not None and old_location != location:
            await self.coordinator.release(old_location)

        logger.info(
            "Updated row",
            extra={"table": self.table, "id": entity_id, "fields": sorted(values)},
        )
        return Updated(changed=changed, attachment=location)

    async def delete(self, entity_id: Any) -> None:
        """Delete a row, then release its attachment (best-effort).

        Raises:
            EntityNotFound: If no row has this id
        """
        location = None
        if self.entity.attachment:
            row = await self.get(entity_id)
            location = row.get(self.entity.attachment)

        removed = await self.store.delete(build_delete(self.entity, entity_id))
        if removed == 0:
            raise self._not_found(entity_id)

        await self.coordinator.release(location)
        logger.info("Deleted row", extra={"table": self.table, "id": entity_id})


def build_services(
    registry: SchemaRegistry,
    store: EntityStore,
    coordinator: AttachmentCoordinator,
) -> dict[EntityKind, EntityService]:
    """Create one EntityService per registered entity, keyed by kind."""
    return {
        entity.kind: EntityService(entity, store, coordinator)
        for entity in registry.entities()
    }
