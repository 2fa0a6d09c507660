"""
Core type definitions for the MemberDB schema system.

This module defines the building blocks of an entity definition:
- EntityKind: Closed set of entity tags
- ColumnKind: Logical column types
- ColumnDef: One column of a table
- EntityDef: One table-backed entity type

Invariants:
    - Every table has an implicit INTEGER PRIMARY KEY AUTOINCREMENT "id"
    - Column names are unique within an entity and never equal "id"
    - At most one column per entity is a managed attachment
    - Reference columns store identifiers only; targets are documentation

How to change safely:
    - Add new columns at the end of the columns tuple
    - Never change a column's kind; add a new column instead
    - New entity kinds need an EntityKind member and a registered EntityDef

Example:
    >>> from backend.memberdb_server.schema.types import EntityDef, EntityKind, column
    >>> Contact = EntityDef(
    ...     kind=EntityKind.CONTACT,
    ...     table="contact",
    ...     route="contacts",
    ...     columns=(column("title", "text", sql_type="VARCHAR(100)"),),
    ... )
"""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field as dataclass_field
from enum import Enum
from typing import Any

ID_COLUMN = "id"


class EntityKind(Enum):
    """Tags for every entity the service exposes.

    The value is the table name.
    """

    PRODUCT = "product"
    USER = "user"
    SUBSCRIPTION = "subscription"
    PAYMENT = "payment"
    PROMOTION = "promotion"
    CONTACT = "contact"


class ColumnKind(Enum):
    """Logical column types.

    These drive request coercion and the default SQL type.
    """

    TEXT = "text"
    NUMBER = "number"  # REAL
    INTEGER = "integer"
    DATE = "date"  # ISO-8601 date or datetime string
    REFERENCE = "ref"  # Identifier of another row, not enforced

    @classmethod
    def from_str(cls, value: str) -> ColumnKind:
        """Convert string representation to ColumnKind.

        Raises:
            ValueError: If value is not a valid column kind
        """
        for kind in cls:
            if kind.value == value:
                return kind
        valid = [k.value for k in cls]
        raise ValueError(f"Invalid column kind '{value}'. Valid kinds: {valid}")

    @property
    def default_sql_type(self) -> str:
        return _DEFAULT_SQL_TYPES[self]


_DEFAULT_SQL_TYPES = {
    ColumnKind.TEXT: "TEXT",
    ColumnKind.NUMBER: "REAL",
    ColumnKind.INTEGER: "INTEGER",
    ColumnKind.DATE: "DATETIME",
    ColumnKind.REFERENCE: "INTEGER",
}


@dataclass(frozen=True)
class ColumnDef:
    """Definition of a single column.

    Attributes:
        name: Column name as stored in SQLite
        kind: Logical type used for coercion
        sql_type: Declared SQL type (defaults from kind)
        references: Target table for reference columns, if any
        description: Human-readable description
    """

    name: str
    kind: ColumnKind
    sql_type: str = ""
    references: str | None = None
    description: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Column name cannot be empty")
        if self.name == ID_COLUMN:
            raise ValueError("'id' is implicit and cannot be declared")
        if not self.name.replace("_", "").isalnum():
            raise ValueError(f"Column name must be alphanumeric/underscore, got '{self.name}'")
        if self.references is not None and self.kind != ColumnKind.REFERENCE:
            raise ValueError(f"Only reference columns may declare a target ('{self.name}')")
        if not self.sql_type:
            object.__setattr__(self, "sql_type", self.kind.default_sql_type)

    def ddl(self) -> str:
        """Render the column clause of CREATE TABLE."""
        return f'"{self.name}" {self.sql_type}'

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "kind": self.kind.value,
            "sql_type": self.sql_type,
        }
        if self.references:
            result["references"] = self.references
        if self.description:
            result["description"] = self.description
        return result


def column(
    name: str,
    kind: str | ColumnKind,
    *,
    sql_type: str = "",
    references: str | None = None,
    description: str = "",
) -> ColumnDef:
    """Convenience function to create a ColumnDef.

    Example:
        >>> price = column("price", "number", sql_type="REAL")
        >>> owner = column("payment_owner", "ref", references="user")
    """
    if isinstance(kind, str):
        kind = ColumnKind.from_str(kind)
    return ColumnDef(
        name=name,
        kind=kind,
        sql_type=sql_type,
        references=references,
        description=description,
    )


@dataclass(frozen=True)
class EntityDef:
    """Definition of a table-backed entity.

    Attributes:
        kind: Entity tag
        table: SQLite table name
        route: URL segment under /api
        columns: Ordered column definitions (id excluded)
        attachment: Name of the managed attachment column, if any
        description: Human-readable description

    Invariants:
        - Column order is the order of SELECT output and bound parameters
        - The attachment column, when set, is a TEXT column of this entity

    Example:
        >>> Payment = EntityDef(
        ...     kind=EntityKind.PAYMENT,
        ...     table="payment",
        ...     route="payments",
        ...     columns=(
        ...         column("payment_owner", "ref", references="user"),
        ...         column("picture", "text"),
        ...     ),
        ...     attachment="picture",
        ... )
    """

    kind: EntityKind
    table: str
    route: str
    columns: tuple[ColumnDef, ...] = dataclass_field(default_factory=tuple)
    attachment: str | None = None
    description: str = ""

    def __post_init__(self) -> None:
        if not self.table.replace("_", "").isalnum():
            raise ValueError(f"Table name must be alphanumeric/underscore, got '{self.table}'")
        if not self.route:
            raise ValueError(f"Route for '{self.table}' cannot be empty")

        names = [c.name for c in self.columns]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate column name in '{self.table}'")

        if self.attachment is not None:
            col = self.get_column(self.attachment)
            if col is None:
                raise ValueError(
                    f"Attachment column '{self.attachment}' is not a column of '{self.table}'"
                )
            if col.kind != ColumnKind.TEXT:
                raise ValueError(f"Attachment column '{self.attachment}' must be text")

    def get_column(self, name: str) -> ColumnDef | None:
        for c in self.columns:
            if c.name == name:
                return c
        return None

    def get_column_names(self) -> list[str]:
        """Column names in declaration order, id excluded."""
        return [c.name for c in self.columns]

    def get_selected_names(self) -> list[str]:
        """Column names as returned by SELECT: id first."""
        return [ID_COLUMN, *self.get_column_names()]

    def get_writable_names(self) -> list[str]:
        """Columns a request body may set directly."""
        return [c.name for c in self.columns if c.name != self.attachment]

    def get_foreign_keys(self) -> dict[str, str | None]:
        """Reference columns mapped to their (unenforced) targets."""
        return {c.name: c.references for c in self.columns if c.kind == ColumnKind.REFERENCE}

    def ddl(self) -> str:
        """Render CREATE TABLE IF NOT EXISTS for this entity."""
        clauses = [f'"{ID_COLUMN}" INTEGER PRIMARY KEY AUTOINCREMENT']
        clauses.extend(c.ddl() for c in self.columns)
        for name, target in self.get_foreign_keys().items():
            if target:
                clauses.append(f'FOREIGN KEY("{name}") REFERENCES "{target}"("{ID_COLUMN}")')
        body = ",\n    ".join(clauses)
        return f'CREATE TABLE IF NOT EXISTS "{self.table}" (\n    {body}\n)'

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "kind": self.kind.value,
            "table": self.table,
            "route": self.route,
            "columns": [c.to_dict() for c in self.columns],
        }
        if self.attachment:
            result["attachment"] = self.attachment
        if self.description:
            result["description"] = self.description
        return result
