"""
Parameterized statement builder.

Every function here is pure: it takes an EntityDef plus values and
returns a Statement whose SQL text contains only identifiers taken
from the definition and "?" placeholders. Values travel separately in
Statement.params and are bound positionally by SQLite.

Invariants:
    - No value is ever formatted into SQL text
    - Identifiers are double-quoted and come from the registry only
    - Parameter order follows the entity's column order
    - Identifier tokens are not type-checked; SQLite decides equality
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from difflib import get_close_matches
from typing import Any

from ..errors import UnknownFieldError
from ..schema.types import ID_COLUMN, EntityDef


@dataclass(frozen=True)
class Statement:
    """A SQL statement with its ordered arguments."""

    sql: str
    params: tuple[Any, ...] = ()


def _quote(identifier: str) -> str:
    return f'"{identifier}"'


def _select_list(entity: EntityDef) -> str:
    return ", ".join(_quote(name) for name in entity.get_selected_names())


def _ordered(entity: EntityDef, values: Mapping[str, Any]) -> list[str]:
    """Names present in values, in column order; unknown names raise."""
    known = entity.get_column_names()
    for name in values:
        if name not in known:
            raise UnknownFieldError(name, entity.table, get_close_matches(name, known, n=3))
    return [name for name in known if name in values]


def _check_id(entity_id: Any) -> None:
    if entity_id is None or (isinstance(entity_id, str) and not entity_id.strip()):
        raise ValueError("Identifier must be a non-empty token")


def build_select_all(entity: EntityDef) -> Statement:
    return Statement(
        f"SELECT {_select_list(entity)} FROM {_quote(entity.table)} ORDER BY {_quote(ID_COLUMN)}"
    )


def build_select_by_id(entity: EntityDef, entity_id: Any) -> Statement:
    _check_id(entity_id)
    return Statement(
        f"SELECT {_select_list(entity)} FROM {_quote(entity.table)} "
        f"WHERE {_quote(ID_COLUMN)} = ?",
        (entity_id,),
    )


def build_select_matching(entity: EntityDef, criteria: Mapping[str, Any]) -> Statement:
    """Select rows where every criteria column equals its value.

    Rows come back in the backend's natural order.
    """
    names = _ordered(entity, criteria)
    if not names:
        raise ValueError("At least one criterion is required")
    where = " AND ".join(f"{_quote(name)} = ?" for name in names)
    return Statement(
        f"SELECT {_select_list(entity)} FROM {_quote(entity.table)} WHERE {where}",
        tuple(criteria[name] for name in names),
    )


def build_insert(entity: EntityDef, values: Mapping[str, Any]) -> Statement:
    """Insert only the given columns so backend defaults apply to the rest."""
    names = _ordered(entity, values)
    if not names:
        return Statement(f"INSERT INTO {_quote(entity.table)} DEFAULT VALUES")
    columns = ", ".join(_quote(name) for name in names)
    placeholders = ", ".join("?" for _ in names)
    return Statement(
        f"INSERT INTO {_quote(entity.table)} ({columns}) VALUES ({placeholders})",
        tuple(values[name] for name in names),
    )


def build_update(
    entity: EntityDef,
    entity_id: Any,
    values: Mapping[str, Any],
) -> Statement | None:
    """Set only the given columns on one row.

    Returns:
        The statement, or None when values is empty (nothing to update)
    """
    _check_id(entity_id)
    names = _ordered(entity, values)
    if not names:
        return None
    assignments = ", ".join(f"{_quote(name)} = ?" for name in names)
    return Statement(
        f"UPDATE {_quote(entity.table)} SET {assignments} WHERE {_quote(ID_COLUMN)} = ?",
        (*(values[name] for name in names), entity_id),
    )


def build_delete(entity: EntityDef, entity_id: Any) -> Statement:
    _check_id(entity_id)
    return Statement(
        f"DELETE FROM {_quote(entity.table)} WHERE {_quote(ID_COLUMN)} = ?",
        (entity_id,),
    )
