"""
Request payload validation and coercion.

Turns an untrusted request body into the typed field set consumed by
the query builder:
- Unknown keys are rejected with suggestions
- The identifier and the managed attachment column cannot be set
- Values are checked (JSON) or converted (form data) per column kind

Invariants:
    - Output keys are always a subset of EntityDef.get_writable_names()
    - None is accepted for every column (all columns are nullable)
    - Validation errors are collected and raised together
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import date, datetime
from difflib import get_close_matches
from typing import Any

from ..errors import UnknownFieldError, ValidationError
from .types import ID_COLUMN, ColumnDef, ColumnKind, EntityDef

SQLITE_INT_MIN = -(2**63)
SQLITE_INT_MAX = 2**63 - 1


def coerce_fields(
    entity: EntityDef,
    payload: Mapping[str, Any],
    *,
    from_form: bool = False,
) -> dict[str, Any]:
    """Validate a request body and return the typed field set.

    Args:
        entity: Entity the body is for
        payload: Decoded JSON object or form fields
        from_form: Values are strings from a form and must be converted

    Returns:
        Column name -> value, in the entity's column order

    Raises:
        UnknownFieldError: If a key is not a column of the entity
        ValidationError: If the id/attachment is set or a value is mistyped
    """
    if ID_COLUMN in payload:
        raise ValidationError(
            "'id' is assigned by the store and cannot be set",
            field_name=ID_COLUMN,
        )
    if entity.attachment and entity.attachment in payload:
        raise ValidationError(
            f"'{entity.attachment}' must be uploaded as a file, not set directly",
            field_name=entity.attachment,
        )

    known = set(entity.get_column_names())
    for name in payload:
        if name not in known:
            suggestions = get_close_matches(name, entity.get_writable_names(), n=3)
            raise UnknownFieldError(name, entity.table, suggestions)

    values: dict[str, Any] = {}
    errors: list[str] = []
    for col in entity.columns:
        if col.name not in payload:
            continue
        raw = payload[col.name]
        try:
            values[col.name] = _convert(col, raw) if from_form else _check(col, raw)
        except ValueError as e:
            errors.append(str(e))

    if errors:
        raise ValidationError(
            f"Validation failed for {entity.table}: {'; '.join(errors)}",
            errors=errors,
        )
    return values


def _check(col: ColumnDef, value: Any) -> Any:
    """Check a JSON value against its column kind."""
    if value is None:
        return None

    if col.kind == ColumnKind.TEXT:
        if not isinstance(value, str):
            raise ValueError(f"Field '{col.name}' must be a string, got {type(value).__name__}")

    elif col.kind == ColumnKind.NUMBER:
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            raise ValueError(f"Field '{col.name}' must be a number, got {type(value).__name__}")
        _check_number_range(col, value)

    elif col.kind in (ColumnKind.INTEGER, ColumnKind.REFERENCE):
        if not isinstance(value, int) or isinstance(value, bool):
            raise ValueError(
                f"Field '{col.name}' must be an integer, got {type(value).__name__}"
            )
        _check_integer_range(col, value)

    elif col.kind == ColumnKind.DATE:
        if not isinstance(value, str) or not _is_iso_date(value):
            raise ValueError(f"Field '{col.name}' must be an ISO-8601 date string")

    return value


def _convert(col: ColumnDef, value: Any) -> Any:
    """Convert a form string to its column kind."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"Field '{col.name}' must be a form value")
    if col.kind == ColumnKind.TEXT:
        return value
    if value == "":
        return None

    if col.kind == ColumnKind.NUMBER:
        try:
            number = float(value)
        except ValueError:
            raise ValueError(f"Field '{col.name}' must be a number, got '{value}'") from None
        return _check_number_range(col, number)

    if col.kind in (ColumnKind.INTEGER, ColumnKind.REFERENCE):
        try:
            integer = int(value)
        except ValueError:
            raise ValueError(f"Field '{col.name}' must be an integer, got '{value}'") from None
        return _check_integer_range(col, integer)

    if not _is_iso_date(value):
        raise ValueError(f"Field '{col.name}' must be an ISO-8601 date string")
    return value


def _check_number_range(col: ColumnDef, value: int | float) -> int | float:
    # NaN/Infinity have no JSON representation
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError(f"Field '{col.name}' must be a finite number")
    if isinstance(value, int):
        _check_integer_range(col, value)
    return value


def _check_integer_range(col: ColumnDef, value: int) -> int:
    if not SQLITE_INT_MIN <= value <= SQLITE_INT_MAX:
        raise ValueError(f"Field '{col.name}' does not fit in a signed 64-bit integer")
    return value


def _is_iso_date(value: str) -> bool:
    # datetime.fromisoformat only accepts "Z" from Python 3.11
    if value[-1:] in ("Z", "z"):
        value = value[:-1] + "+00:00"
    for parse in (date.fromisoformat, datetime.fromisoformat):
        try:
            parse(value)
            return True
        except ValueError:
            continue
    return False
