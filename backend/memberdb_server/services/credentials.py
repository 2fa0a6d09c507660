"""
Login lookup against the user table.

Invariants:
    - Email and password are compared exactly (no normalization, no hashing)
    - The password column never leaves this module
    - A mismatch never says which of the two inputs was wrong
"""

from __future__ import annotations

import logging
from typing import Any

from ..errors import AuthMismatch
from ..schema.entities import User
from ..schema.types import EntityDef
from ..store.entity_store import EntityStore
from ..store.query import build_select_matching

logger = logging.getLogger(__name__)

PASSWORD_COLUMN = "password"


class CredentialLookup:
    """Matches an email/password pair to a user row.

    Example:
        >>> lookup = CredentialLookup(store)
        >>> await lookup.authenticate("a@b.com", "secret")
        {'id': 1, 'email': 'a@b.com', 'firstname': 'Ann', ...}
    """

    def __init__(self, store: EntityStore, entity: EntityDef = User) -> None:
        self.store = store
        self.entity = entity

    async def authenticate(self, email: str, password: str) -> dict[str, Any]:
        """Return the first matching user without its password.

        Raises:
            AuthMismatch: If no user has exactly this email and password
        """
        row = await self.store.fetch_one(
            build_select_matching(self.entity, {"email": email, PASSWORD_COLUMN: password})
        )
        if row is None:
            logger.info("Login rejected")
            raise AuthMismatch()

        row.pop(PASSWORD_COLUMN, None)
        logger.info("Login accepted", extra={"user_id": row.get("id")})
        return row
