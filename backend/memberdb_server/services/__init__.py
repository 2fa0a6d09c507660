"""
Service layer for MemberDB.

- EntityService: list/get/create/update/delete for one entity
- CredentialLookup: email/password login against the user table
"""

from .credentials import CredentialLookup
from .entity_service import Created, EntityService, Updated, build_services

__all__ = [
    "Created",
    "CredentialLookup",
    "EntityService",
    "Updated",
    "build_services",
]
