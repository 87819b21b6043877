"""Role resolution for portal identities."""
from __future__ import annotations

import logging

from services.datastore import DocumentStore
from services.errors import PortalError

security_logger = logging.getLogger("security")

ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLES = (ROLE_USER, ROLE_ADMIN)

USERS_COLLECTION = "users"


def resolve_role(store: DocumentStore, identity_id: str | None) -> str:
    """Return the identity's role; anything short of a readable admin record is ``user``."""
    if not identity_id:
        return ROLE_USER
    try:
        record = store.get_record(USERS_COLLECTION, identity_id)
    except PortalError as exc:
        security_logger.warning("role lookup failed identity=%s: %s", identity_id, exc)
        return ROLE_USER
    except Exception:
        # any backend failure resolves to the least privileged role
        security_logger.exception("role lookup crashed identity=%s", identity_id)
        return ROLE_USER
    if not record:
        return ROLE_USER
    role = record.get("role")
    return role if role in ROLES else ROLE_USER


def role_for_new_identity(store: DocumentStore) -> str:
    """First identity ever registered becomes admin; everyone after is a user."""
    return ROLE_ADMIN if store.is_empty(USERS_COLLECTION) else ROLE_USER


def is_admin(role: str | None) -> bool:
    return role == ROLE_ADMIN


__all__ = [
    "ROLES",
    "ROLE_ADMIN",
    "ROLE_USER",
    "USERS_COLLECTION",
    "is_admin",
    "resolve_role",
    "role_for_new_identity",
]
