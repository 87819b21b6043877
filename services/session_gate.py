"""Per-request access decisions for portal pages.

Every page controller is wrapped in :func:`page_guard`. The guard looks at the
signed-in identity, resolves its role when the page needs one, and either
lets the controller run with an explicit :class:`SessionContext` or answers
with a redirect (pages) / 401 (JSON and event streams).
"""
from __future__ import annotations

import enum
import functools
import logging
from dataclasses import dataclass
from typing import Optional

from flask import jsonify, redirect, request, url_for
from flask_login import current_user

from services.authz import ROLE_USER, is_admin, resolve_role
from services.datastore import DocumentStore, get_store
from services.identity import Identity
from services.notices import ERROR, notify

security_logger = logging.getLogger("security")

ACCESS_DENIED_MESSAGE = "Access denied. Admins only."


class Requirement(str, enum.Enum):
    NONE = "none"
    AUTHENTICATED = "authenticated"
    ADMIN = "admin"


class Decision(str, enum.Enum):
    PROCEED = "proceed"
    TO_INDEX = "index"
    TO_HOME = "home"
    DENIED = "denied"


@dataclass(frozen=True)
class SessionContext:
    identity: Optional[Identity] = None
    role: str = ROLE_USER

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None

    @property
    def is_admin(self) -> bool:
        return self.identity is not None and is_admin(self.role)

    @property
    def identity_id(self) -> Optional[str]:
        return self.identity.id if self.identity else None


def evaluate_gate(
    requirement: Requirement,
    identity: Optional[Identity],
    store: DocumentStore | None = None,
    *,
    public_only: bool = False,
) -> tuple[Decision, SessionContext]:
    """Decide what happens to a request; the role is only looked up when it matters."""
    if identity is None:
        if requirement == Requirement.NONE:
            return Decision.PROCEED, SessionContext()
        return Decision.TO_INDEX, SessionContext()
    if public_only:
        return Decision.TO_HOME, SessionContext(identity=identity)
    if store is None:
        role = ROLE_USER
    else:
        role = resolve_role(store, identity.id)
    context = SessionContext(identity=identity, role=role)
    if requirement == Requirement.ADMIN and not context.is_admin:
        return Decision.DENIED, context
    return Decision.PROCEED, context


def current_identity() -> Optional[Identity]:
    if not getattr(current_user, "is_authenticated", False):
        return None
    return getattr(current_user, "identity", None)


def _wants_json() -> bool:
    if request.is_json:
        return True
    accept = request.accept_mimetypes
    if accept["text/event-stream"] and accept["text/event-stream"] >= accept["text/html"]:
        return True
    return accept.best == "application/json"


def page_guard(requirement: Requirement = Requirement.AUTHENTICATED, *, public_only: bool = False, api: bool = False):
    """Gate a view; the wrapped function receives ``ctx`` (a SessionContext) as a keyword.

    ``api`` views (JSON or event streams) get a 401 body instead of a redirect
    when nobody is signed in.
    """

    def decorator(view):
        @functools.wraps(view)
        def wrapper(*args, **kwargs):
            decision, ctx = evaluate_gate(
                requirement,
                current_identity(),
                get_store(),
                public_only=public_only,
            )
            if decision == Decision.TO_INDEX:
                if api or _wants_json():
                    return jsonify({"error": "authentication_required"}), 401
                return redirect(url_for("views.index"))
            if decision == Decision.TO_HOME:
                return redirect(url_for("views.home"))
            if decision == Decision.DENIED:
                security_logger.warning(
                    "admin access denied identity=%s path=%s", ctx.identity_id, request.path
                )
                if api or _wants_json():
                    return jsonify({"error": "forbidden"}), 403
                notify(ACCESS_DENIED_MESSAGE, ERROR)
                return redirect(url_for("views.home"))
            kwargs["ctx"] = ctx
            return view(*args, **kwargs)

        return wrapper

    return decorator


__all__ = [
    "ACCESS_DENIED_MESSAGE",
    "Decision",
    "Requirement",
    "SessionContext",
    "current_identity",
    "evaluate_gate",
    "page_guard",
]
