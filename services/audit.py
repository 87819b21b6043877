"""Audit logging helpers for privileged actions."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from flask import has_request_context, request
from flask_login import current_user

from services.datastore import SERVER_TIMESTAMP, get_store
from services.errors import StoreError

security_logger = logging.getLogger("security")

AUDIT_COLLECTION = "audit_logs"


def record_audit_event(action: str, details: Optional[Dict[str, Any]] = None, *, user_id: str | None = None) -> None:
    """Persist an audit entry for the current request/user; failures are only logged."""
    if user_id is None and current_user and getattr(current_user, "is_authenticated", False):
        user_id = current_user.get_id()

    fields: Dict[str, Any] = {
        "userId": user_id,
        "action": action,
        "details": details or {},
        "createdAt": SERVER_TIMESTAMP,
    }
    if has_request_context():
        fields["ipAddress"] = request.headers.get("X-Forwarded-For", request.remote_addr)
        fields["userAgent"] = (request.headers.get("User-Agent") or "")[:255]

    security_logger.info("audit action=%s user=%s details=%s", action, user_id, details or {})
    try:
        get_store().add_record(AUDIT_COLLECTION, fields)
    except StoreError:
        security_logger.exception("Failed to record audit event: action=%s", action)
