from __future__ import annotations

import uuid

from werkzeug.security import check_password_hash, generate_password_hash

from extensions import db
from services.datastore import utcnow

from .document import DocumentMixin


def _new_id() -> str:
    return uuid.uuid4().hex


class Account(db.Model):
    """Credentials held by the `sql` identity provider (the auth side of an identity)."""

    __tablename__ = "accounts"

    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    # Password helpers -----------------------------------------------------
    def set_password(self, raw_password: str) -> None:
        self.password_hash = generate_password_hash(raw_password)

    def check_password(self, raw_password: str | None) -> bool:
        if not raw_password or not self.password_hash:
            return False
        return check_password_hash(self.password_hash, raw_password)


class UserRecord(DocumentMixin, db.Model):
    """The `users/{id}` document: role and login bookkeeping for an identity."""

    __tablename__ = "users"
    DOCUMENT_FIELDS = {
        "email": "email",
        "role": "role",
        "createdAt": "created_at",
        "lastLogin": "last_login",
    }

    id = db.Column(db.String(64), primary_key=True)
    email = db.Column(db.String(255), nullable=False, index=True)
    role = db.Column(db.String(16), nullable=False, default="user", server_default="user")
    created_at = db.Column(db.DateTime, nullable=True, index=True)
    last_login = db.Column(db.DateTime, nullable=True)


class AuditLog(DocumentMixin, db.Model):
    """Privileged actions, written through the store like any other collection."""

    __tablename__ = "audit_logs"
    DOCUMENT_FIELDS = {
        "userId": "user_id",
        "action": "action",
        "details": "details",
        "ipAddress": "ip_address",
        "userAgent": "user_agent",
        "createdAt": "created_at",
    }

    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    user_id = db.Column(db.String(64), nullable=True, index=True)
    action = db.Column(db.String(120), nullable=False)
    details = db.Column(db.JSON, nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, nullable=True, index=True)
