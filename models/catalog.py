from __future__ import annotations

import uuid

from extensions import db

from .document import DocumentMixin


def _new_id() -> str:
    return uuid.uuid4().hex


class _CatalogColumns(DocumentMixin):
    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    name = db.Column(db.String(200), nullable=False)
    icon = db.Column(db.String(500), nullable=False)
    category = db.Column(db.String(40), nullable=False, index=True)
    link = db.Column(db.String(1000), nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, nullable=True, index=True)
    created_by = db.Column(db.String(64), nullable=True)


class Game(_CatalogColumns, db.Model):
    __tablename__ = "games"
    DOCUMENT_FIELDS = {
        "name": "name",
        "icon": "icon",
        "category": "category",
        "link": "link",
        "description": "description",
        "createdAt": "created_at",
        "createdBy": "created_by",
        "plays": "plays",
    }

    plays = db.Column(db.Integer, nullable=False, default=0, server_default=db.text("0"))


class Tool(_CatalogColumns, db.Model):
    __tablename__ = "tools"
    DOCUMENT_FIELDS = {
        "name": "name",
        "icon": "icon",
        "category": "category",
        "link": "link",
        "description": "description",
        "createdAt": "created_at",
        "createdBy": "created_by",
        "uses": "uses",
    }

    uses = db.Column(db.Integer, nullable=False, default=0, server_default=db.text("0"))


class GameActivity(DocumentMixin, db.Model):
    """Append-only play log."""

    __tablename__ = "game_activity"
    DOCUMENT_FIELDS = {
        "userId": "user_id",
        "gameId": "game_id",
        "playedAt": "played_at",
    }

    id = db.Column(db.String(64), primary_key=True, default=_new_id)
    user_id = db.Column(db.String(64), nullable=False, index=True)
    game_id = db.Column(db.String(64), nullable=False, index=True)
    played_at = db.Column(db.DateTime, nullable=True, index=True)
