"""SQLAlchemy models package for the portal's `sql` backend.
Re-exports the shared `db` instance to avoid import loops and provides
convenient names for the model classes.

Usage:
    from models import db, Game, Tool, UserRecord
"""
from __future__ import annotations

from extensions import db  # shared SQLAlchemy() instance

# Import models only after db exists to avoid circular imports
from .catalog import Game, GameActivity, Tool  # type: ignore F401
from .user import Account, AuditLog, UserRecord  # type: ignore F401

# collection name -> model, as addressed by the document store contract
COLLECTION_MODELS = {
    "users": UserRecord,
    "games": Game,
    "tools": Tool,
    "game_activity": GameActivity,
    "audit_logs": AuditLog,
}

__all__ = [
    "db",
    "Account",
    "AuditLog",
    "COLLECTION_MODELS",
    "Game",
    "GameActivity",
    "Tool",
    "UserRecord",
]
