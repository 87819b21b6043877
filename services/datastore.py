"""Document store contract shared by the `sql` and `firebase` backends.

The portal never talks to a database directly. Controllers and services go
through a :class:`DocumentStore`, which speaks in collections of records
keyed by string ids, the way a hosted document database does:

    store.add_record("games", {"name": "Snake", "createdAt": SERVER_TIMESTAMP})
    store.query_ordered("games", "createdAt", DESCENDING, limit=5)
    unsubscribe = store.subscribe_ordered("games", "createdAt", DESCENDING, on_snapshot)

Records come back as :class:`Document` pairs; merging the id into the field
set is left to the catalog layer.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from flask import current_app

ASCENDING = "asc"
DESCENDING = "desc"


class _ServerTimestamp:
    """Sentinel resolved to the store's clock when a write lands."""

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(frozen=True)
class Document:
    id: str
    fields: Dict[str, Any] = field(default_factory=dict)


SnapshotCallback = Callable[[List[Document]], None]
Unsubscribe = Callable[[], None]


def utcnow() -> datetime:
    """Return a naive UTC datetime for storage in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class DocumentStore(ABC):
    """Collections of id-keyed records with ordered reads and live snapshots."""

    @abstractmethod
    def get_record(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Return the record's fields, or None when it does not exist."""

    @abstractmethod
    def set_record(self, collection: str, record_id: str, fields: Dict[str, Any], merge: bool = False) -> None:
        """Create or overwrite a record; with ``merge`` only the given fields change."""

    @abstractmethod
    def add_record(self, collection: str, fields: Dict[str, Any]) -> str:
        """Insert a record under a store-assigned id and return that id."""

    @abstractmethod
    def increment(self, collection: str, record_id: str, field_name: str, amount: int = 1) -> None:
        """Atomically bump a numeric field."""

    @abstractmethod
    def delete_record(self, collection: str, record_id: str) -> None:
        ...

    @abstractmethod
    def query_ordered(
        self,
        collection: str,
        order_field: str,
        direction: str = DESCENDING,
        limit: Optional[int] = None,
        min_value: Any = None,
    ) -> List[Document]:
        """One-shot ordered read; ``min_value`` keeps records with order_field >= it."""

    @abstractmethod
    def subscribe_ordered(
        self,
        collection: str,
        order_field: str,
        direction: str,
        on_snapshot: SnapshotCallback,
    ) -> Unsubscribe:
        """Deliver the full ordered result now and after every change."""

    def is_empty(self, collection: str) -> bool:
        return not self.query_ordered(collection, "createdAt", DESCENDING, limit=1)


def get_store() -> DocumentStore:
    return current_app.extensions["portal.store"]


__all__ = [
    "ASCENDING",
    "DESCENDING",
    "Document",
    "DocumentStore",
    "SERVER_TIMESTAMP",
    "SnapshotCallback",
    "Unsubscribe",
    "get_store",
    "utcnow",
]
