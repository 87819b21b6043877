"""Catalog definitions and the client-side mirror of the `games`/`tools`/`users` collections.

Pages read catalog data one of two ways, never both:

* ``CatalogStore.load`` - one ordered snapshot, used by the catalog pages and
  the dashboard;
* ``CatalogStore.subscribe`` - a :class:`SnapshotChannel` that receives the
  full ordered snapshot now and after every write, used by the admin console.

Either way documents are normalised (id merged into the fields, timestamps
made naive UTC) before they reach the filter and render layers.
"""
from __future__ import annotations

import logging
import queue
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from services.authz import ROLE_USER, USERS_COLLECTION
from services.datastore import DESCENDING, Document, DocumentStore
from services.errors import StoreError, StoreTimeout

logger = logging.getLogger("store")

ORDER_FIELD = "createdAt"


@dataclass(frozen=True)
class CatalogSpec:
    collection: str
    noun: str
    counter_field: str
    categories: Dict[str, str]
    default_icon: str
    default_description: str
    empty_message: str
    action_label: str
    action_icon: str

    @property
    def title(self) -> str:
        return self.noun.capitalize()

    def category_label(self, category: str | None) -> str:
        return self.categories.get(category or "", category or "")


GAMES = CatalogSpec(
    collection="games",
    noun="game",
    counter_field="plays",
    categories={"fun": "Fun", "visual": "Visual", "multiplayer": "Multiplayer", "puzzle": "Puzzle"},
    default_icon="fas fa-gamepad",
    default_description="A fun game to play!",
    empty_message="No games found",
    action_label="Play",
    action_icon="fas fa-play",
)

TOOLS = CatalogSpec(
    collection="tools",
    noun="tool",
    counter_field="uses",
    categories={
        "utility": "Utility",
        "converter": "Converter",
        "generator": "Generator",
        "editor": "Editor",
        "other": "Other",
    },
    default_icon="fas fa-tools",
    default_description="A handy tool for gamers!",
    empty_message="No tools found",
    action_label="Use",
    action_icon="fas fa-external-link-alt",
)

CATALOGS = {spec.collection: spec for spec in (GAMES, TOOLS)}


def get_catalog(name: str) -> Optional[CatalogSpec]:
    return CATALOGS.get(name)


def _naive_utc(value: Any) -> Optional[datetime]:
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def merge_id(doc: Document) -> Dict[str, Any]:
    """Flatten a store document into one field set that includes its id."""
    merged = dict(doc.fields)
    merged["id"] = doc.id
    return merged


@dataclass
class CatalogEntry:
    id: str
    name: str
    icon: str
    category: str
    link: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None
    created_by: Optional[str] = None
    usage: int = 0

    @classmethod
    def from_document(cls, doc: Document, spec: CatalogSpec) -> "CatalogEntry":
        data = merge_id(doc)
        return cls(
            id=data["id"],
            name=data.get("name") or "",
            icon=data.get("icon") or "",
            category=data.get("category") or "",
            link=data.get("link") or "",
            description=data.get("description") or None,
            created_at=_naive_utc(data.get("createdAt")),
            created_by=data.get("createdBy"),
            usage=int(data.get(spec.counter_field) or 0),
        )


@dataclass
class UserEntry:
    id: str
    email: str
    role: str = ROLE_USER
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Document) -> "UserEntry":
        data = merge_id(doc)
        return cls(
            id=data["id"],
            email=data.get("email") or "",
            role=data.get("role") or ROLE_USER,
            created_at=_naive_utc(data.get("createdAt")),
            last_login=_naive_utc(data.get("lastLogin")),
        )


def normalize(collection: str, docs: List[Document]) -> list:
    if collection == USERS_COLLECTION:
        return [UserEntry.from_document(doc) for doc in docs]
    spec = CATALOGS.get(collection)
    if spec is None:
        raise StoreError(f"Unknown catalog: {collection}")
    return [CatalogEntry.from_document(doc, spec) for doc in docs]


class SnapshotChannel:
    """Inbound queue of full ordered snapshots for one collection."""

    def __init__(self, collection: str):
        self.collection = collection
        self._queue: queue.Queue = queue.Queue()
        self._unsubscribe = None
        self.closed = False

    def attach(self, unsubscribe) -> None:
        self._unsubscribe = unsubscribe
        if self.closed:
            self._release()

    def deliver(self, docs: List[Document]) -> None:
        if self.closed:
            return
        self._queue.put(normalize(self.collection, docs))

    def receive(self, timeout: float | None = None) -> Optional[list]:
        """Next snapshot, or None when nothing arrives within ``timeout`` seconds."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._release()

    def _release(self) -> None:
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()
            logger.debug("Unsubscribed from %s", self.collection)

    def __enter__(self) -> "SnapshotChannel":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class CatalogStore:
    def __init__(self, store: DocumentStore, timeout: float | None = None):
        self.store = store
        self.timeout = timeout

    def load(self, collection: str, limit: int | None = None) -> list:
        docs = self.store.query_ordered(collection, ORDER_FIELD, DESCENDING, limit=limit)
        return normalize(collection, docs)

    def subscribe(self, collection: str) -> SnapshotChannel:
        channel = SnapshotChannel(collection)
        channel.attach(self.store.subscribe_ordered(collection, ORDER_FIELD, DESCENDING, channel.deliver))
        return channel

    def first_snapshot(self, channel: SnapshotChannel) -> list:
        snapshot = channel.receive(timeout=self.timeout)
        if snapshot is None:
            raise StoreTimeout()
        return snapshot


__all__ = [
    "CATALOGS",
    "CatalogEntry",
    "CatalogSpec",
    "CatalogStore",
    "GAMES",
    "ORDER_FIELD",
    "SnapshotChannel",
    "TOOLS",
    "UserEntry",
    "get_catalog",
    "merge_id",
    "normalize",
]
