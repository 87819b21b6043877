"""In-process change hub behind the `sql` backend's live subscriptions."""
from __future__ import annotations

from typing import Callable

from blinker import Signal

from services.datastore import utcnow

_change_signal = Signal("collection-changes")


def emit_collection_change(collection: str, action: str, record_id: str | None = None) -> None:
    """Tell every listener that a collection was written to."""
    event = {
        "collection": collection,
        "action": action,
        "record_id": record_id,
        "recorded_at": utcnow().isoformat() + "Z",
    }
    _change_signal.send(collection, event=event)


def connect_collection_listener(collection: str, callback: Callable[[dict], None]) -> Callable[[], None]:
    """Call ``callback(event)`` after each write to ``collection``; returns the disconnector."""

    def _handler(sender, event, **_extra):
        callback(event)

    _change_signal.connect(_handler, sender=collection, weak=False)

    def _disconnect() -> None:
        _change_signal.disconnect(_handler, sender=collection)

    return _disconnect


def format_sse(event: str, data: str) -> str:
    """Frame one server-sent event; every payload line gets its own ``data:`` prefix."""
    lines = [f"event: {event}"]
    lines.extend(f"data: {line}" for line in str(data).splitlines() or [""])
    return "\n".join(lines) + "\n\n"


SSE_KEEPALIVE = ": keepalive\n\n"


__all__ = [
    "SSE_KEEPALIVE",
    "connect_collection_listener",
    "emit_collection_change",
    "format_sse",
]
