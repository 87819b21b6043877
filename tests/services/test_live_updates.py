from __future__ import annotations

from services import live_updates


def test_emit_collection_change_reaches_listeners():
    seen = []
    disconnect = live_updates.connect_collection_listener("games", seen.append)
    try:
        live_updates.emit_collection_change("games", "add", record_id="abc123")
    finally:
        disconnect()
    [event] = seen
    assert event["collection"] == "games"
    assert event["action"] == "add"
    assert event["record_id"] == "abc123"
    assert event["recorded_at"].endswith("Z")


def test_disconnected_listener_stops_receiving_events():
    seen = []
    disconnect = live_updates.connect_collection_listener("tools", seen.append)
    disconnect()
    live_updates.emit_collection_change("tools", "delete", record_id="xyz")
    assert seen == []


def test_collection_listener_only_hears_its_collection():
    seen = []
    disconnect = live_updates.connect_collection_listener("users", seen.append)
    try:
        live_updates.emit_collection_change("games", "add", "g1")
        live_updates.emit_collection_change("users", "set", "u1")
    finally:
        disconnect()
    live_updates.emit_collection_change("users", "set", "u2")
    assert [event["record_id"] for event in seen] == ["u1"]


def test_format_sse_prefixes_every_line():
    frame = live_updates.format_sse("snapshot", "<tr>\n<td>x</td>\n</tr>")
    assert frame == "event: snapshot\ndata: <tr>\ndata: <td>x</td>\ndata: </tr>\n\n"
    assert live_updates.format_sse("redirect", "") == "event: redirect\ndata: \n\n"
