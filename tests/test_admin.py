from __future__ import annotations

from services import live_updates

SNAKE = {"name": "Snake", "icon": "fas fa-gamepad", "category": "fun", "link": "snake.com"}


def _games(store):
    return store.query_ordered("games", "createdAt")


def _next_event(chunks) -> str:
    """Next non-keepalive frame from a live stream."""
    for chunk in chunks:
        text = chunk.decode() if isinstance(chunk, bytes) else chunk
        if text.startswith("event:"):
            return text
    raise AssertionError("stream ended")


def test_admin_page_loads_with_placeholders(client, login):
    login(email="admin@example.com", is_admin=True)
    response = client.get("/admin")
    assert response.status_code == 200
    assert b"No games found" in response.data
    assert b"No tools found" in response.data
    assert b"admin@example.com" in response.data


def test_non_admin_is_sent_home(client, login, store):
    login()
    response = client.get("/admin", follow_redirects=True)
    assert response.request.path == "/home"
    assert b"Access denied. Admins only." in response.data
    client.post("/admin/games/add", data=SNAKE)
    assert _games(store) == []


def test_add_game_records_creator(client, login, store):
    admin = login(email="admin@example.com", is_admin=True)
    response = client.post("/admin/games/add", data=dict(SNAKE, submission_id="s-1"), follow_redirects=True)
    assert b"Game added!" in response.data
    [doc] = _games(store)
    assert doc.fields["name"] == "Snake"
    assert doc.fields["createdBy"] == admin.id
    assert doc.fields["createdAt"] is not None
    assert doc.fields["plays"] == 0

    played = client.get(f"/games/{doc.id}/play")
    assert played.headers["Location"] == "https://snake.com"


def test_add_with_missing_field_writes_nothing(client, login, store):
    login(email="admin@example.com", is_admin=True)
    response = client.post("/admin/games/add", data=dict(SNAKE, link=""), follow_redirects=True)
    assert b"Please fill in all required fields." in response.data
    assert _games(store) == []


def test_duplicate_submission_writes_once(client, login, store):
    login(email="admin@example.com", is_admin=True)
    client.post("/admin/games/add", data=dict(SNAKE, submission_id="same"))
    response = client.post("/admin/games/add", data=dict(SNAKE, submission_id="same"), follow_redirects=True)
    assert b"already submitted" in response.data
    assert len(_games(store)) == 1


def test_delete_needs_confirmation(client, login, add_entry, store):
    login(email="admin@example.com", is_admin=True)
    game_id = add_entry()

    confirm_page = client.get(f"/admin/games/{game_id}/delete")
    assert confirm_page.status_code == 200
    assert b"Are you sure you want to delete game" in confirm_page.data
    assert store.get_record("games", game_id) is not None

    cancelled = client.post(f"/admin/games/{game_id}/delete", data={"confirm": "no"}, follow_redirects=True)
    assert b"Deletion cancelled." in cancelled.data
    assert store.get_record("games", game_id) is not None

    deleted = client.post(
        f"/admin/games/{game_id}/delete",
        data={"confirm": "yes", "submission_id": "del-1"},
        follow_redirects=True,
    )
    assert b"Game deleted!" in deleted.data
    assert store.get_record("games", game_id) is None


def test_delete_returns_to_catalog_page(client, login, add_entry):
    login(email="admin@example.com", is_admin=True)
    tool_id = add_entry("tools", name="Timer", category="utility")
    response = client.post(f"/admin/tools/{tool_id}/delete", data={"confirm": "yes", "next": "/tools"})
    assert response.headers["Location"].endswith("/tools")


def test_edit_is_a_placeholder(client, login, add_entry, store):
    login(email="admin@example.com", is_admin=True)
    game_id = add_entry()
    response = client.get(f"/admin/games/{game_id}/edit", follow_redirects=True)
    assert b"Edit feature coming soon" in response.data
    assert store.get_record("games", game_id)["name"] == "Snake"


def test_change_role(client, login, create_user, store):
    admin = login(email="admin@example.com", is_admin=True)
    bob, _ = create_user(email="bob@example.com")
    client.post(f"/admin/users/{bob.id}/role", data={"role": "admin"})
    assert store.get_record("users", bob.id)["role"] == "admin"

    client.post(f"/admin/users/{admin.id}/role", data={"role": "user"})
    assert store.get_record("users", admin.id)["role"] == "admin"


def test_privileged_actions_are_audited(client, login, store):
    login(email="admin@example.com", is_admin=True)
    client.post("/admin/games/add", data=SNAKE)
    actions = [doc.fields["action"] for doc in store.query_ordered("audit_logs", "createdAt")]
    assert "game_added" in actions
    assert "login" in actions


def test_live_stream_pushes_snapshots_and_unsubscribes(client, login, add_entry):
    login(email="admin@example.com", is_admin=True)
    baseline = len(list(live_updates._change_signal.receivers_for("games")))

    response = client.get("/admin/live/games", buffered=False)
    assert response.status_code == 200
    assert response.mimetype == "text/event-stream"
    chunks = iter(response.response)
    try:
        first = _next_event(chunks)
        assert first.startswith("event: snapshot")
        assert "No games found" in first

        add_entry(name="Tetris")
        second = _next_event(chunks)
        assert "Tetris" in second
    finally:
        response.close()

    assert len(list(live_updates._change_signal.receivers_for("games"))) == baseline


def test_live_stream_redirects_after_sign_out(app, client, login):
    admin = login(email="admin@example.com", is_admin=True)
    response = client.get("/admin/live/users", buffered=False)
    chunks = iter(response.response)
    try:
        assert "admin@example.com" in _next_event(chunks)
        app.extensions["portal.identity"].sign_out(admin)
        assert _next_event(chunks).startswith("event: redirect")
    finally:
        response.close()


def test_live_stream_stops_when_viewer_is_demoted(client, login, create_user, store):
    admin = login(email="admin@example.com", is_admin=True)
    create_user(email="victim@example.com")
    response = client.get("/admin/live/users", buffered=False)
    chunks = iter(response.response)
    try:
        assert "victim@example.com" in _next_event(chunks)
        store.set_record("users", admin.id, {"role": "user"}, merge=True)
        frame = _next_event(chunks)
        assert frame.startswith("event: redirect")
        assert "/home" in frame
        assert "victim@example.com" not in frame
    finally:
        response.close()


def test_live_stream_rejects_non_admins(client, login):
    login()
    response = client.get("/admin/live/games")
    assert response.status_code == 403
