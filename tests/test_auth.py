from __future__ import annotations


def _register(client, email="first@example.com", password="secret1", confirm=None, follow=False):
    return client.post(
        "/register",
        data={"email": email, "password": password, "confirm_password": confirm if confirm is not None else password},
        follow_redirects=follow,
    )


def _user_records(store):
    return {doc.fields["email"]: doc.fields for doc in store.query_ordered("users", "createdAt")}


def test_landing_page_is_public(client):
    response = client.get("/")
    assert response.status_code == 200
    assert b"Gabutan Portal" in response.data
    assert b"Sign in" in response.data


def test_protected_pages_redirect_anonymous_visitors(client):
    for path in ("/home", "/tools", "/dashboard", "/admin"):
        response = client.get(path)
        assert response.status_code == 302
        assert response.headers["Location"].endswith("/")


def test_json_endpoints_answer_401(client):
    response = client.get("/games/grid", headers={"Accept": "application/json"})
    assert response.status_code == 401
    assert response.get_json() == {"error": "authentication_required"}
    live = client.get("/admin/live/games")
    assert live.status_code == 401


def test_first_registrant_is_admin_then_users(client, store):
    response = _register(client, follow=True)
    assert response.status_code == 200
    assert b"Registration successful! Please sign in." in response.data
    _register(client, email="second@example.com")

    records = _user_records(store)
    assert records["first@example.com"]["role"] == "admin"
    assert records["second@example.com"]["role"] == "user"


def test_register_validates_locally(client, store):
    assert _register(client, email="not-an-email").status_code == 400
    short = _register(client, password="12345")
    assert short.status_code == 400
    assert b"at least 6 characters" in short.data
    mismatch = _register(client, confirm="different1")
    assert b"Passwords do not match." in mismatch.data
    assert _user_records(store) == {}


def test_register_duplicate_email(client):
    _register(client)
    response = _register(client)
    assert response.status_code == 400
    assert b"Email is already registered" in response.data


def test_sign_in_errors_are_mapped(client, create_user):
    create_user(email="bob@example.com")
    wrong = client.post("/login", data={"email": "bob@example.com", "password": "nope-nope"})
    assert wrong.status_code == 401
    assert b"Wrong password" in wrong.data
    missing = client.post("/login", data={"email": "ghost@example.com", "password": "whatever"})
    assert b"User not found" in missing.data


def test_repeated_failures_are_throttled(client, create_user, app):
    create_user(email="bob@example.com")
    for _ in range(app.config["LOGIN_MAX_ATTEMPTS"]):
        client.post("/login", data={"email": "bob@example.com", "password": "bad-pass"})
    response = client.post("/login", data={"email": "bob@example.com", "password": "password123"})
    assert b"Too many attempts. Try again later." in response.data


def test_sign_in_refreshes_last_login_and_goes_home(client, create_user, store):
    identity, password = create_user(email="bob@example.com")
    assert store.get_record("users", identity.id)["lastLogin"] is None
    response = client.post("/login", data={"email": "BOB@example.com", "password": password})
    assert response.status_code == 302
    assert response.headers["Location"].endswith("/home")
    assert store.get_record("users", identity.id)["lastLogin"] is not None


def test_sign_in_recreates_missing_user_record(client, app, store):
    identity = app.extensions["portal.identity"].sign_up("orphan@example.com", "secret1")
    client.post("/login", data={"email": "orphan@example.com", "password": "secret1"})
    record = store.get_record("users", identity.id)
    assert record["role"] == "user"
    assert record["email"] == "orphan@example.com"


def test_signed_in_visitor_skips_landing(client, login):
    login()
    response = client.get("/")
    assert response.status_code == 302
    assert response.headers["Location"].endswith("/home")


def test_logout_ends_session(client, login):
    login()
    response = client.post("/logout", follow_redirects=True)
    assert b"Signed out successfully." in response.data
    assert client.get("/home").status_code == 302
