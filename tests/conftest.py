import os
from pathlib import Path

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]

# Isolate all tests to a throwaway instance + SQLite database
TEST_INSTANCE_DIR = ROOT_DIR / ".pytest-instance"
TEST_INSTANCE_DIR.mkdir(parents=True, exist_ok=True)
TEST_DB_PATH = TEST_INSTANCE_DIR / "test.sqlite"
os.environ["FLASK_ENV"] = "testing"
os.environ["INSTANCE_DIR"] = str(TEST_INSTANCE_DIR)
os.environ["DATABASE_URL"] = f"sqlite:///{TEST_DB_PATH.as_posix()}"
os.environ["DATA_BACKEND"] = "sql"
os.environ["ENABLE_TALISMAN"] = "0"

import app as portal_app  # noqa: E402  pylint:disable=wrong-import-position
from extensions import cache, db  # noqa: E402
from services.authz import ROLE_ADMIN, ROLE_USER  # noqa: E402
from services.datastore import SERVER_TIMESTAMP  # noqa: E402

create_app = portal_app.create_app


@pytest.fixture(scope="session")
def app():
    flask_app = create_app()
    flask_app.config.update(
        TESTING=True,
        WTF_CSRF_ENABLED=False,
        RATELIMIT_ENABLED=False,
        SERVER_NAME="localhost",
        LIVE_KEEPALIVE_SECONDS=0.2,
    )
    return flask_app


@pytest.fixture
def db_session(app):
    with app.app_context():
        db.session.remove()
        db.engine.dispose()
        if TEST_DB_PATH.exists():
            TEST_DB_PATH.unlink()
        for suffix in ("-wal", "-shm"):
            sidecar = TEST_DB_PATH.with_name(TEST_DB_PATH.name + suffix)
            if sidecar.exists():
                sidecar.unlink()
        db.create_all()
        cache.clear()
        yield db
        db.session.remove()
        db.engine.dispose()
        db.drop_all()


@pytest.fixture
def client(app, db_session):  # noqa: ARG001 - keeps DB initialised for request tests
    return app.test_client()


@pytest.fixture
def store(app, db_session):  # noqa: ARG001
    return app.extensions["portal.store"]


@pytest.fixture
def create_user(app, db_session):  # noqa: ARG001
    """Create an identity plus its users record; returns (identity, password)."""

    def _create_user(
        *,
        email: str = "user@example.com",
        password: str = "password123",
        is_admin: bool = False,
    ):
        identity = app.extensions["portal.identity"].sign_up(email, password)
        app.extensions["portal.store"].set_record(
            "users",
            identity.id,
            {
                "email": identity.email,
                "role": ROLE_ADMIN if is_admin else ROLE_USER,
                "createdAt": SERVER_TIMESTAMP,
                "lastLogin": None,
            },
        )
        return identity, password

    return _create_user


@pytest.fixture
def login(client, create_user):
    """Sign a fresh identity in through the real form; returns the identity."""

    def _login(*, email: str = "user@example.com", is_admin: bool = False):
        identity, password = create_user(email=email, is_admin=is_admin)
        client.post("/login", data={"email": identity.email, "password": password})
        return identity

    return _login


@pytest.fixture
def add_entry(store):
    def _add_entry(collection: str = "games", **overrides):
        fields = {
            "name": "Snake",
            "icon": "fas fa-gamepad",
            "category": "fun",
            "link": "snake.com",
            "description": None,
            "createdAt": SERVER_TIMESTAMP,
            "createdBy": None,
            "plays" if collection == "games" else "uses": 0,
        }
        fields.update(overrides)
        return store.add_record(collection, fields)

    return _add_entry
