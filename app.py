"""Flask application factory, CLI entry points, and database bootstrap."""

import json
import logging
from logging.handlers import RotatingFileHandler
import os
import sqlite3
import uuid
from pathlib import Path

import click
from flask import Flask, g, has_request_context, jsonify, redirect, render_template, request, url_for
from flask_compress import Compress
from flask_talisman import Talisman
from sqlalchemy import event
from sqlalchemy.engine import Engine

from dotenv import load_dotenv; load_dotenv()

from config import Config, INSTANCE_DIR as CONFIG_INSTANCE_DIR
from extensions import db, migrate, cache, csrf, limiter, login_manager, generate_csrf
from services.identity import SessionUser, get_identity_provider
from services.mutations import SubmissionGuard
from services.notices import WARNING, notify
from services.rendering import register_template_helpers

IDENTITY_CACHE_SECONDS = 60


class RequestIdFilter(logging.Filter):
    """Inject request-scoped metadata into log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        if has_request_context():
            record.request_id = getattr(g, "request_id", "n/a")
            record.path = request.path
            record.method = request.method
        else:
            record.request_id = getattr(record, "request_id", "startup")
            record.path = getattr(record, "path", "")
            record.method = getattr(record, "method", "")
        return True


class JsonRequestFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        base = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", "n/a"),
            "path": getattr(record, "path", ""),
            "method": getattr(record, "method", ""),
        }
        if record.exc_info:
            base["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(base, ensure_ascii=False)


def _wants_json() -> bool:
    accept = request.accept_mimetypes
    return request.is_json or accept["application/json"] > accept["text/html"]


def _configure_login_manager(app: Flask) -> None:
    """Bind Flask-Login to whichever identity provider the app runs with."""
    login_manager.init_app(app)
    login_manager.login_view = "views.index"
    login_manager.login_message_category = WARNING
    login_manager.session_protection = "strong"

    @login_manager.user_loader
    def _load_user(identity_id: str):
        key = f"identity:{identity_id}"
        identity = cache.get(key)
        if identity is None:
            identity = get_identity_provider().get_identity(identity_id)
            if identity is None:
                return None
            cache.set(key, identity, timeout=IDENTITY_CACHE_SECONDS)
        return SessionUser(identity)

    @login_manager.unauthorized_handler
    def _unauthorized():
        if _wants_json():
            return jsonify({"error": "authentication_required"}), 401
        notify("Please sign in to continue.", WARNING)
        return redirect(url_for("views.index"))


def _configure_logging(app: Flask) -> None:
    """Configure structured logging with request IDs."""
    stream_handler = logging.StreamHandler()
    stream_handler.addFilter(RequestIdFilter())
    stream_handler.setFormatter(JsonRequestFormatter())
    stream_handler.setLevel(logging.INFO)

    handlers = [stream_handler]

    try:
        logs_dir = Path(app.instance_path) / "logs"
        logs_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            logs_dir / "app.log",
            maxBytes=5 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.addFilter(RequestIdFilter())
        file_handler.setFormatter(JsonRequestFormatter())
        file_handler.setLevel(logging.INFO)
        handlers.append(file_handler)
    except OSError as exc:
        app.logger.warning("Falling back to stream-only logging (file handler unavailable): %s", exc)

    app.logger.handlers = handlers
    app.logger.setLevel(logging.INFO)
    for name in ("werkzeug", "security", "store"):
        logger = logging.getLogger(name)
        logger.handlers = handlers
        logger.setLevel(logging.INFO)
        logger.propagate = False


def _init_backend(app: Flask) -> None:
    """Build the document store and identity provider named by DATA_BACKEND."""
    backend = app.config.get("DATA_BACKEND", "sql")
    if backend == "firebase":
        from services.firebase_backend import init_firebase_backend

        store, identity = init_firebase_backend(app)
    elif backend == "sql":
        from services.identity import SqlIdentityProvider
        from services.sql_store import SqlDocumentStore

        store, identity = SqlDocumentStore(), SqlIdentityProvider()
    else:
        raise RuntimeError(f"Unknown DATA_BACKEND: {backend!r} (expected 'sql' or 'firebase')")
    app.extensions["portal.store"] = store
    app.extensions["portal.identity"] = identity
    app.logger.info("Data backend: %s", backend)


def _register_cli(app: Flask) -> None:
    @app.cli.command("init-db")
    def init_db():
        """Create the SQL tables (outside of Alembic migrations)."""
        import models  # noqa: F401

        db.create_all()
        click.echo("Database tables created.")

    @app.cli.group("users")
    def users_cli():
        """Inspect portal users and their roles."""

    @users_cli.command("list")
    def list_users():
        from services.catalog import CatalogStore

        entries = CatalogStore(app.extensions["portal.store"]).load("users")
        if not entries:
            click.echo("No users yet")
            return
        for entry in entries:
            click.echo(f"{entry.id}\t{entry.email}\t{entry.role}")

    @users_cli.command("set-role")
    @click.argument("email")
    @click.argument("role", type=click.Choice(["user", "admin"]))
    def set_role(email, role):
        from services.catalog import CatalogStore
        from services.identity import normalize_email
        from services.mutations import ChangeRoleWorkflow

        store = app.extensions["portal.store"]
        normalized = normalize_email(email)
        match = next((u for u in CatalogStore(store).load("users") if u.email.lower() == normalized), None)
        if match is None:
            raise click.ClickException(f"User {normalized} not found.")
        result = ChangeRoleWorkflow(store=store).run(match.id, role)
        if not result.ok:
            raise click.ClickException(result.message)
        click.echo(result.message)


def create_app():
    """Create, configure, and return a fully-initialised Flask app."""
    app = Flask(
        __name__,
        instance_path=str(CONFIG_INSTANCE_DIR),
        instance_relative_config=False,
    )
    app.config.from_object(Config)
    os.makedirs(app.instance_path, exist_ok=True)
    _configure_logging(app)

    # If no DB URI provided, store SQLite DB in instance/
    if not app.config.get("SQLALCHEMY_DATABASE_URI"):
        app.config["SQLALCHEMY_DATABASE_URI"] = f"sqlite:///{os.path.join(app.instance_path, 'portal.db')}"
    if app.config["SQLALCHEMY_DATABASE_URI"].startswith("sqlite"):
        # sqlite waits this long on a locked database before raising
        engine_options = dict(app.config.get("SQLALCHEMY_ENGINE_OPTIONS") or {})
        engine_options.setdefault("connect_args", {"timeout": app.config["STORE_TIMEOUT_SECONDS"]})
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options

    # --- Core extensions ---
    db.init_app(app)
    migrate.init_app(app, db, render_as_batch=True)
    cache.init_app(app)
    _configure_login_manager(app)
    csrf.init_app(app)
    app.jinja_env.globals["csrf_token"] = generate_csrf
    app.jinja_env.globals["new_submission_id"] = SubmissionGuard.issue
    register_template_helpers(app)
    Compress(app)
    limiter.init_app(app)

    if app.config.get("ENABLE_TALISMAN", True):
        Talisman(
            app,
            content_security_policy=app.config.get("CONTENT_SECURITY_POLICY"),
            force_https=app.config.get("TALISMAN_FORCE_HTTPS", not app.debug),
            session_cookie_secure=app.config.get("SESSION_COOKIE_SECURE", True),
            session_cookie_samesite=app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        )

    with app.app_context():
        import models  # noqa: F401

        _init_backend(app)

    # Blueprints
    from routes import views
    app.register_blueprint(views)

    @app.context_processor
    def inject_ui_settings():
        return {"notice_timeout_ms": app.config.get("NOTICE_TIMEOUT_MS", 3000)}

    _register_cli(app)

    @app.errorhandler(404)
    def not_found(e):
        if _wants_json():
            return jsonify({"error": "not_found"}), 404
        return render_template("errors/404.html", e=e), 404

    @app.errorhandler(500)
    def internal(e):
        """Roll back broken transactions and return the standard 500 view."""
        db.session.rollback()
        if _wants_json():
            return jsonify({"error": "internal_error"}), 500
        return render_template("errors/500.html", e=e, message="Something went wrong. Please try again."), 500

    @app.before_request
    def assign_request_id():
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex

    @app.after_request
    def attach_request_id(resp):
        rid = getattr(g, "request_id", None)
        if rid:
            resp.headers.setdefault("X-Request-ID", rid)
        return resp

    @app.after_request
    def security_headers(resp):
        """Attach a minimal set of security-related HTTP headers to each response."""
        resp.headers.setdefault("X-Content-Type-Options", "nosniff")
        resp.headers.setdefault("Referrer-Policy", "no-referrer-when-downgrade")
        resp.headers.setdefault("X-Frame-Options", "DENY")
        return resp

    return app


if __name__ == "__main__":
    _app = create_app()
    _app.run(host="127.0.0.1", port=5000, debug=True, threaded=True)


_SQLITE_PRAGMA_STATEMENTS = (
    "PRAGMA foreign_keys=ON;",
    "PRAGMA journal_mode=WAL;",
    "PRAGMA synchronous=NORMAL;",
)


@event.listens_for(Engine, "connect")
def _sqlite_pragmas(dbapi_connection, _) -> None:
    """Apply the PRAGMAs above each time SQLite opens a connection."""
    if not isinstance(dbapi_connection, sqlite3.Connection):
        return
    cur = dbapi_connection.cursor()
    for statement in _SQLITE_PRAGMA_STATEMENTS:
        cur.execute(statement)
    cur.close()
