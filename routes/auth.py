"""Landing page, sign-in, registration and sign-out."""

from __future__ import annotations

import logging

from flask import current_app, redirect, render_template, request, session, url_for
from flask_login import login_user, logout_user

from extensions import cache, limiter
from services.audit import record_audit_event
from services.authz import ROLE_USER, USERS_COLLECTION, role_for_new_identity
from services.datastore import SERVER_TIMESTAMP, get_store
from services.errors import AuthError, StoreError
from services.identity import SessionUser, get_identity_provider, is_valid_email, normalize_email
from services.notices import ERROR, SUCCESS, WARNING, auth_error_message, notify
from services.session_gate import Requirement, page_guard

from .base import views

security_logger = logging.getLogger("security")


def _auth_rate_limit() -> str:
    return current_app.config.get("AUTH_RATELIMIT", "20 per minute")


def _render_index(mode: str = "login", email: str = "", status: int = 200):
    return (
        render_template(
            "index.html",
            mode=mode,
            email=email,
            min_password_length=current_app.config.get("MIN_PASSWORD_LENGTH", 6),
        ),
        status,
    )


def ensure_user_record(store, identity) -> None:
    """Refresh lastLogin, creating the users record (role user) when it is missing."""
    if store.get_record(USERS_COLLECTION, identity.id) is None:
        store.set_record(
            USERS_COLLECTION,
            identity.id,
            {
                "email": identity.email,
                "role": ROLE_USER,
                "createdAt": SERVER_TIMESTAMP,
                "lastLogin": SERVER_TIMESTAMP,
            },
        )
        return
    store.set_record(USERS_COLLECTION, identity.id, {"lastLogin": SERVER_TIMESTAMP}, merge=True)


@views.route("/")
@page_guard(Requirement.NONE, public_only=True)
def index(ctx):
    mode = "register" if request.args.get("mode") == "register" else "login"
    return _render_index(mode)


@views.route("/login", methods=["POST"])
@limiter.limit(_auth_rate_limit, methods=["POST"])
@page_guard(Requirement.NONE, public_only=True)
def login(ctx):
    email = normalize_email(request.form.get("email"))
    password = request.form.get("password") or ""
    if not email or not password:
        notify("Please enter your email and password.", WARNING)
        return _render_index("login", email, 400)

    try:
        identity = get_identity_provider().sign_in(email, password)
    except AuthError as err:
        notify(auth_error_message(err), ERROR)
        return _render_index("login", email, 401)

    try:
        ensure_user_record(get_store(), identity)
    except StoreError as exc:
        # the session still starts; role resolution falls back to user
        security_logger.warning("user record refresh failed identity=%s: %s", identity.id, exc)

    login_user(SessionUser(identity), remember=False, fresh=True)
    record_audit_event("login", {"email": identity.email}, user_id=identity.id)
    return redirect(url_for("views.home"))


@views.route("/register", methods=["POST"])
@limiter.limit(_auth_rate_limit, methods=["POST"])
@page_guard(Requirement.NONE, public_only=True)
def register(ctx):
    email = normalize_email(request.form.get("email"))
    password = request.form.get("password") or ""
    confirm = request.form.get("confirm_password") or ""
    min_length = current_app.config.get("MIN_PASSWORD_LENGTH", 6)

    if not email or not password:
        notify("Email and password are required.", WARNING)
        return _render_index("register", email, 400)
    if not is_valid_email(email):
        notify("Invalid email address", WARNING)
        return _render_index("register", email, 400)
    if len(password) < min_length:
        notify(f"Password must be at least {min_length} characters long.", WARNING)
        return _render_index("register", email, 400)
    if password != confirm:
        notify("Passwords do not match.", WARNING)
        return _render_index("register", email, 400)

    store = get_store()
    try:
        role = role_for_new_identity(store)
    except StoreError as exc:
        security_logger.warning("bootstrap role lookup failed: %s", exc)
        role = ROLE_USER

    try:
        identity = get_identity_provider().sign_up(email, password)
    except AuthError as err:
        notify(auth_error_message(err), ERROR)
        return _render_index("register", email, 400)

    try:
        store.set_record(
            USERS_COLLECTION,
            identity.id,
            {"email": identity.email, "role": role, "createdAt": SERVER_TIMESTAMP, "lastLogin": None},
        )
    except StoreError as exc:
        security_logger.warning("user record creation failed identity=%s: %s", identity.id, exc)
        notify(f"Account created, but the profile could not be saved: {exc}", WARNING)
    record_audit_event("user_registered", {"email": identity.email, "role": role}, user_id=identity.id)
    notify("Registration successful! Please sign in.", SUCCESS)
    return redirect(url_for("views.index"))


@views.route("/logout", methods=["POST"])
@page_guard(Requirement.AUTHENTICATED)
def logout(ctx):
    record_audit_event("logout", {"email": ctx.identity.email})
    get_identity_provider().sign_out(ctx.identity)
    cache.delete(f"identity:{ctx.identity.id}")
    logout_user()
    session.clear()
    notify("Signed out successfully.", SUCCESS)
    return redirect(url_for("views.index"))
