"""Admin console: live catalog/user tables and every mutation workflow."""

from __future__ import annotations

import logging
import threading

from flask import Response, abort, current_app, jsonify, redirect, render_template, request, stream_with_context, url_for

from services.audit import record_audit_event
from services.authz import ROLE_ADMIN, ROLES, USERS_COLLECTION, resolve_role
from services.catalog import CATALOGS, GAMES, TOOLS
from services.errors import StoreError
from services.identity import get_identity_provider
from services.live_updates import SSE_KEEPALIVE, format_sse
from services.mutations import AddEntryWorkflow, ChangeRoleWorkflow, DeleteEntryWorkflow, WorkflowState
from services.notices import ERROR, INFO, notify
from services.rendering import render_catalog, render_users
from services.session_gate import Requirement, page_guard

from .base import catalog_or_404, catalog_store, form_submission_id, notify_result, redirect_back, views

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("security")

LIVE_COLLECTIONS = (GAMES.collection, TOOLS.collection, USERS_COLLECTION)


def render_admin_table(collection: str, entries: list, role: str, viewer_id: str | None):
    if collection == USERS_COLLECTION:
        return render_users(entries, viewer_id)
    return render_catalog(CATALOGS[collection], entries, role, layout="table")


@views.route("/admin")
@page_guard(Requirement.ADMIN)
def admin(ctx):
    catalog = catalog_store()
    tables = {}
    for collection in LIVE_COLLECTIONS:
        entries = []
        try:
            with catalog.subscribe(collection) as channel:
                entries = catalog.first_snapshot(channel)
        except StoreError as exc:
            notify(f"Error loading {collection}: {exc}", ERROR)
        tables[collection] = render_admin_table(collection, entries, ctx.role, ctx.identity_id)
    return render_template(
        "admin.html",
        ctx=ctx,
        tables=tables,
        games=GAMES,
        tools=TOOLS,
        roles=ROLES,
    )


@views.route("/admin/live/<collection>")
@page_guard(Requirement.ADMIN, api=True)
def admin_live(collection, ctx):
    """Server-sent events: a re-rendered table body per snapshot, ``redirect`` on sign-out."""
    if collection not in LIVE_COLLECTIONS:
        abort(404)
    try:
        channel = catalog_store().subscribe(collection)
    except StoreError as exc:
        return jsonify({"error": str(exc)}), 503

    signed_out = threading.Event()

    def _on_identity(identity):
        if identity is None:
            signed_out.set()

    stop_watching = get_identity_provider().on_identity_change(
        _on_identity, identity_id=ctx.identity_id, current=ctx.identity
    )
    released = threading.Event()

    def _release():
        if released.is_set():
            return
        released.set()
        stop_watching()
        channel.close()
        logger.info("live stream closed collection=%s identity=%s", collection, ctx.identity_id)

    keepalive = float(current_app.config.get("LIVE_KEEPALIVE_SECONDS", 15))
    poll = min(1.0, keepalive)

    store = catalog_store().store

    def _still_admin() -> bool:
        if resolve_role(store, ctx.identity_id) == ROLE_ADMIN:
            return True
        security_logger.warning("live stream revoked identity=%s collection=%s", ctx.identity_id, collection)
        return False

    @stream_with_context
    def _events():
        idle = 0.0
        try:
            while True:
                snapshot = channel.receive(timeout=poll)
                if signed_out.is_set():
                    yield format_sse("redirect", url_for("views.index"))
                    return
                if snapshot is None:
                    idle += poll
                    if idle >= keepalive:
                        idle = 0.0
                        if not _still_admin():
                            yield format_sse("redirect", url_for("views.home"))
                            return
                        yield SSE_KEEPALIVE
                    continue
                idle = 0.0
                # a demoted viewer never receives another admin render
                if not _still_admin():
                    yield format_sse("redirect", url_for("views.home"))
                    return
                yield format_sse("snapshot", render_admin_table(collection, snapshot, ctx.role, ctx.identity_id))
        finally:
            _release()

    response = Response(_events(), mimetype="text/event-stream")
    response.headers["Cache-Control"] = "no-cache"
    response.headers["X-Accel-Buffering"] = "no"
    response.call_on_close(_release)
    return response


@views.route("/admin/<catalog>/add", methods=["POST"])
@page_guard(Requirement.ADMIN)
def admin_add_entry(catalog, ctx):
    spec = catalog_or_404(catalog)
    workflow = AddEntryWorkflow(store=catalog_store().store, actor_id=ctx.identity_id, spec=spec)
    result = workflow.run(request.form, form_submission_id())
    notify_result(result)
    if result.ok:
        record_audit_event(f"{spec.noun}_added", {"id": result.record_id, "name": request.form.get("name")})
    return redirect(url_for("views.admin"))


@views.route("/admin/<catalog>/<entry_id>/edit")
@page_guard(Requirement.ADMIN)
def admin_edit_entry(catalog, entry_id, ctx):
    catalog_or_404(catalog)
    notify("Edit feature coming soon", INFO)
    return redirect_back()


@views.route("/admin/<catalog>/<entry_id>/delete", methods=["GET", "POST"])
@page_guard(Requirement.ADMIN)
def admin_delete_entry(catalog, entry_id, ctx):
    spec = catalog_or_404(catalog)
    workflow = DeleteEntryWorkflow(store=catalog_store().store, actor_id=ctx.identity_id, spec=spec)
    failure = workflow.request(entry_id)
    if failure is not None:
        notify_result(failure)
        return redirect_back()

    if request.method == "GET":
        return render_template(
            "confirm_delete.html",
            ctx=ctx,
            spec=spec,
            workflow=workflow,
            entry_id=entry_id,
            next_url=request.args.get("next", ""),
        )

    if request.form.get("confirm") != "yes":
        notify_result(workflow.cancel())
        return redirect_back()

    result = workflow.confirm(form_submission_id())
    notify_result(result)
    if result.outcome == WorkflowState.SUCCESS:
        record_audit_event(f"{spec.noun}_deleted", {"id": entry_id, "name": workflow.entry_name})
    return redirect_back()


@views.route("/admin/users/<user_id>/role", methods=["POST"])
@page_guard(Requirement.ADMIN)
def admin_change_role(user_id, ctx):
    role = request.form.get("role") or ""
    workflow = ChangeRoleWorkflow(store=catalog_store().store, actor_id=ctx.identity_id)
    result = workflow.run(user_id, role, form_submission_id())
    notify_result(result)
    if result.ok:
        record_audit_event("role_changed", {"target": user_id, "role": role.strip().lower()})
    return redirect(url_for("views.admin"))
