"""Games and tools pages, the as-you-type grid partial, and play/use redirects."""

from __future__ import annotations

import logging

from flask import jsonify, redirect, render_template, request, url_for

from services.catalog import GAMES, TOOLS, CatalogSpec
from services.catalog_filter import ALL_CATEGORIES, ViewState
from services.dashboard import ACTIVITY_COLLECTION
from services.datastore import SERVER_TIMESTAMP, get_store
from services.errors import RecordNotFound, StoreError
from services.notices import ERROR, notify
from services.rendering import normalize_link, render_catalog
from services.session_gate import Requirement, SessionContext, page_guard

from .base import catalog_or_404, catalog_store, views

logger = logging.getLogger(__name__)


def load_view_state(spec: CatalogSpec) -> ViewState:
    """One-shot load of a catalog, filtered by the ``category``/``q`` query args."""
    state = ViewState()
    try:
        state.set_entries(catalog_store().load(spec.collection))
    except StoreError as exc:
        state.fail(f"Error loading {spec.collection}: {exc}")
    state.apply_filter(
        request.args.get("category", ALL_CATEGORIES),
        request.args.get("q", ""),
    )
    return state


def _catalog_page(spec: CatalogSpec, ctx: SessionContext):
    state = load_view_state(spec)
    if state.error:
        notify(state.error, ERROR)
    return render_template(
        "catalog.html",
        spec=spec,
        state=state,
        ctx=ctx,
        grid=render_catalog(spec, state.filtered, ctx.role),
    )


@views.route("/home")
@page_guard(Requirement.AUTHENTICATED)
def home(ctx):
    return _catalog_page(GAMES, ctx)


@views.route("/tools")
@page_guard(Requirement.AUTHENTICATED)
def tools(ctx):
    return _catalog_page(TOOLS, ctx)


@views.route("/<catalog>/grid")
@page_guard(Requirement.AUTHENTICATED, api=True)
def catalog_grid(catalog, ctx):
    spec = catalog_or_404(catalog)
    state = load_view_state(spec)
    if state.error:
        return jsonify({"error": state.error}), 503
    return render_catalog(spec, state.filtered, ctx.role)


def _open_entry(spec: CatalogSpec, entry_id: str, ctx: SessionContext):
    """Count one use of the entry, then send the browser to its link."""
    store = get_store()
    back = url_for("views.home" if spec is GAMES else "views.tools")
    try:
        record = store.get_record(spec.collection, entry_id)
    except StoreError as exc:
        notify(f"Error loading {spec.noun}: {exc}", ERROR)
        return redirect(back)
    if record is None:
        notify(f"{spec.title} not found.", ERROR)
        return redirect(back)

    target = normalize_link(record.get("link"))
    if target is None:
        notify("Invalid link", ERROR)
        return redirect(back)

    try:
        store.increment(spec.collection, entry_id, spec.counter_field)
        if spec is GAMES:
            store.add_record(
                ACTIVITY_COLLECTION,
                {"userId": ctx.identity_id, "gameId": entry_id, "playedAt": SERVER_TIMESTAMP},
            )
    except RecordNotFound:
        notify(f"{spec.title} not found.", ERROR)
        return redirect(back)
    except StoreError as exc:
        # the visitor still gets where they were going
        logger.warning("Usage tracking failed for %s/%s: %s", spec.collection, entry_id, exc)
    return redirect(target)


@views.route("/games/<entry_id>/play")
@page_guard(Requirement.AUTHENTICATED)
def play_game(entry_id, ctx):
    return _open_entry(GAMES, entry_id, ctx)


@views.route("/tools/<entry_id>/use")
@page_guard(Requirement.AUTHENTICATED)
def use_tool(entry_id, ctx):
    return _open_entry(TOOLS, entry_id, ctx)
