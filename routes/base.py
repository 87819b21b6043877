"""Shared blueprint and helper utilities for portal routes."""

from __future__ import annotations

from flask import Blueprint, abort, current_app, redirect, request, url_for

from services.catalog import CatalogSpec, CatalogStore, get_catalog
from services.datastore import get_store
from services.mutations import WorkflowResult
from services.notices import notify

views = Blueprint("views", __name__)


def catalog_store() -> CatalogStore:
    return CatalogStore(get_store(), timeout=current_app.config.get("STORE_TIMEOUT_SECONDS"))


def catalog_or_404(name: str) -> CatalogSpec:
    spec = get_catalog(name)
    if spec is None:
        abort(404)
    return spec


def form_submission_id() -> str | None:
    return (request.form.get("submission_id") or "").strip() or None


def notify_result(result: WorkflowResult) -> None:
    notify(result.message, result.level)


def redirect_back(default_endpoint: str = "views.admin"):
    """Redirect to a same-site ``next`` target, else ``default_endpoint``."""
    target = request.values.get("next") or ""
    if target.startswith("/") and not target.startswith("//"):
        return redirect(target)
    return redirect(url_for(default_endpoint))
