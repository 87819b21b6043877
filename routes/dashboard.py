"""Dashboard landing page for signed-in users."""

from __future__ import annotations

from flask import render_template

from services.catalog import GAMES
from services.dashboard import DashboardStats, collect_dashboard_stats
from services.errors import StoreError
from services.notices import ERROR, notify
from services.rendering import render_catalog
from services.session_gate import Requirement, page_guard

from .base import catalog_store, views


@views.route("/dashboard")
@page_guard(Requirement.AUTHENTICATED)
def dashboard(ctx):
    try:
        stats = collect_dashboard_stats(catalog_store())
    except StoreError as exc:
        notify(f"Error loading dashboard: {exc}", ERROR)
        stats = DashboardStats()
    return render_template(
        "dashboard.html",
        ctx=ctx,
        stats=stats,
        recent_games=render_catalog(GAMES, stats.recent_games, ctx.role, layout="recent"),
        chart_data=stats.chart_data(),
    )
