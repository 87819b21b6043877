"""Turn catalog snapshots into markup.

Every render returns the complete contents of its container (grid, table
body, user rows); callers swap the whole thing in. Empty inputs render a
placeholder, never an empty string.
"""
from __future__ import annotations

import re
from datetime import datetime
from typing import Iterable, Optional

from flask import current_app, has_app_context, render_template
from markupsafe import Markup

from services.authz import is_admin
from services.catalog import CatalogSpec
from services.datastore import utcnow

FONT_ICON_MARKER = "fa-"
DATE_UNAVAILABLE = "Date unavailable"
DEFAULT_DATE_FORMAT = "%d %b %Y"
USERS_EMPTY_MESSAGE = "No users yet"

LAYOUT_TEMPLATES = {
    "grid": "partials/catalog_grid.html",
    "table": "partials/catalog_table.html",
    "recent": "partials/catalog_recent.html",
}

_HTTP_SCHEME = re.compile(r"^https?://", re.IGNORECASE)
_UNSAFE_SCHEMES = ("javascript:", "data:", "vbscript:", "file:")


def icon_is_font(icon: str | None) -> bool:
    return FONT_ICON_MARKER in (icon or "")


def entry_icon(entry, spec: CatalogSpec) -> str:
    return entry.icon or spec.default_icon


def normalize_link(link: str | None) -> Optional[str]:
    """Return an http(s) URL for the link, prefixing https:// when no scheme is given.

    Links carrying any other scheme come back as None.
    """
    link = (link or "").strip()
    if not link:
        return None
    if _HTTP_SCHEME.match(link):
        return link
    if "://" in link or link.lower().startswith(_UNSAFE_SCHEMES):
        return None
    return f"https://{link}"


def format_relative_date(value: datetime | None, now: datetime | None = None, fmt: str | None = None) -> str:
    """Relative wording (Today, Yesterday, N days ago) within a week, a calendar date after that."""
    if value is None:
        return DATE_UNAVAILABLE
    now = now or utcnow()
    days = (now - value).days
    if days <= 0:
        return "Today"
    if days == 1:
        return "Yesterday"
    if days < 7:
        return f"{days} days ago"
    if fmt is None:
        fmt = current_app.config.get("DATE_DISPLAY_FORMAT", DEFAULT_DATE_FORMAT) if has_app_context() else DEFAULT_DATE_FORMAT
    return value.strftime(fmt)


def render_catalog(spec: CatalogSpec, entries: Iterable, role: str | None, layout: str = "grid") -> Markup:
    """Render a whole catalog container; admins get edit/delete next to the primary action."""
    template = LAYOUT_TEMPLATES.get(layout)
    if template is None:
        raise ValueError(f"Unknown layout: {layout}")
    return Markup(
        render_template(
            template,
            spec=spec,
            entries=list(entries),
            is_admin=is_admin(role),
        )
    )


def render_users(entries: Iterable, viewer_id: str | None = None) -> Markup:
    return Markup(
        render_template(
            "partials/users_table.html",
            entries=list(entries),
            viewer_id=viewer_id,
            empty_message=USERS_EMPTY_MESSAGE,
        )
    )


def register_template_helpers(app) -> None:
    app.jinja_env.filters["relative_date"] = format_relative_date
    app.jinja_env.globals.update(
        icon_is_font=icon_is_font,
        entry_icon=entry_icon,
    )


__all__ = [
    "DATE_UNAVAILABLE",
    "FONT_ICON_MARKER",
    "USERS_EMPTY_MESSAGE",
    "entry_icon",
    "format_relative_date",
    "icon_is_font",
    "normalize_link",
    "register_template_helpers",
    "render_catalog",
    "render_users",
]
