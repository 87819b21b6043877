from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from services.catalog import GAMES, TOOLS, CatalogEntry, UserEntry
from services.rendering import (
    DATE_UNAVAILABLE,
    format_relative_date,
    icon_is_font,
    normalize_link,
    render_catalog,
    render_users,
)

NOW = datetime(2024, 5, 20, 12, 0, 0)


@pytest.mark.parametrize(
    "link, expected",
    [
        ("snake.com", "https://snake.com"),
        ("http://snake.com", "http://snake.com"),
        ("HTTPS://snake.com/play", "HTTPS://snake.com/play"),
        ("  example.org/x  ", "https://example.org/x"),
        ("javascript:alert(1)", None),
        ("ftp://files.example.com", None),
        ("", None),
        (None, None),
    ],
)
def test_normalize_link(link, expected):
    assert normalize_link(link) == expected


def test_relative_dates():
    assert format_relative_date(NOW - timedelta(hours=3), now=NOW) == "Today"
    assert format_relative_date(NOW - timedelta(days=1, hours=1), now=NOW) == "Yesterday"
    assert format_relative_date(NOW - timedelta(days=4), now=NOW) == "4 days ago"
    assert format_relative_date(datetime(2024, 5, 1), now=NOW, fmt="%d %b %Y") == "01 May 2024"
    assert format_relative_date(None, now=NOW) == DATE_UNAVAILABLE


def test_future_timestamps_read_as_today():
    assert format_relative_date(NOW + timedelta(minutes=5), now=NOW) == "Today"


def test_icon_font_marker():
    assert icon_is_font("fas fa-gamepad")
    assert not icon_is_font("https://cdn.example.com/snake.png")
    assert not icon_is_font(None)


def _game(**overrides):
    data = dict(id="g1", name="Snake", icon="fas fa-gamepad", category="fun", link="snake.com")
    data.update(overrides)
    return CatalogEntry(**data)


def test_empty_catalog_renders_placeholder(app):
    with app.test_request_context():
        assert "No games found" in render_catalog(GAMES, [], "user")
        assert "No tools found" in render_catalog(TOOLS, [], "admin", layout="table")
        assert "No users yet" in render_users([])


def test_admin_sees_edit_and_delete(app):
    with app.test_request_context():
        as_user = render_catalog(GAMES, [_game()], "user")
        as_admin = render_catalog(GAMES, [_game()], "admin")
    assert "Play" in as_user and "Delete" not in as_user and "Edit" not in as_user
    assert "Play" in as_admin and "Delete" in as_admin and "Edit" in as_admin
    assert "/games/g1/play" in as_admin


def test_render_uses_placeholders_for_missing_fields(app):
    with app.test_request_context():
        html = render_catalog(TOOLS, [_game(icon="", category="other", description=None)], "user")
    assert "A handy tool for gamers!" in html
    assert "fas fa-tools" in html
    assert "Other" in html
    assert DATE_UNAVAILABLE in html
    assert "/tools/g1/use" in html


def test_image_icons_render_as_img(app):
    with app.test_request_context():
        html = render_catalog(GAMES, [_game(icon="https://img.example.com/snake.png")], "user")
    assert '<img src="https://img.example.com/snake.png"' in html


def test_names_are_escaped(app):
    with app.test_request_context():
        html = render_catalog(GAMES, [_game(name="<script>x</script>")], "user")
    assert "<script>x</script>" not in html


def test_users_table_hides_role_form_for_viewer(app):
    users = [UserEntry(id="u1", email="me@example.com", role="admin"), UserEntry(id="u2", email="you@example.com")]
    with app.test_request_context():
        html = render_users(users, viewer_id="u1")
    assert html.count("Edit Role") == 1
    assert "/admin/users/u2/role" in html


def test_unknown_layout_rejected(app):
    with app.test_request_context():
        with pytest.raises(ValueError):
            render_catalog(GAMES, [], "user", layout="carousel")
