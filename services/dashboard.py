# services/dashboard.py
"""Aggregates behind the dashboard page: totals, top game, recents, charts."""
from __future__ import annotations

import json
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import List, Optional

from services.authz import USERS_COLLECTION
from services.catalog import GAMES, TOOLS, CatalogEntry, CatalogStore, _naive_utc
from services.datastore import ASCENDING, utcnow

ACTIVITY_COLLECTION = "game_activity"
ACTIVITY_DAYS = 7
RECENT_LIMIT = 5
NO_TOP_GAME = "-"


@dataclass
class DashboardStats:
    total_users: int = 0
    total_games: int = 0
    total_tools: int = 0
    top_game: Optional[CatalogEntry] = None
    recent_games: list = field(default_factory=list)
    recent_users: list = field(default_factory=list)
    category_counts: dict = field(default_factory=dict)
    activity: List[dict] = field(default_factory=list)

    @property
    def top_game_name(self) -> str:
        return self.top_game.name if self.top_game else NO_TOP_GAME

    def chart_data(self) -> str:
        """JSON handed to the charting widget on the page."""
        payload = json.dumps(
            {
                "categories": {
                    "labels": [GAMES.category_label(key) for key in self.category_counts],
                    "values": list(self.category_counts.values()),
                },
                "activity": {
                    "labels": [row["label"] for row in self.activity],
                    "values": [row["plays"] for row in self.activity],
                },
            }
        )
        # embedded in a <script> block
        return payload.replace("</", "<\\/")


def pick_top_game(games: List[CatalogEntry]) -> Optional[CatalogEntry]:
    """Most played game; with no plays recorded the newest one (games arrive newest first)."""
    if not games:
        return None
    best = max(games, key=lambda game: game.usage)
    if best.usage > 0:
        return best
    return games[0]


def category_distribution(games: List[CatalogEntry]) -> dict:
    counts = Counter(game.category for game in games if game.category)
    ordered = {key: counts[key] for key in GAMES.categories if counts.get(key)}
    for key, value in counts.items():
        ordered.setdefault(key, value)
    return ordered


def daily_activity(played_at: List[datetime], today: date, days: int = ACTIVITY_DAYS) -> List[dict]:
    """Play counts per day for the ``days`` days ending ``today``, oldest first."""
    counts = Counter(value.date() for value in played_at)
    rows = []
    for offset in range(days - 1, -1, -1):
        day = today - timedelta(days=offset)
        rows.append({"date": day.isoformat(), "label": day.strftime("%a"), "plays": counts.get(day, 0)})
    return rows


def collect_dashboard_stats(catalog: CatalogStore, now: datetime | None = None) -> DashboardStats:
    """Load everything the dashboard shows. Store errors propagate to the caller."""
    now = now or utcnow()
    users = catalog.load(USERS_COLLECTION)
    games = catalog.load(GAMES.collection)
    tools = catalog.load(TOOLS.collection)

    since = datetime.combine(now.date() - timedelta(days=ACTIVITY_DAYS - 1), datetime.min.time())
    activity_docs = catalog.store.query_ordered(ACTIVITY_COLLECTION, "playedAt", ASCENDING, min_value=since)
    played_at = [stamp for stamp in (_naive_utc(doc.fields.get("playedAt")) for doc in activity_docs) if stamp]

    return DashboardStats(
        total_users=len(users),
        total_games=len(games),
        total_tools=len(tools),
        top_game=pick_top_game(games),
        recent_games=games[:RECENT_LIMIT],
        recent_users=users[:RECENT_LIMIT],
        category_counts=category_distribution(games),
        activity=daily_activity(played_at, now.date()),
    )


__all__ = [
    "ACTIVITY_COLLECTION",
    "DashboardStats",
    "NO_TOP_GAME",
    "category_distribution",
    "collect_dashboard_stats",
    "daily_activity",
    "pick_top_game",
]
