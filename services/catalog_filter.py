"""Category + free-text filtering of catalog entries, and the per-page view state."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple

ALL_CATEGORIES = "all"


def filter_entries(entries: Sequence[Any], category: str = ALL_CATEGORIES, search_term: str = "") -> List[Any]:
    """Keep entries matching the category and whose name contains the term.

    Pure and order-preserving: the input ordering (newest first, from the
    store) is never re-sorted here.
    """
    category = category or ALL_CATEGORIES
    needle = (search_term or "").lower()
    return [
        entry
        for entry in entries
        if (category == ALL_CATEGORIES or entry.category == category)
        and (not needle or needle in (entry.name or "").lower())
    ]


@dataclass
class ViewState:
    """Everything one catalog page shows; `filtered` is always derived, never patched."""

    category: str = ALL_CATEGORIES
    search_term: str = ""
    entries: List[Any] = field(default_factory=list)
    filtered: List[Any] = field(default_factory=list)
    error: Optional[str] = None
    _last_key: Optional[Tuple[str, str]] = field(default=None, repr=False)

    def set_entries(self, entries: Sequence[Any]) -> List[Any]:
        self.entries = list(entries)
        self.error = None
        self._last_key = None
        return self.recompute()

    def apply_filter(self, category: str | None = None, search_term: str | None = None) -> List[Any]:
        if category is not None:
            self.category = category.strip() or ALL_CATEGORIES
        if search_term is not None:
            self.search_term = search_term
        return self.recompute()

    def recompute(self) -> List[Any]:
        key = (self.category, self.search_term.lower())
        if key == self._last_key:
            return self.filtered
        self.filtered = filter_entries(self.entries, self.category, self.search_term)
        self._last_key = key
        return self.filtered

    def fail(self, message: str) -> None:
        """Record a load failure while keeping whatever was shown before."""
        self.error = message


__all__ = ["ALL_CATEGORIES", "ViewState", "filter_entries"]
