from __future__ import annotations

from types import SimpleNamespace

from services.catalog_filter import ALL_CATEGORIES, ViewState, filter_entries


def _entry(name, category):
    return SimpleNamespace(name=name, category=category)


ENTRIES = [
    _entry("Snake", "fun"),
    _entry("Sudoku", "puzzle"),
    _entry("Snake Arena", "multiplayer"),
    _entry("Paint", "visual"),
]


def test_all_with_empty_term_keeps_everything_in_order():
    assert filter_entries(ENTRIES, ALL_CATEGORIES, "") == ENTRIES


def test_category_and_term_combine():
    result = filter_entries(ENTRIES, "multiplayer", "snake")
    assert [e.name for e in result] == ["Snake Arena"]


def test_term_is_case_insensitive_substring():
    assert [e.name for e in filter_entries(ENTRIES, ALL_CATEGORIES, "SNA")] == ["Snake", "Snake Arena"]
    assert [e.name for e in filter_entries(ENTRIES, ALL_CATEGORIES, "doku")] == ["Sudoku"]


def test_filter_is_idempotent():
    once = filter_entries(ENTRIES, "fun", "sn")
    assert filter_entries(once, "fun", "sn") == once


def test_unknown_category_yields_nothing():
    assert filter_entries(ENTRIES, "racing", "") == []


def test_view_state_recomputes_on_new_entries():
    state = ViewState()
    state.apply_filter("puzzle", "")
    assert state.filtered == []
    state.set_entries(ENTRIES)
    assert [e.name for e in state.filtered] == ["Sudoku"]


def test_view_state_matches_filter_entries_for_untrimmed_terms():
    state = ViewState()
    state.set_entries(ENTRIES)
    for term in (" ", "snake ", " paint", "Snake A"):
        state.apply_filter(ALL_CATEGORIES, term)
        assert state.search_term == term
        assert state.filtered == filter_entries(ENTRIES, ALL_CATEGORIES, term)
    assert [e.name for e in state.apply_filter(None, " ")] == ["Snake Arena"]


def test_view_state_keeps_entries_on_failure():
    state = ViewState()
    state.set_entries(ENTRIES)
    state.fail("Error loading games: boom")
    assert state.error == "Error loading games: boom"
    assert len(state.entries) == len(ENTRIES)
    assert state.filtered == ENTRIES
