from __future__ import annotations

import pytest

from extensions import cache
from services.catalog import GAMES, TOOLS
from services.datastore import SERVER_TIMESTAMP
from services.mutations import (
    MISSING_FIELDS_MESSAGE,
    AddEntryWorkflow,
    ChangeRoleWorkflow,
    DeleteEntryWorkflow,
    SubmissionGuard,
    WorkflowState,
    WorkflowStateError,
)

from fakes import BrokenStore, MemoryStore

SNAKE = {"name": "Snake", "icon": "fas fa-gamepad", "category": "fun", "link": "snake.com"}


@pytest.fixture(autouse=True)
def app_ctx(app):
    with app.app_context():
        cache.clear()
        yield


def test_add_writes_entry_with_server_fields():
    store = MemoryStore()
    result = AddEntryWorkflow(store=store, actor_id="admin-1", spec=GAMES).run(SNAKE, SubmissionGuard.issue())
    assert result.ok
    assert result.message == "Game added!"
    record = store.get_record("games", result.record_id)
    assert record["createdBy"] == "admin-1"
    assert record["createdAt"] is not None and record["createdAt"] is not SERVER_TIMESTAMP
    assert record["plays"] == 0
    assert record["description"] is None


@pytest.mark.parametrize("missing", ["name", "icon", "category", "link"])
def test_add_with_missing_field_writes_nothing(missing):
    store = MemoryStore()
    form = dict(SNAKE, **{missing: "   "})
    workflow = AddEntryWorkflow(store=store, actor_id="admin-1", spec=GAMES)
    result = workflow.run(form)
    assert result.outcome == WorkflowState.IDLE
    assert result.level == "warning"
    assert result.message == MISSING_FIELDS_MESSAGE
    assert store.writes == []
    assert workflow.history == [WorkflowState.IDLE, WorkflowState.VALIDATING, WorkflowState.IDLE]


def test_add_rejects_category_outside_vocabulary():
    store = MemoryStore()
    result = AddEntryWorkflow(store=store, spec=TOOLS).run(dict(SNAKE, category="fun"))
    assert not result.ok
    assert store.writes == []


def test_add_rejects_unsafe_links():
    store = MemoryStore()
    result = AddEntryWorkflow(store=store, spec=GAMES).run(dict(SNAKE, link="javascript:alert(1)"))
    assert not result.ok
    assert store.writes == []


def test_add_failure_surfaces_store_message():
    workflow = AddEntryWorkflow(store=BrokenStore("quota exceeded"), spec=GAMES)
    result = workflow.run(SNAKE)
    assert result.outcome == WorkflowState.FAILED
    assert result.message == "Error adding game: quota exceeded"
    assert workflow.state == WorkflowState.IDLE


def test_duplicate_submission_is_rejected():
    store = MemoryStore()
    submission = SubmissionGuard.issue()
    first = AddEntryWorkflow(store=store, spec=GAMES).run(SNAKE, submission)
    second = AddEntryWorkflow(store=store, spec=GAMES).run(SNAKE, submission)
    assert first.ok
    assert not second.ok
    assert second.level == "warning"
    assert len(store.collections["games"]) == 1


def test_delete_requires_confirmation():
    store = MemoryStore()
    store.set_record("games", "g1", dict(SNAKE, createdAt=1))
    workflow = DeleteEntryWorkflow(store=store, spec=GAMES)
    assert workflow.request("g1") is None
    assert workflow.state == WorkflowState.CONFIRMING
    assert workflow.prompt == 'Are you sure you want to delete game "Snake"?'
    assert store.get_record("games", "g1") is not None

    result = workflow.confirm(SubmissionGuard.issue())
    assert result.ok
    assert store.get_record("games", "g1") is None


def test_cancelled_delete_leaves_entry():
    store = MemoryStore()
    store.set_record("tools", "t1", dict(SNAKE, category="utility", createdAt=1))
    workflow = DeleteEntryWorkflow(store=store, spec=TOOLS)
    workflow.request("t1")
    result = workflow.cancel()
    assert result.level == "info"
    assert store.get_record("tools", "t1") is not None
    assert ("delete", "tools", "t1") not in store.writes


def test_confirm_without_request_is_refused():
    with pytest.raises(WorkflowStateError):
        DeleteEntryWorkflow(store=MemoryStore(), spec=GAMES).confirm()


def test_delete_of_missing_entry_reports_not_found():
    result = DeleteEntryWorkflow(store=MemoryStore(), spec=GAMES).request("nope")
    assert result is not None
    assert result.level == "error"


def test_change_role_updates_record():
    store = MemoryStore()
    store.set_record("users", "u2", {"email": "bob@example.com", "role": "user"})
    result = ChangeRoleWorkflow(store=store, actor_id="u1").run("u2", "Admin")
    assert result.ok
    assert store.get_record("users", "u2")["role"] == "admin"
    assert store.get_record("users", "u2")["email"] == "bob@example.com"


def test_change_role_refuses_unknown_role_and_self():
    store = MemoryStore()
    store.set_record("users", "u1", {"email": "a@example.com", "role": "admin"})
    assert not ChangeRoleWorkflow(store=store, actor_id="u1").run("u1", "user").ok
    assert not ChangeRoleWorkflow(store=store, actor_id="u2").run("u1", "owner").ok
    assert store.get_record("users", "u1")["role"] == "admin"


def test_submission_without_id_is_allowed(app):
    guard = SubmissionGuard()
    assert guard.claim(None)
    assert guard.claim("")
