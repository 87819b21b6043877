"""Add/delete catalog entries and change user roles.

Each workflow walks ``IDLE -> VALIDATING -> SUBMITTING -> SUCCESS|FAILED -> IDLE``
(delete also passes through ``CONFIRMING``). Validation failures go straight
back to ``IDLE`` without touching the store, and nothing is retried.
"""
from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

from flask import current_app

from extensions import cache
from services.authz import ROLES, USERS_COLLECTION
from services.catalog import CatalogSpec
from services.datastore import SERVER_TIMESTAMP, DocumentStore
from services.errors import PortalError, StoreError, ValidationError
from services.notices import ERROR, INFO, SUCCESS, WARNING
from services.rendering import normalize_link

logger = logging.getLogger(__name__)

REQUIRED_ENTRY_FIELDS = ("name", "icon", "category", "link")
MISSING_FIELDS_MESSAGE = "Please fill in all required fields."
DUPLICATE_SUBMISSION_MESSAGE = "This form was already submitted."


class WorkflowState(str, enum.Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    CONFIRMING = "confirming"
    SUBMITTING = "submitting"
    SUCCESS = "success"
    FAILED = "failed"


_TRANSITIONS = {
    WorkflowState.IDLE: {WorkflowState.VALIDATING},
    WorkflowState.VALIDATING: {WorkflowState.IDLE, WorkflowState.CONFIRMING, WorkflowState.SUBMITTING, WorkflowState.FAILED},
    WorkflowState.CONFIRMING: {WorkflowState.IDLE, WorkflowState.SUBMITTING},
    WorkflowState.SUBMITTING: {WorkflowState.SUCCESS, WorkflowState.FAILED},
    WorkflowState.SUCCESS: {WorkflowState.IDLE},
    WorkflowState.FAILED: {WorkflowState.IDLE},
}


class WorkflowStateError(PortalError):
    """Raised on a transition the state machine does not allow."""


@dataclass
class WorkflowResult:
    outcome: WorkflowState
    level: str
    message: str
    record_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome == WorkflowState.SUCCESS


class SubmissionGuard:
    """One-time form submission ids, claimed in the shared cache."""

    prefix = "submission:"

    @staticmethod
    def issue() -> str:
        return uuid.uuid4().hex

    def claim(self, submission_id: str | None) -> bool:
        if not submission_id:
            # forms without an id cannot be deduplicated; let them through
            return True
        ttl = int(current_app.config.get("SUBMISSION_GUARD_TTL", 3600))
        return bool(cache.add(f"{self.prefix}{submission_id}", "claimed", timeout=ttl))


@dataclass
class MutationWorkflow:
    store: DocumentStore
    actor_id: Optional[str] = None
    guard: SubmissionGuard = field(default_factory=SubmissionGuard)
    state: WorkflowState = WorkflowState.IDLE
    history: List[WorkflowState] = field(default_factory=lambda: [WorkflowState.IDLE])

    def _move(self, state: WorkflowState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise WorkflowStateError(f"Cannot go from {self.state.value} to {state.value}")
        self.state = state
        self.history.append(state)

    def _rejected(self, message: str, level: str = WARNING) -> WorkflowResult:
        self._move(WorkflowState.IDLE)
        return WorkflowResult(WorkflowState.IDLE, level, message)

    def _finish(self, outcome: WorkflowState, level: str, message: str, record_id: str | None = None) -> WorkflowResult:
        self._move(outcome)
        self._move(WorkflowState.IDLE)
        return WorkflowResult(outcome, level, message, record_id)

    def _claim(self, submission_id: str | None) -> bool:
        return self.guard.claim(submission_id)


def validate_entry(spec: CatalogSpec, form: Mapping[str, Any]) -> dict:
    """Return store-ready fields for a new entry or raise ValidationError."""
    values = {key: (form.get(key) or "").strip() for key in (*REQUIRED_ENTRY_FIELDS, "description")}
    missing = [key for key in REQUIRED_ENTRY_FIELDS if not values[key]]
    if missing:
        raise ValidationError(MISSING_FIELDS_MESSAGE, field=missing[0])
    if values["category"] not in spec.categories:
        raise ValidationError(f"Unknown {spec.noun} category: {values['category']}", field="category")
    if normalize_link(values["link"]) is None:
        raise ValidationError("Links must use http or https.", field="link")
    return {
        "name": values["name"],
        "icon": values["icon"],
        "category": values["category"],
        "link": values["link"],
        "description": values["description"] or None,
        spec.counter_field: 0,
    }


@dataclass
class AddEntryWorkflow(MutationWorkflow):
    spec: Optional[CatalogSpec] = None

    def run(self, form: Mapping[str, Any], submission_id: str | None = None) -> WorkflowResult:
        spec = self.spec
        self._move(WorkflowState.VALIDATING)
        try:
            fields = validate_entry(spec, form)
        except ValidationError as err:
            return self._rejected(err.message)
        if not self._claim(submission_id):
            return self._rejected(DUPLICATE_SUBMISSION_MESSAGE)

        self._move(WorkflowState.SUBMITTING)
        fields.update(createdAt=SERVER_TIMESTAMP, createdBy=self.actor_id)
        try:
            record_id = self.store.add_record(spec.collection, fields)
        except StoreError as exc:
            logger.warning("Adding %s failed: %s", spec.noun, exc)
            return self._finish(WorkflowState.FAILED, ERROR, f"Error adding {spec.noun}: {exc}")
        return self._finish(WorkflowState.SUCCESS, SUCCESS, f"{spec.title} added!", record_id)


@dataclass
class DeleteEntryWorkflow(MutationWorkflow):
    spec: Optional[CatalogSpec] = None
    entry_id: Optional[str] = None
    entry_name: Optional[str] = None

    def request(self, entry_id: str) -> WorkflowResult | None:
        """Look the entry up and wait for confirmation; returns a result only on failure."""
        spec = self.spec
        self._move(WorkflowState.VALIDATING)
        try:
            record = self.store.get_record(spec.collection, entry_id)
        except StoreError as exc:
            self._move(WorkflowState.FAILED)
            self._move(WorkflowState.IDLE)
            return WorkflowResult(WorkflowState.FAILED, ERROR, f"Error loading {spec.noun}: {exc}")
        if record is None:
            return self._rejected(f"{spec.title} not found.", ERROR)
        self.entry_id = entry_id
        self.entry_name = record.get("name") or spec.title
        self._move(WorkflowState.CONFIRMING)
        return None

    @property
    def prompt(self) -> str:
        return f'Are you sure you want to delete {self.spec.noun} "{self.entry_name}"?'

    def cancel(self) -> WorkflowResult:
        if self.state != WorkflowState.CONFIRMING:
            raise WorkflowStateError("Nothing to cancel")
        return self._rejected("Deletion cancelled.", INFO)

    def confirm(self, submission_id: str | None = None) -> WorkflowResult:
        if self.state != WorkflowState.CONFIRMING:
            raise WorkflowStateError("Delete must be confirmed after a request")
        spec = self.spec
        if not self._claim(submission_id):
            return self._rejected(DUPLICATE_SUBMISSION_MESSAGE)
        self._move(WorkflowState.SUBMITTING)
        try:
            self.store.delete_record(spec.collection, self.entry_id)
        except StoreError as exc:
            logger.warning("Deleting %s %s failed: %s", spec.noun, self.entry_id, exc)
            return self._finish(WorkflowState.FAILED, ERROR, f"Error deleting {spec.noun}: {exc}")
        return self._finish(WorkflowState.SUCCESS, SUCCESS, f"{spec.title} deleted!", self.entry_id)


@dataclass
class ChangeRoleWorkflow(MutationWorkflow):
    def run(self, target_id: str, role: str, submission_id: str | None = None) -> WorkflowResult:
        self._move(WorkflowState.VALIDATING)
        role = (role or "").strip().lower()
        if role not in ROLES:
            return self._rejected(f"Unknown role: {role or '(empty)'}")
        if target_id == self.actor_id:
            return self._rejected("You cannot change your own role.")
        try:
            record = self.store.get_record(USERS_COLLECTION, target_id)
        except StoreError as exc:
            self._move(WorkflowState.FAILED)
            self._move(WorkflowState.IDLE)
            return WorkflowResult(WorkflowState.FAILED, ERROR, f"Error loading user: {exc}")
        if record is None:
            return self._rejected("User not found.", ERROR)
        if not self._claim(submission_id):
            return self._rejected(DUPLICATE_SUBMISSION_MESSAGE)

        self._move(WorkflowState.SUBMITTING)
        try:
            self.store.set_record(USERS_COLLECTION, target_id, {"role": role}, merge=True)
        except StoreError as exc:
            return self._finish(WorkflowState.FAILED, ERROR, f"Error updating role: {exc}")
        email = record.get("email") or target_id
        return self._finish(WorkflowState.SUCCESS, SUCCESS, f"{email} is now {role}.", target_id)


__all__ = [
    "AddEntryWorkflow",
    "ChangeRoleWorkflow",
    "DeleteEntryWorkflow",
    "MISSING_FIELDS_MESSAGE",
    "REQUIRED_ENTRY_FIELDS",
    "SubmissionGuard",
    "WorkflowResult",
    "WorkflowState",
    "WorkflowStateError",
    "validate_entry",
]
