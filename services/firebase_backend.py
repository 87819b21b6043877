"""`firebase` backend: Cloud Firestore documents and Firebase Authentication identities.

Account management goes through the Admin SDK; password sign-in has no Admin
SDK call, so it posts to the Identity Toolkit REST endpoint with the project's
web API key. Every network call carries ``STORE_TIMEOUT_SECONDS``.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import firebase_admin
import requests
from firebase_admin import auth, credentials, firestore
from firebase_admin import exceptions as firebase_exceptions
from google.api_core import exceptions as google_exceptions
from google.cloud.firestore_v1.base_query import FieldFilter

from services.datastore import (
    DESCENDING,
    SERVER_TIMESTAMP,
    Document,
    DocumentStore,
    SnapshotCallback,
    Unsubscribe,
)
from services.errors import AuthError, RecordNotFound, StoreError, StoreTimeout
from services.identity import (
    PROVIDER_MIN_PASSWORD_LENGTH,
    Identity,
    IdentityProvider,
    is_valid_email,
    normalize_email,
)

logger = logging.getLogger("store")
security_logger = logging.getLogger("security")

FIREBASE_APP_NAME = "portal"
SIGN_IN_URL = "https://identitytoolkit.googleapis.com/v1/accounts:signInWithPassword"

# Identity Toolkit error message -> provider-neutral code
FIREBASE_ERROR_CODES = {
    "EMAIL_EXISTS": AuthError.EMAIL_IN_USE,
    "INVALID_EMAIL": AuthError.INVALID_EMAIL,
    "MISSING_EMAIL": AuthError.INVALID_EMAIL,
    "EMAIL_NOT_FOUND": AuthError.USER_NOT_FOUND,
    "USER_DISABLED": AuthError.USER_NOT_FOUND,
    "INVALID_PASSWORD": AuthError.WRONG_PASSWORD,
    "MISSING_PASSWORD": AuthError.WRONG_PASSWORD,
    "INVALID_LOGIN_CREDENTIALS": AuthError.WRONG_PASSWORD,
    "WEAK_PASSWORD": AuthError.WEAK_PASSWORD,
    "TOO_MANY_ATTEMPTS_TRY_LATER": AuthError.TOO_MANY_ATTEMPTS,
}


def map_firebase_error(message: str | None) -> AuthError:
    """Turn an Identity Toolkit message such as ``WEAK_PASSWORD : Password should be...`` into an AuthError."""
    raw = (message or "").strip()
    key = raw.split(":", 1)[0].strip().upper()
    code = FIREBASE_ERROR_CODES.get(key)
    if code is None:
        return AuthError(AuthError.UNKNOWN, raw or None)
    return AuthError(code, raw)


def _store_error(exc: Exception, action: str) -> StoreError:
    logger.warning("Firestore %s failed: %s", action, exc)
    if isinstance(exc, (google_exceptions.DeadlineExceeded, google_exceptions.RetryError)):
        return StoreTimeout()
    if isinstance(exc, google_exceptions.NotFound):
        return RecordNotFound(str(exc))
    return StoreError(str(exc))


def _to_firestore(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {key: (firestore.SERVER_TIMESTAMP if value is SERVER_TIMESTAMP else value) for key, value in fields.items()}


def _document(snapshot) -> Document:
    return Document(id=snapshot.id, fields=snapshot.to_dict() or {})


class FirestoreDocumentStore(DocumentStore):
    def __init__(self, client, timeout: float | None = None):
        self.client = client
        self.timeout = timeout

    def _ordered_query(self, collection: str, order_field: str, direction: str, limit=None, min_value=None):
        query = self.client.collection(collection)
        if min_value is not None:
            query = query.where(filter=FieldFilter(order_field, ">=", min_value))
        fs_direction = firestore.Query.DESCENDING if direction == DESCENDING else firestore.Query.ASCENDING
        query = query.order_by(order_field, direction=fs_direction)
        if limit:
            query = query.limit(limit)
        return query

    def get_record(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        try:
            snapshot = self.client.collection(collection).document(record_id).get(timeout=self.timeout)
        except google_exceptions.GoogleAPIError as exc:
            raise _store_error(exc, "get") from exc
        return snapshot.to_dict() if snapshot.exists else None

    def set_record(self, collection: str, record_id: str, fields: Dict[str, Any], merge: bool = False) -> None:
        ref = self.client.collection(collection).document(record_id)
        try:
            ref.set(_to_firestore(fields), merge=merge, timeout=self.timeout)
        except google_exceptions.GoogleAPIError as exc:
            raise _store_error(exc, "set") from exc

    def add_record(self, collection: str, fields: Dict[str, Any]) -> str:
        try:
            _update_time, ref = self.client.collection(collection).add(_to_firestore(fields), timeout=self.timeout)
        except google_exceptions.GoogleAPIError as exc:
            raise _store_error(exc, "add") from exc
        return ref.id

    def increment(self, collection: str, record_id: str, field_name: str, amount: int = 1) -> None:
        ref = self.client.collection(collection).document(record_id)
        try:
            ref.update({field_name: firestore.Increment(amount)}, timeout=self.timeout)
        except google_exceptions.GoogleAPIError as exc:
            raise _store_error(exc, "increment") from exc

    def delete_record(self, collection: str, record_id: str) -> None:
        try:
            self.client.collection(collection).document(record_id).delete(timeout=self.timeout)
        except google_exceptions.GoogleAPIError as exc:
            raise _store_error(exc, "delete") from exc

    def query_ordered(
        self,
        collection: str,
        order_field: str,
        direction: str = DESCENDING,
        limit: Optional[int] = None,
        min_value: Any = None,
    ) -> List[Document]:
        query = self._ordered_query(collection, order_field, direction, limit, min_value)
        try:
            return [_document(snapshot) for snapshot in query.stream(timeout=self.timeout)]
        except google_exceptions.GoogleAPIError as exc:
            raise _store_error(exc, "query") from exc

    def subscribe_ordered(
        self,
        collection: str,
        order_field: str,
        direction: str,
        on_snapshot: SnapshotCallback,
    ) -> Unsubscribe:
        query = self._ordered_query(collection, order_field, direction)

        # runs on the Firestore watch thread
        def _on_snapshot(snapshots, _changes, _read_time):
            on_snapshot([_document(snapshot) for snapshot in snapshots])

        try:
            watch = query.on_snapshot(_on_snapshot)
        except google_exceptions.GoogleAPIError as exc:
            raise _store_error(exc, "subscribe") from exc
        return watch.unsubscribe

    def is_empty(self, collection: str) -> bool:
        try:
            found = list(self.client.collection(collection).limit(1).stream(timeout=self.timeout))
        except google_exceptions.GoogleAPIError as exc:
            raise _store_error(exc, "count") from exc
        return not found


class FirebaseIdentityProvider(IdentityProvider):
    def __init__(self, firebase_app, web_api_key: str | None, timeout: float | None = None, session=None):
        self.firebase_app = firebase_app
        self.web_api_key = web_api_key
        self.timeout = timeout
        self.session = session or requests.Session()

    def sign_up(self, email: str, password: str) -> Identity:
        email = normalize_email(email)
        if not is_valid_email(email):
            raise AuthError(AuthError.INVALID_EMAIL)
        if len(password or "") < PROVIDER_MIN_PASSWORD_LENGTH:
            raise AuthError(AuthError.WEAK_PASSWORD)
        try:
            record = auth.create_user(email=email, password=password, app=self.firebase_app)
        except auth.EmailAlreadyExistsError as exc:
            raise AuthError(AuthError.EMAIL_IN_USE) from exc
        except ValueError as exc:
            code = AuthError.WEAK_PASSWORD if "password" in str(exc).lower() else AuthError.INVALID_EMAIL
            raise AuthError(code, str(exc)) from exc
        except firebase_exceptions.UnavailableError as exc:
            raise AuthError(AuthError.NETWORK, str(exc)) from exc
        except firebase_exceptions.FirebaseError as exc:
            raise AuthError(AuthError.UNKNOWN, str(exc)) from exc
        security_logger.info("account created identity=%s", record.uid)
        return Identity(id=record.uid, email=record.email or email)

    def sign_in(self, email: str, password: str) -> Identity:
        email = normalize_email(email)
        if not is_valid_email(email):
            raise AuthError(AuthError.INVALID_EMAIL)
        if not self.web_api_key:
            raise AuthError(AuthError.UNKNOWN, "FIREBASE_WEB_API_KEY is not configured")
        payload = {"email": email, "password": password, "returnSecureToken": True}
        try:
            response = self.session.post(
                SIGN_IN_URL,
                params={"key": self.web_api_key},
                json=payload,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.HTTPError as exc:
            try:
                message = exc.response.json().get("error", {}).get("message")
            except ValueError:
                message = None
            err = map_firebase_error(message)
            security_logger.info("login failed email=%s code=%s", email, err.code)
            raise err from exc
        except requests.exceptions.RequestException as exc:
            raise AuthError(AuthError.NETWORK, str(exc)) from exc

        data = response.json()
        identity = Identity(id=data["localId"], email=data.get("email") or email)
        security_logger.info("login identity=%s", identity.id)
        self._announce(identity.id, identity)
        return identity

    def get_identity(self, identity_id: str) -> Optional[Identity]:
        try:
            record = auth.get_user(identity_id, app=self.firebase_app)
        except auth.UserNotFoundError:
            return None
        except (ValueError, firebase_exceptions.FirebaseError):
            security_logger.warning("identity lookup failed identity=%s", identity_id, exc_info=True)
            return None
        return Identity(id=record.uid, email=record.email or "")


def init_firebase_backend(app) -> tuple[FirestoreDocumentStore, FirebaseIdentityProvider]:
    """Initialise the Admin SDK once per process and build both collaborators."""
    try:
        firebase_app = firebase_admin.get_app(FIREBASE_APP_NAME)
    except ValueError:
        path = app.config.get("FIREBASE_CREDENTIALS")
        cred = credentials.Certificate(path) if path else credentials.ApplicationDefault()
        firebase_app = firebase_admin.initialize_app(cred, name=FIREBASE_APP_NAME)
    timeout = app.config.get("STORE_TIMEOUT_SECONDS")
    store = FirestoreDocumentStore(firestore.client(app=firebase_app), timeout=timeout)
    identity = FirebaseIdentityProvider(firebase_app, app.config.get("FIREBASE_WEB_API_KEY"), timeout=timeout)
    return store, identity


__all__ = [
    "FirebaseIdentityProvider",
    "FirestoreDocumentStore",
    "init_firebase_backend",
    "map_firebase_error",
]
