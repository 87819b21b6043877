"""Identity provider contract, the `sql` provider, and identity-change notifications."""
from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Optional

from blinker import Signal
from flask import current_app
from flask_login import UserMixin
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from extensions import cache, db
from services.errors import AuthError

security_logger = logging.getLogger("security")

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
# Firebase Authentication refuses anything shorter; the sql provider matches it.
PROVIDER_MIN_PASSWORD_LENGTH = 6

_identity_signal = Signal("identity-changed")


@dataclass(frozen=True)
class Identity:
    id: str
    email: str


class SessionUser(UserMixin):
    """What Flask-Login keeps for a signed-in identity."""

    def __init__(self, identity: Identity):
        self.identity = identity
        self.id = identity.id
        self.email = identity.email

    def get_id(self) -> str:
        return self.identity.id


def normalize_email(raw: str | None) -> str:
    return (raw or "").strip().lower()


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email or ""))


class IdentityProvider(ABC):
    """Email/password identities plus change notification."""

    @abstractmethod
    def sign_up(self, email: str, password: str) -> Identity:
        ...

    @abstractmethod
    def sign_in(self, email: str, password: str) -> Identity:
        ...

    @abstractmethod
    def get_identity(self, identity_id: str) -> Optional[Identity]:
        ...

    def sign_out(self, identity: Identity) -> None:
        security_logger.info("logout identity=%s", identity.id)
        self._announce(identity.id, None)

    def _announce(self, identity_id: str, identity: Optional[Identity]) -> None:
        _identity_signal.send(identity_id, identity=identity)

    def on_identity_change(
        self,
        callback: Callable[[Optional[Identity]], None],
        *,
        identity_id: str | None = None,
        current: Optional[Identity] = None,
    ) -> Callable[[], None]:
        """Call ``callback`` with the current state now and on each later change.

        With ``identity_id`` only changes to that identity are delivered.
        Returns the unsubscribe callable.
        """

        def _handler(sender, identity=None, **_extra):
            callback(identity)

        if identity_id is None:
            _identity_signal.connect(_handler, weak=False)
        else:
            _identity_signal.connect(_handler, sender=identity_id, weak=False)
        callback(current)

        def _unsubscribe() -> None:
            if identity_id is None:
                _identity_signal.disconnect(_handler)
            else:
                _identity_signal.disconnect(_handler, sender=identity_id)

        return _unsubscribe


class SqlIdentityProvider(IdentityProvider):
    """Accounts table + werkzeug hashes; failed sign-ins are counted in the cache."""

    def _attempt_key(self, email: str) -> str:
        return f"login-attempts:{email}"

    def _record_failure(self, email: str) -> None:
        key = self._attempt_key(email)
        window = int(current_app.config.get("LOGIN_ATTEMPT_WINDOW", 300))
        cache.set(key, int(cache.get(key) or 0) + 1, timeout=window)

    def sign_up(self, email: str, password: str) -> Identity:
        from models import Account

        email = normalize_email(email)
        if not is_valid_email(email):
            raise AuthError(AuthError.INVALID_EMAIL)
        if len(password or "") < PROVIDER_MIN_PASSWORD_LENGTH:
            raise AuthError(AuthError.WEAK_PASSWORD)
        if Account.query.filter(func.lower(Account.email) == email).first():
            raise AuthError(AuthError.EMAIL_IN_USE)
        account = Account(email=email)
        account.set_password(password)
        try:
            db.session.add(account)
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            raise AuthError(AuthError.EMAIL_IN_USE) from exc
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise AuthError(AuthError.UNKNOWN, str(exc)) from exc
        security_logger.info("account created identity=%s", account.id)
        return Identity(id=account.id, email=account.email)

    def sign_in(self, email: str, password: str) -> Identity:
        from models import Account

        email = normalize_email(email)
        if not is_valid_email(email):
            raise AuthError(AuthError.INVALID_EMAIL)
        max_attempts = int(current_app.config.get("LOGIN_MAX_ATTEMPTS", 5))
        if int(cache.get(self._attempt_key(email)) or 0) >= max_attempts:
            security_logger.warning("login throttled email=%s", email)
            raise AuthError(AuthError.TOO_MANY_ATTEMPTS)
        account = Account.query.filter(func.lower(Account.email) == email).first()
        if account is None:
            self._record_failure(email)
            raise AuthError(AuthError.USER_NOT_FOUND)
        if not account.check_password(password):
            self._record_failure(email)
            security_logger.info("login failed identity=%s", account.id)
            raise AuthError(AuthError.WRONG_PASSWORD)
        cache.delete(self._attempt_key(email))
        identity = Identity(id=account.id, email=account.email)
        security_logger.info("login identity=%s", identity.id)
        self._announce(identity.id, identity)
        return identity

    def get_identity(self, identity_id: str) -> Optional[Identity]:
        from models import Account

        account = db.session.get(Account, identity_id)
        if account is None:
            return None
        return Identity(id=account.id, email=account.email)


def get_identity_provider() -> IdentityProvider:
    return current_app.extensions["portal.identity"]


__all__ = [
    "Identity",
    "IdentityProvider",
    "SessionUser",
    "SqlIdentityProvider",
    "get_identity_provider",
    "is_valid_email",
    "normalize_email",
]
