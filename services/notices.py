"""Transient user-facing notifications (rendered as auto-dismissing toasts)."""
from __future__ import annotations

from flask import flash

from services.errors import AuthError

SUCCESS = "success"
ERROR = "error"
WARNING = "warning"
INFO = "info"
LEVELS = (SUCCESS, ERROR, WARNING, INFO)

AUTH_MESSAGES = {
    AuthError.EMAIL_IN_USE: "Email is already registered",
    AuthError.INVALID_EMAIL: "Invalid email address",
    AuthError.USER_NOT_FOUND: "User not found",
    AuthError.WRONG_PASSWORD: "Wrong password",
    AuthError.WEAK_PASSWORD: "Password is too weak",
    AuthError.TOO_MANY_ATTEMPTS: "Too many attempts. Try again later.",
    AuthError.NETWORK: "Network error. Please try again.",
}
FALLBACK_AUTH_MESSAGE = "Something went wrong"


def notify(message: str, level: str = INFO) -> None:
    if level not in LEVELS:
        level = INFO
    flash(message, level)


def auth_error_message(err: AuthError) -> str:
    return AUTH_MESSAGES.get(err.code) or err.message or FALLBACK_AUTH_MESSAGE


__all__ = [
    "AUTH_MESSAGES",
    "ERROR",
    "FALLBACK_AUTH_MESSAGE",
    "INFO",
    "LEVELS",
    "SUCCESS",
    "WARNING",
    "auth_error_message",
    "notify",
]
