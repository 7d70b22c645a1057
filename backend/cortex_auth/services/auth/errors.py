"""
Closed error taxonomy of the session use cases.

Each kind stays distinguishable for server-side logging. None of them is
meant to reach a client as-is: ``BaseService.translate_exceptions`` collapses
them into a handful of outward signals.
"""

from __future__ import annotations

from dataclasses import dataclass

from cortex_auth.services._shared.errors import ServiceError


class AuthError(ServiceError):
    """Base class for authentication/session failures."""


@dataclass(slots=True)
class DuplicateEmailRegistrationError(AuthError):
    """Registration attempted with an email that already exists."""

    email: str

    def __str__(self) -> str:
        return "Duplicate email"


@dataclass(slots=True)
class UserNotFoundForLoginError(AuthError):
    """Login attempted for an unknown email."""

    email: str

    def __str__(self) -> str:
        return "User not found"


@dataclass(slots=True)
class InvalidPasswordForLoginError(AuthError):
    """Login attempted with a wrong password for an existing user."""

    user_id: str

    def __str__(self) -> str:
        return "Invalid password"


class InvalidRefreshTokenError(AuthError):
    """Refresh token unknown or expired."""

    def __init__(self) -> None:
        super().__init__("Invalid refresh token")


@dataclass(slots=True)
class RefreshTokenReuseDetectedError(AuthError):
    """An already-revoked refresh token was presented again."""

    user_id: str

    def __str__(self) -> str:
        return "Refresh token reuse detected"


@dataclass(slots=True)
class UserNotFoundForSessionError(AuthError):
    """A valid session points at a user that no longer exists."""

    user_id: str

    def __str__(self) -> str:
        return "User not found"


__all__ = [
    "AuthError",
    "DuplicateEmailRegistrationError",
    "UserNotFoundForLoginError",
    "InvalidPasswordForLoginError",
    "InvalidRefreshTokenError",
    "RefreshTokenReuseDetectedError",
    "UserNotFoundForSessionError",
]
