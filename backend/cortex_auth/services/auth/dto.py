from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from cortex_auth.services._shared.ports import UserRecord, UserRole

# ---------------------------- Input DTOs ---------------------------------- #


@dataclass(frozen=True, slots=True)
class RegisterIn:
    """
    Input DTO for registration.

    :param email: User email.
    :type email: str
    :param password: Raw password (hashed before it reaches any store).
    :type password: str
    :param name: Optional display name.
    :type name: str | None
    """

    email: str
    password: str
    name: str | None = None


@dataclass(frozen=True, slots=True)
class LoginIn:
    """
    Input DTO for login.

    :param email: User email.
    :type email: str
    :param password: Raw password (to be verified).
    :type password: str
    """

    email: str
    password: str


@dataclass(frozen=True, slots=True)
class RefreshIn:
    """
    Input DTO for token refresh.

    :param refresh_token: Raw opaque refresh token (64 hex characters).
    :type refresh_token: str
    """

    refresh_token: str


@dataclass(frozen=True, slots=True)
class LogoutIn:
    """
    Input DTO for logout.

    :param refresh_token: Raw opaque refresh token to revoke.
    :type refresh_token: str
    """

    refresh_token: str


# --------------------------- Output DTOs ---------------------------------- #


@dataclass(frozen=True, slots=True)
class TokenPairOut:
    """
    Output DTO with access and refresh tokens.

    :param access_token: Signed access token.
    :type access_token: str
    :param refresh_token: Raw refresh token; the caller is responsible for storing it.
    :type refresh_token: str
    """

    access_token: str
    refresh_token: str

    def __repr__(self) -> str:
        return "TokenPairOut(access_token=<redacted>, refresh_token=<redacted>)"


@dataclass(frozen=True, slots=True)
class UserView:
    """Public projection of a user (never includes the password hash)."""

    id: str
    email: str
    name: str | None
    role: UserRole
    created_at: datetime

    @classmethod
    def from_record(cls, user: UserRecord) -> UserView:
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            role=user.role,
            created_at=user.created_at,
        )


@dataclass(frozen=True, slots=True)
class AuthResultOut:
    """Outcome of register/login: a fresh token pair plus the user view."""

    tokens: TokenPairOut
    user: UserView


# ------------------------------ Config DTO -------------------------------- #


@dataclass(frozen=True, slots=True)
class AuthTokenConfig:
    """
    Token emission configuration.

    :param access_expires: Access token lifetime.
    :type access_expires: timedelta
    :param refresh_expires: Refresh token lifetime.
    :type refresh_expires: timedelta
    """

    access_expires: timedelta = timedelta(minutes=15)
    refresh_expires: timedelta = timedelta(days=7)
