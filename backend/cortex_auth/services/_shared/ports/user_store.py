from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Protocol
from uuid import uuid4

from cortex_auth.services._shared.errors import DuplicateEmailError, NotFoundError


class UserRole(str, Enum):
    """Authorization role carried by every user and embedded in access tokens."""

    USER = "USER"
    ADMIN = "ADMIN"


@dataclass(frozen=True)
class UserRecord:
    """
    Read-model for a user identity (never carries the password hash).

    :ivar id: Opaque stable identifier.
    :ivar email: Normalized (lower-cased, trimmed) login email.
    :ivar name: Optional display name.
    :ivar role: Current role.
    :ivar created_at: Creation timestamp (UTC).
    """

    id: str
    email: str
    name: str | None
    role: UserRole
    created_at: datetime


@dataclass(frozen=True)
class UserWithHash(UserRecord):
    """User read-model including the password hash, for credential checks only."""

    password_hash: str = field(default="", repr=False)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserStore(Protocol):
    """
    Persistence port for user identities.

    Each method is a single store operation; callers never hold a transaction
    across calls.
    """

    def create(self, *, email: str, password_hash: str, name: str | None = None) -> UserRecord:
        """
        Persist a new user with role ``USER``.

        :raises DuplicateEmailError: If the email is already registered.
        """

    def find_by_email_with_password(self, email: str) -> UserWithHash | None:
        """Fetch a user and its password hash by (normalized) email."""

    def find_by_id(self, user_id: str) -> UserRecord | None:
        """Fetch a user by id."""


class InMemoryUserStore(UserStore):
    """
    In-memory user store.

    .. note::
       Uses a threading lock so the email uniqueness check and the insert
       happen as one step.
    """

    def __init__(self) -> None:
        self._by_id: dict[str, UserWithHash] = {}
        self._id_by_email: dict[str, str] = {}
        self._lock = threading.Lock()

    def create(self, *, email: str, password_hash: str, name: str | None = None) -> UserRecord:
        key = normalize_email(email)
        with self._lock:
            if key in self._id_by_email:
                raise DuplicateEmailError(key)
            user = UserWithHash(
                id=uuid4().hex,
                email=key,
                name=name,
                role=UserRole.USER,
                created_at=datetime.now(UTC),
                password_hash=password_hash,
            )
            self._by_id[user.id] = user
            self._id_by_email[key] = user.id
        return _public(user)

    def find_by_email_with_password(self, email: str) -> UserWithHash | None:
        user_id = self._id_by_email.get(normalize_email(email))
        if user_id is None:
            return None
        return self._by_id.get(user_id)

    def find_by_id(self, user_id: str) -> UserRecord | None:
        user = self._by_id.get(user_id)
        return _public(user) if user else None

    # ---------------------- outside the port contract ----------------------

    def update_role(self, user_id: str, role: UserRole) -> UserRecord:
        """Change a user's role (stands in for out-of-scope role management)."""
        with self._lock:
            user = self._by_id.get(user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            updated = replace(user, role=UserRole(role))
            self._by_id[user_id] = updated
        return _public(updated)

    def delete(self, user_id: str) -> bool:
        """Drop a user (used by tests to simulate account deletion)."""
        with self._lock:
            user = self._by_id.pop(user_id, None)
            if user is None:
                return False
            self._id_by_email.pop(user.email, None)
            return True


def _public(user: UserWithHash) -> UserRecord:
    return UserRecord(
        id=user.id,
        email=user.email,
        name=user.name,
        role=user.role,
        created_at=user.created_at,
    )
