"""
Domain-level exceptions used within the service layer.

These exceptions are **framework-agnostic** and should never import or depend
on Flask or HTTP directly. They serve as stable contracts between stores,
repositories and application services.

The translation to HTTP responses (RFC 7807) is handled by
``BaseService.translate_exceptions()``.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError


def violates(exc: IntegrityError, constraint_name: str) -> bool:
    """
    Check whether an IntegrityError originates from a specific constraint.

    PostgreSQL reports the constraint name in the message; SQLite only names
    the offending column, so ``column`` is matched as a fallback.

    :param exc: The exception raised by SQLAlchemy during flush/commit.
    :param constraint_name: Constraint to match (e.g. ``"uq_users_email"``).
    :returns: ``True`` if the IntegrityError matches the given constraint.
    """
    message = str(exc.orig).lower() if exc.orig else ""
    if constraint_name.lower() in message:
        return True
    # SQLite: "UNIQUE constraint failed: users.email"
    table_column = constraint_name.lower().removeprefix("uq_").replace("_", ".", 1)
    return "unique constraint failed" in message and table_column in message


class ServiceError(Exception):
    """
    Base class for all service-level errors.

    Notes
    -----
    - These are *not* HTTP errors.
    - The API layer translates them via ``BaseService.translate_exceptions``.
    """

    pass


@dataclass(slots=True)
class NotFoundError(ServiceError):
    """
    Raised when an entity is not found in a store.

    :param entity: Entity name (e.g., "User").
    :param key: Identifier or search key.
    """

    entity: str
    key: str | int

    def __str__(self) -> str:
        return f"{self.entity} not found: {self.key}"


@dataclass(slots=True)
class ConflictError(ServiceError):
    """
    Raised when a unique constraint or business rule conflict occurs.

    :param entity: Entity name (e.g., "User").
    :param detail: Short human-readable explanation.
    """

    entity: str
    detail: str

    def __str__(self) -> str:
        return f"Conflict on {self.entity}: {self.detail}"


class DuplicateEmailError(ConflictError):
    """Raised by user stores when the email is already registered."""

    def __init__(self, email: str) -> None:
        super().__init__(entity="User", detail="email already registered")
        self.email = email
