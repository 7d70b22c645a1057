"""
cortex_auth.services._shared.ports
==================================

Collection of *ports* (hexagonal interfaces) the session use cases consume.

These ports decouple the service layer from concrete persistence and token
signing mechanisms.

Modules
-------
- :mod:`token_provider`:
    Defines :class:`~.TokenProvider`, the abstraction for signing access tokens.

- :mod:`user_store`:
    Defines :class:`~.UserStore` and the :class:`~.UserRecord` /
    :class:`~.UserWithHash` read-models.

- :mod:`session_store`:
    Defines :class:`~.SessionStore`, :class:`~.RefreshTokenRecord`,
    :class:`~.RevocationReason` and :class:`~.SessionState`.

Design Notes
------------
Concrete adapters (SQLAlchemy, Redis, Flask-JWT-Extended) live under
``cortex_auth.infra``. The in-memory implementations here back the unit tests
and the ``memory`` store backend.
"""

from __future__ import annotations

from .session_store import (
    InMemorySessionStore,
    RefreshTokenRecord,
    RevocationReason,
    SessionState,
    SessionStore,
    as_utc,
)
from .token_provider import StubTokenProvider, TokenProvider
from .user_store import (
    InMemoryUserStore,
    UserRecord,
    UserRole,
    UserStore,
    UserWithHash,
    normalize_email,
)

__all__ = [
    "TokenProvider",
    "StubTokenProvider",
    "SessionStore",
    "RefreshTokenRecord",
    "RevocationReason",
    "SessionState",
    "InMemorySessionStore",
    "as_utc",
    "UserStore",
    "UserRecord",
    "UserWithHash",
    "UserRole",
    "InMemoryUserStore",
    "normalize_email",
]
