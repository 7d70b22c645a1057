"""Composition root: build the auth service for the configured store backend."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import cast

from flask import Flask, current_app

from cortex_auth.services._shared.ports import (
    InMemorySessionStore,
    InMemoryUserStore,
    SessionStore,
    UserStore,
)
from cortex_auth.services.auth.credentials import CredentialVerifier
from cortex_auth.services.auth.dto import AuthTokenConfig
from cortex_auth.services.auth.service import AuthService
from cortex_auth.services.auth.token_issuer import TokenIssuer

log = logging.getLogger(__name__)

_EXT_KEY = "auth_service"


def build_stores(app: Flask) -> tuple[UserStore, SessionStore]:
    """
    Instantiate the user and session stores for ``AUTH_STORE_BACKEND``.

    - ``sql``: both stores in the relational database.
    - ``redis``: users in SQL, sessions in Redis.
    - ``memory``: process-local stores (tests and demos).

    :raises RuntimeError: On an unknown backend name.
    """
    backend = app.config.get("AUTH_STORE_BACKEND", "sql")

    if backend == "memory":
        return InMemoryUserStore(), InMemorySessionStore()

    from cortex_auth.infra.sql.session_store import SQLAlchemySessionStore
    from cortex_auth.infra.sql.user_store import SQLAlchemyUserStore

    if backend == "sql":
        return SQLAlchemyUserStore(), SQLAlchemySessionStore()

    if backend == "redis":
        from cortex_auth.core.extensions import get_redis
        from cortex_auth.infra.redis.redis_session_store import RedisSessionStore

        retention_s = int(app.config.get("REDIS_SESSION_RETENTION_SECONDS", 0))
        retention = timedelta(seconds=retention_s) if retention_s > 0 else None
        return SQLAlchemyUserStore(), RedisSessionStore(get_redis(), retention=retention)

    raise RuntimeError(f"Unknown AUTH_STORE_BACKEND {backend!r}")


def build_auth_service(app: Flask) -> AuthService:
    """Assemble :class:`AuthService` from the app configuration."""
    from cortex_auth.infra.jwt.flask_jwt_token_provider import JWTTokenProvider

    users, sessions = build_stores(app)
    token_cfg = AuthTokenConfig(
        access_expires=app.config["JWT_ACCESS_TOKEN_EXPIRES"],
        refresh_expires=app.config["REFRESH_TOKEN_TTL"],
    )
    service = AuthService(
        users=users,
        sessions=sessions,
        tokens=TokenIssuer(JWTTokenProvider(), access_expires=token_cfg.access_expires),
        credentials=CredentialVerifier(rounds=int(app.config.get("BCRYPT_ROUNDS", 12))),
        token_cfg=token_cfg,
    )
    log.info(
        "Auth service ready (backend=%s)",
        app.config.get("AUTH_STORE_BACKEND", "sql"),
    )
    return service


def init_app(app: Flask) -> None:
    """Build the service once and park it on ``app.extensions``."""
    app.extensions[_EXT_KEY] = build_auth_service(app)


def get_auth_service(app: Flask | None = None) -> AuthService:
    """Return the service bound to ``app`` (default: the current app)."""
    target = app or current_app
    service = target.extensions.get(_EXT_KEY)
    if service is None:
        raise RuntimeError("Auth service is not initialized. Call wiring.init_app().")
    return cast(AuthService, service)
