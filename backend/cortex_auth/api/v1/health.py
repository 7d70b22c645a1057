"""Health check endpoint."""

from __future__ import annotations

from flask import Blueprint, current_app
from redis.exceptions import RedisError  # type: ignore[import-untyped]
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from cortex_auth.api.deps import json_response, timing
from cortex_auth.core import extensions

bp = Blueprint("health", __name__)


@bp.get("/health")
@timing
def healthcheck():
    """Return application and backing-store health information."""

    backend = current_app.config.get("AUTH_STORE_BACKEND", "sql")
    checks: dict[str, str] = {}

    if backend in ("sql", "redis"):
        checks["db"] = "ok"
        try:
            extensions.db.session.execute(text("SELECT 1"))
        except SQLAlchemyError:  # pragma: no cover - depends on DB backend
            current_app.logger.exception("healthcheck.db_error")
            checks["db"] = "fail"

    if backend == "redis":
        checks["redis"] = "ok"
        try:
            if extensions.redis_client is None or not extensions.redis_client.ping():
                checks["redis"] = "fail"
        except RedisError:  # pragma: no cover - depends on Redis availability
            current_app.logger.exception("healthcheck.redis_error")
            checks["redis"] = "fail"

    version = current_app.config.get("APP_VERSION", "dev")
    payload = {"status": "ok", "backend": backend, "version": version, **checks}
    return json_response(payload)
