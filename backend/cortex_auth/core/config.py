"""Application settings with environment-based simple classes."""

from __future__ import annotations

import os
from collections.abc import Mapping
from datetime import timedelta
from typing import Final

from dotenv import load_dotenv

# Public selector env var (keep neutral name to avoid collisions)
ENV_VAR: Final[str] = "APP_ENV"  # 'development' | 'testing' | 'production'

STORE_BACKENDS: Final[frozenset[str]] = frozenset({"sql", "redis", "memory"})


# Load .env in development (no-op when the file is missing)
load_dotenv()


def env_bool(name: str, default: bool = False) -> bool:
    """Parse a boolean flag from an environment variable.

    Parameters
    ----------
    name: str
        Environment variable to inspect.
    default: bool, optional
        Value returned when the variable is unset. Defaults to ``False``.

    Returns
    -------
    bool
        ``True`` if the value resembles ``{"1", "true", "yes", "y", "on"}``
        ignoring case; otherwise ``False`` or ``default`` when missing.
    """
    val = os.getenv(name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "y", "on"}


def env_int(name: str, default: int) -> int:
    """Parse an integer from an environment variable, falling back to ``default``."""
    val = os.getenv(name)
    if val is None or not val.strip():
        return default
    return int(val)


class BaseConfig:
    """Base configuration shared across environments.

    Attributes
    ----------
    API_BASE_PREFIX: str
        Root path for registering API blueprints.
    SECRET_KEY: str
        Flask secret. Defaults to a development placeholder.
    JWT_SECRET_KEY: str
        Key used by ``flask-jwt-extended`` for signing access tokens.
    JWT_ACCESS_TOKEN_EXPIRES: timedelta
        Access token lifetime (15 minutes).
    REFRESH_TOKEN_TTL: timedelta
        Refresh token lifetime counted from issuance (7 days).
    BCRYPT_ROUNDS: int
        bcrypt work factor applied when hashing passwords.
    AUTH_STORE_BACKEND: str
        ``"sql"`` (users and sessions in the database), ``"redis"`` (users in
        the database, sessions in Redis) or ``"memory"`` (both in-process).
    SQLALCHEMY_DATABASE_URI: str
        Database connection string consumed by SQLAlchemy.
    REDIS_URL: str | None
        Redis connection string; required by the ``"redis"`` backend.
    REDIS_SESSION_RETENTION_SECONDS: int
        Opt-in pruning for the ``"redis"`` backend: keys expire this many
        seconds after the token does. ``0`` (default) keeps records forever.
    LOG_LEVEL: str
        Root logging verbosity (``INFO`` by default).
    LOG_FORMAT: str
        ``"json"`` (default) or ``"text"``.

    Notes
    -----
    Values are primarily sourced from environment variables, enabling
    configuration without code changes.
    """

    API_BASE_PREFIX = "/api"

    # Secrets / security
    SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME")
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "CHANGE_ME_JWT")
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(minutes=15)
    REFRESH_TOKEN_TTL = timedelta(days=7)
    BCRYPT_ROUNDS = 12

    # Stores
    AUTH_STORE_BACKEND = os.getenv("AUTH_STORE_BACKEND", "sql").strip().lower()
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///./dev.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = env_bool("SQLALCHEMY_ECHO", False)
    REDIS_URL = os.getenv("REDIS_URL")
    REDIS_SESSION_RETENTION_SECONDS = env_int("REDIS_SESSION_RETENTION_SECONDS", 0)

    # Flask & JSON
    JSON_SORT_KEYS = False
    PROPAGATE_EXCEPTIONS = False

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT = os.getenv("LOG_FORMAT", "json")

    DEBUG = False
    TESTING = False


class DevelopmentConfig(BaseConfig):
    """Configuration tailored for local development.

    Notes
    -----
    Enables debug mode by default and allows a cheaper bcrypt cost through
    ``BCRYPT_ROUNDS`` for faster local iteration.
    """

    DEBUG = env_bool("FLASK_DEBUG", True)
    BCRYPT_ROUNDS = env_int("BCRYPT_ROUNDS", 12)


class TestingConfig(BaseConfig):
    """Configuration for automated test runs.

    Notes
    -----
    - Forces ``TESTING`` mode and disables debug logs.
    - Uses an in-memory SQLite database unless ``TEST_DATABASE_URL`` is set.
    - Keeps users and sessions in memory so HTTP tests do not need a database.
    - Drops bcrypt to its minimum cost so suites stay fast.
    """

    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    AUTH_STORE_BACKEND = "memory"
    BCRYPT_ROUNDS = 4
    JWT_SECRET_KEY = "testing-secret-key-with-enough-bytes-for-hs256"
    PROPAGATE_EXCEPTIONS = True


class ProductionConfig(BaseConfig):
    """Configuration defaults for production deployments.

    Notes
    -----
    Pins the bcrypt work factor to 12 regardless of the environment.
    """

    DEBUG = False
    SQLALCHEMY_ECHO = False
    PROPAGATE_EXCEPTIONS = False
    BCRYPT_ROUNDS = 12


# Map names -> classes (simple, explicit)
CONFIG_MAP: Mapping[str, type[BaseConfig]] = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}


def get_config() -> type[BaseConfig]:
    """Return the configuration class inferred from ``APP_ENV``.

    Returns
    -------
    type[BaseConfig]
        Class to pass to :meth:`flask.Config.from_object`.

    Notes
    -----
    Falls back to :class:`DevelopmentConfig` when ``APP_ENV`` is unset or
    unknown.
    """
    name = os.getenv(ENV_VAR, "development").strip().lower()
    return CONFIG_MAP.get(name, DevelopmentConfig)
