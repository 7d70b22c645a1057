from __future__ import annotations

from datetime import UTC, datetime

from cortex_auth.core import errors as api_errors
from cortex_auth.services._shared.errors import ConflictError, NotFoundError, ServiceError
from cortex_auth.services.auth.errors import (
    DuplicateEmailRegistrationError,
    InvalidPasswordForLoginError,
    InvalidRefreshTokenError,
    RefreshTokenReuseDetectedError,
    UserNotFoundForLoginError,
    UserNotFoundForSessionError,
)

INVALID_CREDENTIALS = "Invalid credentials"
SESSION_EXPIRED = "Session expired"

# Internal error kind -> (outward API error class, client-safe message).
# Several kinds deliberately share one entry so clients cannot tell them apart.
ERROR_TRANSLATIONS: dict[type[ServiceError], tuple[type[api_errors.APIError], str]] = {
    DuplicateEmailRegistrationError: (api_errors.Conflict, "Email already exists"),
    UserNotFoundForLoginError: (api_errors.Unauthorized, INVALID_CREDENTIALS),
    InvalidPasswordForLoginError: (api_errors.Unauthorized, INVALID_CREDENTIALS),
    InvalidRefreshTokenError: (api_errors.Unauthorized, SESSION_EXPIRED),
    RefreshTokenReuseDetectedError: (api_errors.Unauthorized, SESSION_EXPIRED),
    UserNotFoundForSessionError: (api_errors.Unauthorized, SESSION_EXPIRED),
}


class BaseService:
    """
    Base class for application services.

    Responsibilities
    ----------------
    * Provide a single clock (``now_utc``) subclasses and tests can override.
    * Centralize the domain → API error translation table.
    * Keep services thin, orchestration-only, no web/ORM leakage.
    """

    @staticmethod
    def now_utc() -> datetime:
        return datetime.now(UTC)

    # -------------------------- Error handling ------------------------------

    @staticmethod
    def translate_exceptions(exc: Exception) -> Exception:
        """
        Map domain/service-level errors to API-level (HTTP) errors.

        :param exc: Exception raised within the service.
        :type exc: Exception
        :returns: Translated exception ready to be re-raised.
        :rtype: Exception
        """
        for kind in type(exc).__mro__:
            entry = ERROR_TRANSLATIONS.get(kind)  # type: ignore[call-overload]
            if entry is not None:
                api_cls, message = entry
                return api_cls(message)

        if isinstance(exc, NotFoundError):
            return api_errors.NotFound(str(exc))

        if isinstance(exc, ConflictError):
            return api_errors.Conflict(str(exc))

        # Any other ServiceError subclass -> 400 Bad Request
        if isinstance(exc, ServiceError):
            return api_errors.APIError(message=str(exc), status_code=400, code="bad_request")

        # Fallback: return untouched (will bubble up to the Flask handler)
        return exc
