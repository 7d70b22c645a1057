from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, cast

from cortex_auth.services._shared.ports import TokenProvider


@dataclass(slots=True)
class JWTTokenProvider(TokenProvider):
    """
    Adapter for Flask-JWT-Extended.

    .. note::
       Requires an active Flask app context with proper JWT settings.
    """

    def create_access_token(
        self,
        *,
        identity: str,
        additional_claims: dict[str, Any] | None = None,
        expires_delta: timedelta | None = None,
    ) -> str:
        from flask_jwt_extended import create_access_token as _create_access

        return cast(
            str,
            _create_access(
                identity=identity,
                additional_claims=dict(additional_claims or {}),
                # None falls back to JWT_ACCESS_TOKEN_EXPIRES
                expires_delta=expires_delta,
            ),
        )

    def decode(self, token: str) -> dict[str, Any]:
        from flask_jwt_extended import decode_token

        return cast(dict[str, Any], decode_token(token))
