from __future__ import annotations

import hashlib
import hmac
import secrets
from datetime import timedelta

from cortex_auth.services._shared.ports import TokenProvider, UserRecord

REFRESH_TOKEN_BYTES = 32  # 256-bit secret, 64 hex characters


class TokenIssuer:
    """
    Mint access tokens and opaque refresh tokens, and digest the latter.

    Access tokens are delegated to a :class:`TokenProvider` (a JWT signer in
    production). Refresh tokens never leave this class in any form other than
    the raw value handed to the caller and its SHA-256 digest.

    :param provider: Access-token signer.
    :param access_expires: Access token lifetime.
    """

    def __init__(
        self, provider: TokenProvider, *, access_expires: timedelta = timedelta(minutes=15)
    ) -> None:
        self.provider = provider
        self.access_expires = access_expires

    def generate_access_token(self, user: UserRecord) -> str:
        """Sign a short-lived token carrying ``sub``, ``email`` and ``role``."""
        return self.provider.create_access_token(
            identity=user.id,
            additional_claims={"email": user.email, "role": user.role.value},
            expires_delta=self.access_expires,
        )

    @staticmethod
    def generate_refresh_token() -> str:
        return secrets.token_hex(REFRESH_TOKEN_BYTES)

    @staticmethod
    def hash_token(raw: str) -> str:
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()

    @classmethod
    def compare_token_hash(cls, raw: str, digest: str) -> bool:
        """Constant-time check that ``raw`` hashes to ``digest``."""
        if not isinstance(raw, str) or not isinstance(digest, str):
            return False
        return hmac.compare_digest(cls.hash_token(raw).encode(), digest.encode())
