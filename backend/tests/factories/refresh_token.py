"""Factory Boy definition for :class:`cortex_auth.models.refresh_token.RefreshToken`."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from cortex_auth.models.refresh_token import RefreshToken
from cortex_auth.services.auth.token_issuer import TokenIssuer

import factory
from tests.factories import BaseFactory
from tests.factories.user import UserFactory


class RefreshTokenFactory(BaseFactory):
    """Build persisted refresh-token rows.

    Pass ``raw_token=...`` to control the secret; only its digest is stored.
    """

    class Meta:
        model = RefreshToken
        exclude = ("user", "raw_token")

    user = factory.SubFactory(UserFactory)
    user_id = factory.LazyAttribute(lambda o: o.user.id)
    raw_token = factory.LazyFunction(TokenIssuer.generate_refresh_token)
    token_hash = factory.LazyAttribute(lambda o: TokenIssuer.hash_token(o.raw_token))
    expires_at = factory.LazyFunction(lambda: datetime.now(UTC) + timedelta(days=7))
    is_revoked = False
