"""Refresh-token repository with conditional (compare-and-swap) revocation."""

from __future__ import annotations

from datetime import datetime
from typing import cast

from sqlalchemy import select, update

from cortex_auth.models.refresh_token import RefreshToken
from cortex_auth.repositories.base import BaseRepository
from cortex_auth.services._shared.ports import RevocationReason


class RefreshTokenRepository(BaseRepository[RefreshToken]):
    """Persistence-only repository for :class:`RefreshToken`."""

    model = RefreshToken

    def get_by_hash(self, token_hash: str) -> RefreshToken | None:
        """Fetch a record by digest through the unique index."""
        stmt = select(RefreshToken).where(RefreshToken.token_hash == token_hash)
        return cast(RefreshToken | None, self.session.execute(stmt).scalars().first())

    def revoke_if_active(
        self,
        record_id: str,
        *,
        reason: RevocationReason,
        replaced_by_hash: str | None,
        now: datetime,
    ) -> bool:
        """
        Revoke a record only while ``is_revoked`` is still false.

        Issued as a single ``UPDATE ... WHERE is_revoked = false`` so concurrent
        callers race on the row, not on a prior read.

        :returns: ``True`` if exactly this call flipped the flag.
        """
        stmt = (
            update(RefreshToken)
            .where(RefreshToken.id == record_id, RefreshToken.is_revoked.is_(False))
            .values(
                is_revoked=True,
                replaced_by_hash=replaced_by_hash,
                revoked_reason=reason,
                revoked_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        return result.rowcount == 1  # type: ignore[attr-defined]

    def revoke_all_active(self, user_id: str, *, reason: RevocationReason, now: datetime) -> int:
        """Revoke every still-active record of a user; returns the affected row count."""
        stmt = (
            update(RefreshToken)
            .where(RefreshToken.user_id == user_id, RefreshToken.is_revoked.is_(False))
            .values(is_revoked=True, revoked_reason=reason, revoked_at=now)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        return int(result.rowcount or 0)  # type: ignore[attr-defined]

    def list_for_user(self, user_id: str) -> list[RefreshToken]:
        stmt = (
            select(RefreshToken)
            .where(RefreshToken.user_id == user_id)
            .order_by(RefreshToken.created_at.asc())
        )
        return list(self.session.execute(stmt).scalars().all())
