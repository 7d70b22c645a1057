"""SQLAlchemy-backed :class:`SessionStore`."""

from __future__ import annotations

from datetime import UTC, datetime

from cortex_auth.models.refresh_token import RefreshToken
from cortex_auth.services._shared.ports import (
    RefreshTokenRecord,
    RevocationReason,
    SessionStore,
    as_utc,
)
from cortex_auth.uow.sqlalchemy_uow import SQLAlchemyReadOnlyUnitOfWork, SQLAlchemyUnitOfWork


def to_record(row: RefreshToken) -> RefreshTokenRecord:
    return RefreshTokenRecord(
        id=row.id,
        token_hash=row.token_hash,
        user_id=row.user_id,
        expires_at=as_utc(row.expires_at),
        is_revoked=bool(row.is_revoked),
        replaced_by_hash=row.replaced_by_hash,
        created_at=as_utc(row.created_at),
        revoked_reason=RevocationReason(row.revoked_reason) if row.revoked_reason else None,
        revoked_at=as_utc(row.revoked_at) if row.revoked_at else None,
    )


class SQLAlchemySessionStore(SessionStore):
    """
    Session store over the ``refresh_tokens`` table.

    Lookups go through the unique index on ``token_hash``; revocation is a
    conditional ``UPDATE`` whose row count tells the caller whether it won.
    """

    def save_refresh_token(
        self, *, user_id: str, token_hash: str, expires_at: datetime
    ) -> RefreshTokenRecord:
        with SQLAlchemyUnitOfWork() as uow:
            row = uow.refresh_tokens.add(
                RefreshToken(
                    user_id=user_id,
                    token_hash=token_hash,
                    expires_at=as_utc(expires_at),
                    is_revoked=False,
                )
            )
            return to_record(row)

    def find_refresh_token(self, token_hash: str) -> RefreshTokenRecord | None:
        with SQLAlchemyReadOnlyUnitOfWork() as uow:
            row = uow.refresh_tokens.get_by_hash(token_hash)
            return to_record(row) if row is not None else None

    def revoke_token(
        self,
        record_id: str,
        *,
        reason: RevocationReason,
        replaced_by_hash: str | None = None,
    ) -> bool:
        with SQLAlchemyUnitOfWork() as uow:
            return uow.refresh_tokens.revoke_if_active(
                record_id,
                reason=reason,
                replaced_by_hash=replaced_by_hash,
                now=datetime.now(UTC),
            )

    def revoke_all_user_tokens(
        self, user_id: str, *, reason: RevocationReason = RevocationReason.REPLAY
    ) -> int:
        with SQLAlchemyUnitOfWork() as uow:
            return uow.refresh_tokens.revoke_all_active(
                user_id, reason=reason, now=datetime.now(UTC)
            )

    def list_user_tokens(self, user_id: str) -> list[RefreshTokenRecord]:
        with SQLAlchemyReadOnlyUnitOfWork() as uow:
            return [to_record(row) for row in uow.refresh_tokens.list_for_user(user_id)]
