"""Refresh-token model: server-side shadow of an issued refresh token."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String, false
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column

from cortex_auth.core.extensions import db
from cortex_auth.services._shared.ports import RevocationReason

from .base import CreatedAtMixin, PKMixin, ReprMixin


class RefreshToken(PKMixin, ReprMixin, CreatedAtMixin, db.Model):
    """
    One issued refresh token, stored as a SHA-256 digest only.

    Fields
    ------
    token_hash : str
        Hex digest of the raw token. Unique.
    user_id : str
        Owning user (indexed, cascades on user deletion).
    expires_at : datetime
        Absolute expiry.
    is_revoked : bool
        Flips ``False`` → ``True`` exactly once.
    replaced_by_hash : str | None
        Digest of the successor token; set only when rotated.
    revoked_reason : RevocationReason | None
        Why the token was revoked.
    revoked_at : datetime | None
        When the token was revoked.
    """

    __tablename__ = "refresh_tokens"

    token_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    user_id: Mapped[str] = mapped_column(
        String(32),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_revoked: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=false()
    )
    replaced_by_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    revoked_reason: Mapped[RevocationReason | None] = mapped_column(
        SAEnum(RevocationReason, name="revocation_reason", native_enum=False, length=16),
        nullable=True,
    )
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
