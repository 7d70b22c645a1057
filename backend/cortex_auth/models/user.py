"""User model: the authentication identity."""

from __future__ import annotations

from sqlalchemy import Enum as SAEnum
from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, validates

from cortex_auth.core.extensions import db
from cortex_auth.services._shared.ports import UserRole, normalize_email

from .base import CreatedAtMixin, PKMixin, ReprMixin


class User(PKMixin, ReprMixin, CreatedAtMixin, db.Model):
    """
    Authentication identity.

    Fields
    ------
    email : str
        Login email. Stored normalized (lowercase, trimmed).
    password_hash : str
        bcrypt hash; the plaintext password is never stored.
    name : str | None
        Optional display name.
    role : UserRole
        Authorization role embedded in access tokens.
    created_at : datetime
        Creation timestamp (from mixin).
    """

    __tablename__ = "users"

    # Columns
    email: Mapped[str] = mapped_column(String(254), nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    role: Mapped[UserRole] = mapped_column(
        SAEnum(UserRole, name="user_role", native_enum=False, length=16),
        nullable=False,
        default=UserRole.USER,
        server_default=UserRole.USER.value,
    )

    # Constraints
    __table_args__ = (UniqueConstraint("email", name="uq_users_email"),)

    # -------------------- Validators --------------------
    @validates("email")
    def _normalize_email(self, key: str, value: str) -> str:
        """
        Normalize and validate email.

        :param key: Field name (``email``).
        :type key: str
        :param value: Email to normalize.
        :type value: str
        :returns: Normalized email (lowercased/trimmed).
        :rtype: str
        :raises ValueError: If email is missing or malformed.
        """
        if not value or not isinstance(value, str):
            raise ValueError("Email is required.")
        v = normalize_email(value)
        # Minimal sanity check; full validation happens at API layer.
        if "@" not in v:
            raise ValueError("Email format looks invalid.")
        return v
