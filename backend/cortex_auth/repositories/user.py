"""User repository for persistence of authentication identities."""

from __future__ import annotations

from typing import cast

from sqlalchemy import select

from cortex_auth.models.user import User
from cortex_auth.repositories.base import BaseRepository
from cortex_auth.services._shared.ports import UserRole, normalize_email


class UserRepository(BaseRepository[User]):
    """Persistence-only repository for :class:`User`.

    It NEVER hashes or verifies passwords; callers pass the hash in.
    """

    model = User

    def get_by_email(self, email: str) -> User | None:
        """Fetch a user by email (case-insensitive).

        :param email: Email address to normalise and search.
        :type email: str
        :returns: User instance or ``None`` when not found.
        :rtype: User | None
        """
        stmt = select(User).where(User.email == normalize_email(email))
        result = self.session.execute(stmt).scalars().first()
        return cast(User | None, result)

    def set_role(self, user: User, role: UserRole) -> User:
        """Assign a new role and flush.

        :param user: Managed user instance.
        :param role: New role.
        :returns: The same instance.
        """
        user.role = UserRole(role)
        self.flush()
        return user
