"""SQLAlchemy-backed :class:`UserStore`."""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from cortex_auth.models.user import User
from cortex_auth.services._shared.errors import DuplicateEmailError, NotFoundError, violates
from cortex_auth.services._shared.ports import (
    UserRecord,
    UserRole,
    UserStore,
    UserWithHash,
    as_utc,
    normalize_email,
)
from cortex_auth.uow.sqlalchemy_uow import SQLAlchemyReadOnlyUnitOfWork, SQLAlchemyUnitOfWork


def to_record(user: User) -> UserRecord:
    return UserRecord(
        id=user.id,
        email=user.email,
        name=user.name,
        role=UserRole(user.role),
        created_at=as_utc(user.created_at),
    )


class SQLAlchemyUserStore(UserStore):
    """
    User store over the ``users`` table.

    Every call opens and closes its own Unit of Work; ORM instances never
    escape it, only immutable records do.
    """

    def create(self, *, email: str, password_hash: str, name: str | None = None) -> UserRecord:
        try:
            with SQLAlchemyUnitOfWork() as uow:
                user = uow.users.add(
                    User(email=email, password_hash=password_hash, name=name, role=UserRole.USER)
                )
                record = to_record(user)
        except IntegrityError as exc:
            if violates(exc, "uq_users_email"):
                raise DuplicateEmailError(normalize_email(email)) from exc
            raise
        return record

    def find_by_email_with_password(self, email: str) -> UserWithHash | None:
        with SQLAlchemyReadOnlyUnitOfWork() as uow:
            user = uow.users.get_by_email(email)
            if user is None:
                return None
            base = to_record(user)
            return UserWithHash(
                id=base.id,
                email=base.email,
                name=base.name,
                role=base.role,
                created_at=base.created_at,
                password_hash=user.password_hash,
            )

    def find_by_id(self, user_id: str) -> UserRecord | None:
        with SQLAlchemyReadOnlyUnitOfWork() as uow:
            user = uow.users.get(user_id)
            return to_record(user) if user is not None else None

    def update_role(self, user_id: str, role: UserRole) -> UserRecord:
        """Change a user's role (administrative, used by the CLI).

        :raises NotFoundError: If the user does not exist.
        """
        with SQLAlchemyUnitOfWork() as uow:
            user = uow.users.get(user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            uow.users.set_role(user, role)
            return to_record(user)
