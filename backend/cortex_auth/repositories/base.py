"""Generic repository base for SQLAlchemy 2.x.

Repositories are persistence-only:

- No business logic, no commit/rollback. Units of Work own transactions.
- No password hashing, token minting or digesting. Services do that.
"""

from __future__ import annotations

from typing import Any, Generic, TypeVar, cast

from sqlalchemy import select
from sqlalchemy.orm import Session

from cortex_auth.core.extensions import db

E = TypeVar("E")  # SQLAlchemy mapped entity type


class BaseRepository(Generic[E]):
    """
    Minimal typed repository bound to one mapped model.

    Subclasses set :attr:`model` and add aggregate-specific lookups.
    """

    model: type[E]

    def __init__(self, session: Session | None = None) -> None:
        """Initialise the repository with an optional SQLAlchemy session.

        When no explicit session is provided the repository falls back to the
        Flask-scoped session exposed by ``cortex_auth.core.extensions``.

        :param session: Session shared across the Unit of Work scope.
        :type session: :class:`sqlalchemy.orm.Session` | None
        """
        self._session: Session | None = session

    @property
    def session(self) -> Session:
        """Return the injected session, else the Flask-scoped one."""
        if self._session is not None:
            return self._session
        return cast(Session, db.session)

    def add(self, instance: E) -> E:
        """Stage a new entity and flush to surface constraint violations early.

        :param instance: Entity to persist.
        :returns: The same instance after ``flush()``.
        :raises sqlalchemy.exc.IntegrityError: On unique/FK violations.
        """
        self.session.add(instance)
        self.flush()
        return instance

    def get(self, entity_id: Any) -> E | None:
        """Fetch an entity by primary key.

        :param entity_id: Primary key value.
        :returns: Entity or ``None`` when not found.
        """
        stmt = select(self.model).where(self.model.id == entity_id)  # type: ignore[attr-defined]
        return cast(E | None, self.session.execute(stmt).scalars().first())

    def flush(self) -> None:
        """Flush pending changes to the database (no commit)."""
        self.session.flush()
