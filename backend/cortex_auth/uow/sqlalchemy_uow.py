"""
SQLAlchemy implementation of UnitOfWork for Flask.
"""

from __future__ import annotations

import logging
from contextlib import suppress

from sqlalchemy import event, text
from sqlalchemy.exc import InvalidRequestError, SQLAlchemyError
from sqlalchemy.orm import Session, SessionTransaction, scoped_session

from cortex_auth.core.extensions import db
from cortex_auth.repositories import RefreshTokenRepository, UserRepository
from cortex_auth.uow.base import UnitOfWork

log = logging.getLogger(__name__)


class SQLAlchemyRepositoryContainer:
    """Provide repository instances that share a SQLAlchemy session."""

    def __init__(self, *, session: Session) -> None:
        self.session = session
        self.users = UserRepository(session=self.session)
        self.refresh_tokens = RefreshTokenRepository(session=self.session)


class SQLAlchemyUnitOfWork(SQLAlchemyRepositoryContainer, UnitOfWork):
    """
    SQLAlchemy-backed UoW using the Flask-scoped session.

    The same session is shared across all repositories for a consistent transaction.
    """

    def __init__(self) -> None:
        super().__init__(session=db.session)

    def __enter__(self) -> SQLAlchemyUnitOfWork:
        # No-op: the session is lazily started on the first statement.
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            try:
                self.commit()
            except Exception:
                self.rollback()
                raise
        else:
            self.rollback()

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()


class SQLAlchemyReadOnlyUnitOfWork(SQLAlchemyRepositoryContainer, UnitOfWork):
    """
    Read-only Unit of Work backed by the Flask-scoped SQLAlchemy session.

    This UoW:
    - Applies ``SET TRANSACTION READ ONLY`` on PostgreSQL when it owns the
      transaction.
    - Blocks ORM flushes that carry new/dirty/deleted objects.
    - Always rolls back on exit and disallows ``commit()``.

    Notes
    -----
    If a transaction is already running on the session (an outer test
    fixture, for instance) the scope attaches to it instead of failing; the
    flush guard still applies.
    """

    def __init__(self, *, enforce_db_readonly: bool = True) -> None:
        super().__init__(session=db.session)
        self.enforce_db_readonly = enforce_db_readonly
        self._txn_ctx: SessionTransaction | None = None
        self._guarded: Session | None = None

    # ----------------------------- Context Manager -----------------------------

    def __enter__(self) -> SQLAlchemyReadOnlyUnitOfWork:
        self._txn_ctx = None
        try:
            txn_ctx = self.session.begin()
            txn_ctx.__enter__()
            self._txn_ctx = txn_ctx
        except InvalidRequestError:
            # Already inside a transaction: attach without SET TRANSACTION.
            pass

        self._install_guard()

        if self._txn_ctx is not None and self.enforce_db_readonly:
            dialect = self.session.get_bind().dialect.name
            if dialect == "postgresql":
                try:
                    self.session.execute(text("SET TRANSACTION READ ONLY"))
                except SQLAlchemyError as exc:
                    log.warning(
                        "SET TRANSACTION READ ONLY failed (%s). Falling back to guards-only.",
                        exc,
                    )
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if self._txn_ctx is not None:
                with suppress(SQLAlchemyError):
                    self.session.rollback()
                try:
                    self._txn_ctx.__exit__(exc_type, exc, tb)
                finally:
                    self._txn_ctx = None
        finally:
            self._remove_guard()

    # ----------------------------- Public API ---------------------------------

    def commit(self) -> None:
        """
        Disallow commit in read-only Unit of Work.

        :raises RuntimeError: always, to prevent accidental writes.
        """
        raise RuntimeError("Read-only UnitOfWork does not allow commit().")

    def rollback(self) -> None:
        self.session.rollback()

    # ----------------------------- Guards -------------------------------------

    @staticmethod
    def _before_flush(session, flush_context, instances):
        if session.new or session.dirty or session.deleted:
            raise RuntimeError(
                "Read-only UnitOfWork: ORM flush blocked (new/dirty/deleted objects present)."
            )

    def _install_guard(self) -> None:
        if self._guarded is not None:
            return
        # Listen on the concrete Session, not on the factory behind a scoped_session.
        target = self.session() if isinstance(self.session, scoped_session) else self.session
        event.listen(target, "before_flush", self._before_flush)
        self._guarded = target

    def _remove_guard(self) -> None:
        if self._guarded is None:
            return
        with suppress(InvalidRequestError):
            event.remove(self._guarded, "before_flush", self._before_flush)
        self._guarded = None
