"""Reusable SQLAlchemy mixins shared by the auth models (typed 2.0)."""

from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(UTC)


def new_id() -> str:
    return uuid4().hex


class PKMixin:
    """Expose an opaque string primary key column named ``id``.

    Attributes
    ----------
    id:
        32-character hex UUID generated application-side on insert.
    """

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)


class CreatedAtMixin:
    """Provide a ``created_at`` timestamp column.

    Attributes
    ----------
    created_at:
        Timezone-aware timestamp, set application-side so it is readable right
        after flush without a round-trip.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )


class ReprMixin:
    """Provide a concise ``__repr__`` including the class name and id."""

    def __repr__(self) -> str:
        """Return a short and useful string representation.

        :returns: Debug-friendly ``<ClassName id=...>``.
        :rtype: str
        """
        cls = self.__class__.__name__
        key = getattr(self, "id", None)
        return f"<{cls} id={key}>"
