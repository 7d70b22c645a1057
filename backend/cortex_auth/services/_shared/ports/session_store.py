from __future__ import annotations

import hmac
import threading
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from enum import Enum
from typing import Protocol
from uuid import uuid4


class RevocationReason(str, Enum):
    """Why a refresh-token record left the ``ACTIVE`` state."""

    ROTATED = "ROTATED"
    LOGGED_OUT = "LOGGED_OUT"
    EXPIRED = "EXPIRED"
    REPLAY = "REPLAY"


class SessionState(str, Enum):
    """Lifecycle state of a single refresh-token record (all but ACTIVE are absorbing)."""

    ACTIVE = "ACTIVE"
    ROTATED = "ROTATED"
    LOGGED_OUT = "LOGGED_OUT"
    EXPIRED_REVOKED = "EXPIRED_REVOKED"
    REPLAY_REVOKED = "REPLAY_REVOKED"


_STATE_BY_REASON = {
    RevocationReason.ROTATED: SessionState.ROTATED,
    RevocationReason.LOGGED_OUT: SessionState.LOGGED_OUT,
    RevocationReason.EXPIRED: SessionState.EXPIRED_REVOKED,
    RevocationReason.REPLAY: SessionState.REPLAY_REVOKED,
}


@dataclass(frozen=True)
class RefreshTokenRecord:
    """
    Server-side shadow of one issued refresh token.

    :ivar id: Opaque record identifier.
    :ivar token_hash: SHA-256 hex digest of the raw token (the only persisted form).
    :ivar user_id: Owning user.
    :ivar expires_at: Absolute expiry (UTC).
    :ivar is_revoked: Monotonic ``False`` → ``True`` flag.
    :ivar replaced_by_hash: Digest of the successor token, set only on rotation.
    :ivar created_at: Issuance timestamp (UTC).
    :ivar revoked_reason: Why the record was revoked, if it was.
    :ivar revoked_at: When the record was revoked, if it was.
    """

    id: str
    token_hash: str
    user_id: str
    expires_at: datetime
    is_revoked: bool
    replaced_by_hash: str | None
    created_at: datetime
    revoked_reason: RevocationReason | None = None
    revoked_at: datetime | None = None

    @property
    def state(self) -> SessionState:
        if not self.is_revoked:
            return SessionState.ACTIVE
        if self.revoked_reason is None:
            # Revoked by a writer that did not record a reason.
            return SessionState.LOGGED_OUT
        return _STATE_BY_REASON[self.revoked_reason]

    def is_expired(self, now: datetime) -> bool:
        return as_utc(self.expires_at) < as_utc(now)


def as_utc(dt: datetime) -> datetime:
    """Label naive datetimes as UTC (SQLite drops tzinfo on read)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


class SessionStore(Protocol):
    """
    Persistence port for refresh-token records.

    ``revoke_token`` MUST be a conditional write: it only succeeds while the
    record is still active, so at most one caller can move a record out of
    ``ACTIVE``.
    """

    def save_refresh_token(
        self, *, user_id: str, token_hash: str, expires_at: datetime
    ) -> RefreshTokenRecord:
        """Persist a new active record for ``token_hash``."""

    def find_refresh_token(self, token_hash: str) -> RefreshTokenRecord | None:
        """Fetch the record for a digest, whatever its state."""

    def revoke_token(
        self,
        record_id: str,
        *,
        reason: RevocationReason,
        replaced_by_hash: str | None = None,
    ) -> bool:
        """
        Atomically revoke an active record.

        :returns: ``True`` if this call flipped ``is_revoked``; ``False`` if the
            record was already revoked or does not exist.
        """

    def revoke_all_user_tokens(
        self, user_id: str, *, reason: RevocationReason = RevocationReason.REPLAY
    ) -> int:
        """
        Revoke every still-active record owned by ``user_id``.

        :returns: Number of records revoked by this call.
        """


class InMemorySessionStore(SessionStore):
    """
    In-memory session store with compare-and-swap revocation.

    .. note::
       Uses a threading lock to provide the same atomicity a database
       conditional update gives.
    """

    def __init__(self) -> None:
        self._by_id: dict[str, RefreshTokenRecord] = {}
        self._by_user: dict[str, set[str]] = {}
        self._id_by_hash: dict[str, str] = {}
        self._lock = threading.Lock()

    def save_refresh_token(
        self, *, user_id: str, token_hash: str, expires_at: datetime
    ) -> RefreshTokenRecord:
        record = RefreshTokenRecord(
            id=uuid4().hex,
            token_hash=token_hash,
            user_id=user_id,
            expires_at=as_utc(expires_at),
            is_revoked=False,
            replaced_by_hash=None,
            created_at=datetime.now(UTC),
        )
        with self._lock:
            self._by_id[record.id] = record
            self._id_by_hash[token_hash] = record.id
            self._by_user.setdefault(user_id, set()).add(record.id)
        return record

    def find_refresh_token(self, token_hash: str) -> RefreshTokenRecord | None:
        with self._lock:
            record_id = self._id_by_hash.get(token_hash)
            record = self._by_id.get(record_id) if record_id else None
        if record is None or not hmac.compare_digest(
            record.token_hash.encode(), token_hash.encode()
        ):
            return None
        return record

    def revoke_token(
        self,
        record_id: str,
        *,
        reason: RevocationReason,
        replaced_by_hash: str | None = None,
    ) -> bool:
        with self._lock:
            record = self._by_id.get(record_id)
            if record is None or record.is_revoked:
                return False
            self._by_id[record_id] = replace(
                record,
                is_revoked=True,
                replaced_by_hash=replaced_by_hash,
                revoked_reason=reason,
                revoked_at=datetime.now(UTC),
            )
            return True

    def revoke_all_user_tokens(
        self, user_id: str, *, reason: RevocationReason = RevocationReason.REPLAY
    ) -> int:
        now = datetime.now(UTC)
        count = 0
        with self._lock:
            for record_id in self._by_user.get(user_id, set()):
                record = self._by_id[record_id]
                if record.is_revoked:
                    continue
                self._by_id[record_id] = replace(
                    record, is_revoked=True, revoked_reason=reason, revoked_at=now
                )
                count += 1
        return count

    # ---------------------- inspection helpers (tests) ----------------------

    def records(self) -> list[RefreshTokenRecord]:
        """Snapshot of every persisted record."""
        with self._lock:
            return list(self._by_id.values())

    def list_user_tokens(self, user_id: str) -> list[RefreshTokenRecord]:
        with self._lock:
            return sorted(
                (self._by_id[i] for i in self._by_user.get(user_id, set())),
                key=lambda r: r.created_at,
            )
