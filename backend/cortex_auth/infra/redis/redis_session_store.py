# comments in English; reST docstrings
from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import redis  # type: ignore[import-untyped]

from cortex_auth.services._shared.ports import (
    RefreshTokenRecord,
    RevocationReason,
    SessionStore,
    as_utc,
)


def _s(value: bytes | str | None, default: str = "") -> str:
    if value is None:
        return default
    return value.decode() if isinstance(value, bytes | bytearray) else str(value)


@dataclass(slots=True)
class RedisSessionStore(SessionStore):
    """
    Redis-backed session store with compare-and-swap revocation.

    Layout
    ------
    - ``rt:id:{id}``: hash with the record fields.
    - ``rt:h:{digest}``: record id for a token digest (lookup index).
    - ``rt:u:{user_id}``: set of the user's record ids.

    Records are kept indefinitely by default so rotated and revoked tokens
    stay available for replay detection and audit. Passing ``retention``
    opts into pruning: keys then expire that long after the token itself.

    :param r: A Redis client (already connected).
    :param retention: Extra lifetime of keys past ``expires_at``; ``None``
        disables expiry.
    """

    r: redis.Redis
    retention: timedelta | None = None

    # -------------------- helpers --------------------

    @staticmethod
    def _k(record_id: str) -> str:
        return f"rt:id:{record_id}"

    @staticmethod
    def _kh(token_hash: str) -> str:
        return f"rt:h:{token_hash}"

    @staticmethod
    def _ku(user_id: str) -> str:
        return f"rt:u:{user_id}"

    def _ttl(self, expires_at: datetime) -> int | None:
        if self.retention is None:
            return None
        remaining = as_utc(expires_at) + self.retention - datetime.now(UTC)
        return max(1, int(remaining.total_seconds()))

    @staticmethod
    def _to_record(record_id: str, raw: dict) -> RefreshTokenRecord:
        h = {_s(k): _s(v) for k, v in raw.items()}
        reason = h.get("revoked_reason", "")
        revoked_at = h.get("revoked_at", "")
        return RefreshTokenRecord(
            id=record_id,
            token_hash=h["token_hash"],
            user_id=h["user_id"],
            expires_at=datetime.fromisoformat(h["expires_at"]),
            is_revoked=h.get("is_revoked") == "1",
            replaced_by_hash=h.get("replaced_by_hash") or None,
            created_at=datetime.fromisoformat(h["created_at"]),
            revoked_reason=RevocationReason(reason) if reason else None,
            revoked_at=datetime.fromisoformat(revoked_at) if revoked_at else None,
        )

    # -------------------- API ------------------------

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
        ttl = self._ttl(record.expires_at)
        key = self._k(record.id)

        pipe = self.r.pipeline(transaction=True)
        pipe.hset(
            key,
            mapping={
                "token_hash": record.token_hash,
                "user_id": record.user_id,
                "expires_at": record.expires_at.isoformat(),
                "created_at": record.created_at.isoformat(),
                "is_revoked": "0",
                "replaced_by_hash": "",
                "revoked_reason": "",
                "revoked_at": "",
            },
        )
        if ttl is not None:
            pipe.expire(key, ttl)
        pipe.set(self._kh(token_hash), record.id, ex=ttl)
        pipe.sadd(self._ku(user_id), record.id)
        pipe.execute()
        return record

    def find_refresh_token(self, token_hash: str) -> RefreshTokenRecord | None:
        record_id = self.r.get(self._kh(token_hash))
        if record_id is None:
            return None
        rid = _s(record_id)
        h = self.r.hgetall(self._k(rid))
        if not h:
            return None
        return self._to_record(rid, h)

    def revoke_token(
        self,
        record_id: str,
        *,
        reason: RevocationReason,
        replaced_by_hash: str | None = None,
    ) -> bool:
        """
        Flip ``is_revoked`` only if it is still ``"0"``.

        Uses WATCH/MULTI/EXEC (optimistic locking); a concurrent writer on the
        same key aborts the transaction and the check is re-run.
        """
        key = self._k(record_id)
        while True:
            try:
                with self.r.pipeline() as p:
                    p.watch(key)
                    current = p.hget(key, "is_revoked")
                    if current is None or _s(current) == "1":
                        p.unwatch()
                        return False

                    p.multi()
                    p.hset(
                        key,
                        mapping={
                            "is_revoked": "1",
                            "replaced_by_hash": replaced_by_hash or "",
                            "revoked_reason": RevocationReason(reason).value,
                            "revoked_at": datetime.now(UTC).isoformat(),
                        },
                    )
                    p.execute()
                    return True
            except redis.WatchError:
                # Concurrent modification detected; retry
                continue

    def revoke_all_user_tokens(
        self, user_id: str, *, reason: RevocationReason = RevocationReason.REPLAY
    ) -> int:
        key_u = self._ku(user_id)
        members = sorted(_s(m) for m in self.r.smembers(key_u))

        revoked = 0
        stale: list[str] = []
        for record_id in members:
            if not self.r.exists(self._k(record_id)):
                stale.append(record_id)
                continue
            if self.revoke_token(record_id, reason=reason):
                revoked += 1

        if stale:
            # Underlying hashes expired -> drop them from the user's index
            self.r.srem(key_u, *stale)
        return revoked

    def list_user_tokens(self, user_id: str) -> list[RefreshTokenRecord]:
        records: list[RefreshTokenRecord] = []
        for member in self.r.smembers(self._ku(user_id)):
            rid = _s(member)
            h = self.r.hgetall(self._k(rid))
            if h:
                records.append(self._to_record(rid, h))
        return sorted(records, key=lambda rec: rec.created_at)
