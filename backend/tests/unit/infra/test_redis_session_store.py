# tests/unit/infra/test_redis_session_store.py
"""
Unit tests for RedisSessionStore using fakeredis.

They use fakeredis.FakeRedis so they run entirely in-memory and integrate with pytest.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import fakeredis
import pytest
from cortex_auth.infra.redis.redis_session_store import RedisSessionStore
from cortex_auth.services._shared.ports import (
    InMemoryUserStore,
    RevocationReason,
    SessionState,
    StubTokenProvider,
)
from cortex_auth.services.auth.credentials import CredentialVerifier
from cortex_auth.services.auth.dto import LoginIn, RefreshIn, RegisterIn
from cortex_auth.services.auth.errors import RefreshTokenReuseDetectedError
from cortex_auth.services.auth.service import AuthService
from cortex_auth.services.auth.token_issuer import TokenIssuer


def _now() -> datetime:
    """Return a timezone-aware UTC "now"."""
    return datetime.now(UTC)


def _digest(i: int) -> str:
    return TokenIssuer.hash_token(f"raw-{i}")


@pytest.fixture
def fake_redis():
    """Provide a fresh FakeRedis instance for each test."""
    r = fakeredis.FakeRedis()
    r.flushall()
    return r


@pytest.fixture
def store(fake_redis):
    """Provide a RedisSessionStore backed by FakeRedis."""
    return RedisSessionStore(r=fake_redis)


def test_save_and_find(store):
    expires = _now() + timedelta(days=7)
    saved = store.save_refresh_token(user_id="u1", token_hash=_digest(1), expires_at=expires)

    found = store.find_refresh_token(_digest(1))

    assert found == saved
    assert found.state is SessionState.ACTIVE
    assert found.expires_at == expires
    assert found.replaced_by_hash is None


def test_find_unknown_digest(store):
    assert store.find_refresh_token(_digest(404)) is None


def test_records_never_expire_by_default(store, fake_redis):
    saved = store.save_refresh_token(
        user_id="u1", token_hash=_digest(1), expires_at=_now() + timedelta(hours=1)
    )
    store.revoke_token(saved.id, reason=RevocationReason.ROTATED, replaced_by_hash=_digest(2))

    assert fake_redis.ttl(f"rt:id:{saved.id}") == -1
    assert fake_redis.ttl(f"rt:h:{_digest(1)}") == -1
    assert fake_redis.ttl("rt:u:u1") == -1


def test_opt_in_retention_expires_keys_after_token(fake_redis):
    store = RedisSessionStore(r=fake_redis, retention=timedelta(days=1))
    saved = store.save_refresh_token(
        user_id="u1", token_hash=_digest(1), expires_at=_now() + timedelta(hours=1)
    )

    for key in (f"rt:id:{saved.id}", f"rt:h:{_digest(1)}"):
        ttl = fake_redis.ttl(key)
        assert timedelta(hours=24) < timedelta(seconds=ttl) <= timedelta(hours=25)


def test_replay_long_after_expiry_still_cascades(store):
    class LaterAuthService(AuthService):
        now = _now()

        @classmethod
        def now_utc(cls):
            return cls.now

    users = InMemoryUserStore()
    service = LaterAuthService(
        users=users,
        sessions=store,
        tokens=TokenIssuer(StubTokenProvider()),
        credentials=CredentialVerifier(rounds=4),
    )
    registered = service.register(RegisterIn(email="alice@example.com", password="Pw12345!"))
    service.login(LoginIn(email="alice@example.com", password="Pw12345!"))
    service.refresh(RefreshIn(refresh_token=registered.tokens.refresh_token))

    LaterAuthService.now = _now() + timedelta(days=30)
    with pytest.raises(RefreshTokenReuseDetectedError):
        service.refresh(RefreshIn(refresh_token=registered.tokens.refresh_token))

    records = store.list_user_tokens(registered.user.id)
    assert len(records) == 3
    assert all(r.is_revoked for r in records)
    assert records[0].revoked_reason is RevocationReason.ROTATED


def test_revoke_is_compare_and_swap(store):
    saved = store.save_refresh_token(
        user_id="u1", token_hash=_digest(1), expires_at=_now() + timedelta(days=1)
    )

    first = store.revoke_token(
        saved.id, reason=RevocationReason.ROTATED, replaced_by_hash=_digest(2)
    )
    second = store.revoke_token(saved.id, reason=RevocationReason.LOGGED_OUT)

    assert first is True
    assert second is False
    record = store.find_refresh_token(_digest(1))
    assert record.state is SessionState.ROTATED
    assert record.replaced_by_hash == _digest(2)
    assert record.revoked_at is not None


def test_revoke_unknown_record(store):
    assert store.revoke_token("missing", reason=RevocationReason.LOGGED_OUT) is False


def test_revoke_all_only_touches_active_records_of_user(store):
    future = _now() + timedelta(days=1)
    a = store.save_refresh_token(user_id="u1", token_hash=_digest(1), expires_at=future)
    store.save_refresh_token(user_id="u1", token_hash=_digest(2), expires_at=future)
    store.save_refresh_token(user_id="u2", token_hash=_digest(3), expires_at=future)
    store.revoke_token(a.id, reason=RevocationReason.LOGGED_OUT)

    count = store.revoke_all_user_tokens("u1")

    assert count == 1
    states = {r.token_hash: r.state for r in store.list_user_tokens("u1")}
    assert states[_digest(1)] is SessionState.LOGGED_OUT
    assert states[_digest(2)] is SessionState.REPLAY_REVOKED
    assert store.find_refresh_token(_digest(3)).state is SessionState.ACTIVE


def test_revoke_all_cleans_stale_index_entries(store, fake_redis):
    saved = store.save_refresh_token(
        user_id="u1", token_hash=_digest(1), expires_at=_now() + timedelta(days=1)
    )
    fake_redis.delete(f"rt:id:{saved.id}")

    assert store.revoke_all_user_tokens("u1") == 0
    assert fake_redis.smembers("rt:u:u1") == set()


def test_raw_token_never_stored(store, fake_redis):
    raw = TokenIssuer.generate_refresh_token()
    store.save_refresh_token(
        user_id="u1", token_hash=TokenIssuer.hash_token(raw), expires_at=_now() + timedelta(days=1)
    )

    for key in fake_redis.scan_iter():
        assert raw.encode() not in key
        kind = fake_redis.type(key)
        if kind == b"hash":
            assert raw.encode() not in fake_redis.hgetall(key).values()
        elif kind == b"string":
            assert fake_redis.get(key) != raw.encode()
