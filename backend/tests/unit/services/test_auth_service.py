# tests/unit/services/test_auth_service.py
from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import UTC, datetime, timedelta

import pytest
from cortex_auth.services._shared.base import BaseService
from cortex_auth.services._shared.ports import (
    InMemorySessionStore,
    InMemoryUserStore,
    RevocationReason,
    SessionState,
    StubTokenProvider,
    UserRole,
)
from cortex_auth.services.auth.credentials import CredentialVerifier
from cortex_auth.services.auth.dto import (
    AuthResultOut,
    LoginIn,
    LogoutIn,
    RefreshIn,
    RegisterIn,
    TokenPairOut,
)
from cortex_auth.services.auth.errors import (
    DuplicateEmailRegistrationError,
    InvalidPasswordForLoginError,
    InvalidRefreshTokenError,
    RefreshTokenReuseDetectedError,
    UserNotFoundForLoginError,
    UserNotFoundForSessionError,
)
from cortex_auth.services.auth.service import AuthService
from cortex_auth.services.auth.token_issuer import TokenIssuer
from tests.helpers.utils import not_raises

PASSWORD = "Pw12345!"


class RacingSessionStore(InMemorySessionStore):
    """Session store where a concurrent request always wins the rotation race."""

    def revoke_token(self, record_id, *, reason, replaced_by_hash=None):
        if reason is RevocationReason.ROTATED:
            super().revoke_token(
                record_id, reason=RevocationReason.ROTATED, replaced_by_hash="0" * 64
            )
        return super().revoke_token(record_id, reason=reason, replaced_by_hash=replaced_by_hash)


# ------------------------------ Fixtures ---------------------------------- #
@pytest.fixture()
def users() -> InMemoryUserStore:
    return InMemoryUserStore()


@pytest.fixture()
def sessions() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture()
def provider() -> StubTokenProvider:
    return StubTokenProvider()


@pytest.fixture()
def service(users, sessions, provider) -> AuthService:
    """Build an AuthService wired to in-memory doubles."""
    return AuthService(
        users=users,
        sessions=sessions,
        tokens=TokenIssuer(provider),
        credentials=CredentialVerifier(rounds=4),
    )


def _register(service: AuthService, email: str = "alice@example.com") -> AuthResultOut:
    return service.register(RegisterIn(email=email, password=PASSWORD, name="Alice"))


def _record_for(sessions: InMemorySessionStore, raw: str):
    return sessions.find_refresh_token(TokenIssuer.hash_token(raw))


def _active(sessions: InMemorySessionStore, user_id: str) -> list:
    return [r for r in sessions.list_user_tokens(user_id) if not r.is_revoked]


# ------------------------------ Register ---------------------------------- #
def test_register_returns_pair_and_public_user(service, sessions, provider):
    result = _register(service)

    assert isinstance(result.tokens, TokenPairOut)
    assert result.user.email == "alice@example.com"
    assert result.user.name == "Alice"
    assert result.user.role is UserRole.USER
    assert not hasattr(result.user, "password_hash")

    assert len(result.tokens.refresh_token) == 64
    int(result.tokens.refresh_token, 16)  # hex

    claims = provider.decode(result.tokens.access_token)
    assert claims["sub"] == result.user.id
    assert claims["email"] == "alice@example.com"
    assert claims["role"] == "USER"

    record = _record_for(sessions, result.tokens.refresh_token)
    assert record is not None
    assert record.user_id == result.user.id
    assert record.state is SessionState.ACTIVE


def test_register_persists_refresh_token_for_seven_days(service, sessions):
    before = datetime.now(UTC)
    result = _register(service)
    record = _record_for(sessions, result.tokens.refresh_token)

    assert before + timedelta(days=7) <= record.expires_at
    assert record.expires_at <= datetime.now(UTC) + timedelta(days=7)


def test_register_stores_bcrypt_hash_not_password(service, users):
    _register(service)
    stored = users.find_by_email_with_password("alice@example.com")

    assert stored is not None
    assert stored.password_hash != PASSWORD
    assert stored.password_hash.startswith("$2")


def test_register_duplicate_email_is_rejected_case_insensitively(service):
    _register(service)

    with pytest.raises(DuplicateEmailRegistrationError) as excinfo:
        _register(service, email="  ALICE@example.com ")
    assert excinfo.value.email == "  ALICE@example.com "


# ------------------------------- Login ------------------------------------ #
def test_login_opens_an_independent_session(service, sessions):
    registered = _register(service)
    logged_in = service.login(LoginIn(email="alice@example.com", password=PASSWORD))

    assert logged_in.user.id == registered.user.id
    assert logged_in.tokens.refresh_token != registered.tokens.refresh_token
    assert len(_active(sessions, registered.user.id)) == 2


def test_login_unknown_email(service):
    with pytest.raises(UserNotFoundForLoginError):
        service.login(LoginIn(email="missing@example.com", password=PASSWORD))


def test_login_wrong_password(service):
    registered = _register(service)

    with pytest.raises(InvalidPasswordForLoginError) as excinfo:
        service.login(LoginIn(email="alice@example.com", password="wrong-password"))
    assert excinfo.value.user_id == registered.user.id


def test_login_failures_do_not_create_sessions(service, sessions):
    registered = _register(service)
    with pytest.raises(InvalidPasswordForLoginError):
        service.login(LoginIn(email="alice@example.com", password="nope"))

    assert len(sessions.list_user_tokens(registered.user.id)) == 1


# ------------------------------ Refresh ----------------------------------- #
def test_refresh_rotates_and_links_successor(service, sessions):
    registered = _register(service)
    old_raw = registered.tokens.refresh_token

    pair = service.refresh(RefreshIn(refresh_token=old_raw))

    assert pair.refresh_token != old_raw
    old = _record_for(sessions, old_raw)
    assert old.is_revoked is True
    assert old.revoked_reason is RevocationReason.ROTATED
    assert old.state is SessionState.ROTATED
    assert old.replaced_by_hash == TokenIssuer.hash_token(pair.refresh_token)
    assert _record_for(sessions, pair.refresh_token).state is SessionState.ACTIVE


def test_refresh_unknown_token(service):
    with pytest.raises(InvalidRefreshTokenError):
        service.refresh(RefreshIn(refresh_token="f" * 64))


def test_rotation_invalidates_predecessor(service, sessions):
    registered = _register(service)
    t0 = registered.tokens.refresh_token
    t1 = service.refresh(RefreshIn(refresh_token=t0)).refresh_token

    with pytest.raises(RefreshTokenReuseDetectedError) as excinfo:
        service.refresh(RefreshIn(refresh_token=t0))
    assert excinfo.value.user_id == registered.user.id

    # Cascade revoked the successor too
    with pytest.raises(RefreshTokenReuseDetectedError):
        service.refresh(RefreshIn(refresh_token=t1))
    assert _active(sessions, registered.user.id) == []


def test_reuse_revokes_the_whole_family(service, sessions):
    registered = _register(service)
    a = registered.tokens.refresh_token
    b = service.login(LoginIn(email="alice@example.com", password=PASSWORD)).tokens.refresh_token
    a_prime = service.refresh(RefreshIn(refresh_token=a)).refresh_token

    with pytest.raises(RefreshTokenReuseDetectedError):
        service.refresh(RefreshIn(refresh_token=a))

    for token in (a_prime, b):
        with pytest.raises(RefreshTokenReuseDetectedError):
            service.refresh(RefreshIn(refresh_token=token))

    replayed = [_record_for(sessions, t) for t in (a_prime, b)]
    assert all(r.state is SessionState.REPLAY_REVOKED for r in replayed)
    assert all(r.replaced_by_hash is None for r in replayed)
    # Earlier reason preserved
    assert _record_for(sessions, a).state is SessionState.ROTATED


def test_reuse_does_not_touch_other_users(service, sessions):
    alice = _register(service)
    bob = _register(service, email="bob@example.com")
    service.refresh(RefreshIn(refresh_token=alice.tokens.refresh_token))

    with pytest.raises(RefreshTokenReuseDetectedError):
        service.refresh(RefreshIn(refresh_token=alice.tokens.refresh_token))

    assert len(_active(sessions, bob.user.id)) == 1


def test_expired_token_is_terminal(service, sessions):
    registered = _register(service)
    raw = TokenIssuer.generate_refresh_token()
    sessions.save_refresh_token(
        user_id=registered.user.id,
        token_hash=TokenIssuer.hash_token(raw),
        expires_at=datetime.now(UTC) - timedelta(minutes=1),
    )

    with pytest.raises(InvalidRefreshTokenError):
        service.refresh(RefreshIn(refresh_token=raw))

    record = _record_for(sessions, raw)
    assert record.is_revoked is True
    assert record.state is SessionState.EXPIRED_REVOKED
    assert record.replaced_by_hash is None

    # Still plain invalid on retry, and no cascade over the live session
    with pytest.raises(InvalidRefreshTokenError):
        service.refresh(RefreshIn(refresh_token=raw))
    assert _record_for(sessions, registered.tokens.refresh_token).state is SessionState.ACTIVE


def test_refresh_reflects_current_role(service, users, provider):
    registered = _register(service)
    before = provider.decode(registered.tokens.access_token)
    assert before["role"] == "USER"

    users.update_role(registered.user.id, UserRole.ADMIN)
    pair = service.refresh(RefreshIn(refresh_token=registered.tokens.refresh_token))

    assert provider.decode(pair.access_token)["role"] == "ADMIN"


def test_refresh_for_deleted_user(service, users):
    registered = _register(service)
    users.delete(registered.user.id)

    with pytest.raises(UserNotFoundForSessionError) as excinfo:
        service.refresh(RefreshIn(refresh_token=registered.tokens.refresh_token))
    assert excinfo.value.user_id == registered.user.id


def test_lost_rotation_race_is_treated_as_reuse(users, provider):
    sessions = RacingSessionStore()
    service = AuthService(
        users=users,
        sessions=sessions,
        tokens=TokenIssuer(provider),
        credentials=CredentialVerifier(rounds=4),
    )
    registered = _register(service)

    with pytest.raises(RefreshTokenReuseDetectedError):
        service.refresh(RefreshIn(refresh_token=registered.tokens.refresh_token))

    # Includes the pair issued just before the conditional revoke failed
    records = sessions.list_user_tokens(registered.user.id)
    assert len(records) == 2
    assert _active(sessions, registered.user.id) == []


# ------------------------------- Logout ----------------------------------- #
def test_logout_revokes_without_successor(service, sessions):
    registered = _register(service)

    service.logout(LogoutIn(refresh_token=registered.tokens.refresh_token))

    record = _record_for(sessions, registered.tokens.refresh_token)
    assert record.state is SessionState.LOGGED_OUT
    assert record.replaced_by_hash is None


def test_logout_is_idempotent(service):
    registered = _register(service)

    with not_raises(Exception):
        service.logout(LogoutIn(refresh_token=registered.tokens.refresh_token))
        service.logout(LogoutIn(refresh_token=registered.tokens.refresh_token))
        service.logout(LogoutIn(refresh_token="never-issued"))


def test_logout_of_rotated_token_is_a_noop(service, sessions):
    registered = _register(service)
    pair = service.refresh(RefreshIn(refresh_token=registered.tokens.refresh_token))

    service.logout(LogoutIn(refresh_token=registered.tokens.refresh_token))

    assert _record_for(sessions, registered.tokens.refresh_token).state is SessionState.ROTATED
    assert _record_for(sessions, pair.refresh_token).state is SessionState.ACTIVE


def test_logged_out_token_cannot_refresh(service):
    registered = _register(service)
    service.logout(LogoutIn(refresh_token=registered.tokens.refresh_token))

    with pytest.raises(RefreshTokenReuseDetectedError):
        service.refresh(RefreshIn(refresh_token=registered.tokens.refresh_token))


# ---------------------------- Current user -------------------------------- #
def test_get_current_user(service):
    registered = _register(service)

    view = service.get_current_user(registered.user.id)

    assert view == registered.user


def test_get_current_user_missing(service):
    with pytest.raises(UserNotFoundForSessionError):
        service.get_current_user("does-not-exist")


# ------------------------------ Properties -------------------------------- #
def test_no_plaintext_refresh_token_is_persisted(service, sessions):
    registered = _register(service)
    pair = service.refresh(RefreshIn(refresh_token=registered.tokens.refresh_token))

    for record in sessions.records():
        values = [str(v) for v in asdict(record).values()]
        assert registered.tokens.refresh_token not in values
        assert pair.refresh_token not in values


def test_alice_scenario(service):
    registered = service.register(RegisterIn(email="alice@example.com", password=PASSWORD))
    logged_in = service.login(LoginIn(email="alice@example.com", password=PASSWORD))
    assert logged_in.tokens.refresh_token != registered.tokens.refresh_token

    token2 = service.refresh(RefreshIn(refresh_token=registered.tokens.refresh_token))

    with pytest.raises(RefreshTokenReuseDetectedError):
        service.refresh(RefreshIn(refresh_token=registered.tokens.refresh_token))
    with pytest.raises(RefreshTokenReuseDetectedError):
        service.refresh(RefreshIn(refresh_token=token2.refresh_token))
    with pytest.raises(RefreshTokenReuseDetectedError):
        service.refresh(RefreshIn(refresh_token=logged_in.tokens.refresh_token))


# ------------------------------- Logging ---------------------------------- #
def test_reuse_is_logged_as_error_without_secrets(service, caplog):
    registered = _register(service)
    service.refresh(RefreshIn(refresh_token=registered.tokens.refresh_token))

    with caplog.at_level(logging.INFO, logger="cortex_auth.services.auth.service"):
        with pytest.raises(RefreshTokenReuseDetectedError):
            service.refresh(RefreshIn(refresh_token=registered.tokens.refresh_token))

    errors = [r for r in caplog.records if r.levelno == logging.ERROR]
    assert len(errors) == 1
    assert errors[0].name == "cortex_auth.services.auth.service"
    assert errors[0].user_id == registered.user.id
    assert errors[0].revoked == 1
    assert registered.tokens.refresh_token not in caplog.text


def test_login_failures_are_logged_as_warnings(service, caplog):
    _register(service)

    with caplog.at_level(logging.WARNING, logger="cortex_auth.services.auth.service"):
        with pytest.raises(UserNotFoundForLoginError):
            service.login(LoginIn(email="ghost@example.com", password=PASSWORD))
        with pytest.raises(InvalidPasswordForLoginError):
            service.login(LoginIn(email="alice@example.com", password="bad-password"))

    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == 2
    assert "bad-password" not in caplog.text
    assert PASSWORD not in caplog.text


def test_services_log_through_their_module_logger():
    assert not hasattr(BaseService, "log")
    assert not hasattr(AuthService, "log")
