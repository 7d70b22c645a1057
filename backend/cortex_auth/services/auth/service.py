from __future__ import annotations

import logging

from cortex_auth.services._shared.base import BaseService
from cortex_auth.services._shared.errors import DuplicateEmailError
from cortex_auth.services._shared.ports import (
    RefreshTokenRecord,
    RevocationReason,
    SessionStore,
    UserRecord,
    UserStore,
)
from cortex_auth.services.auth.credentials import CredentialVerifier
from cortex_auth.services.auth.dto import (
    AuthResultOut,
    AuthTokenConfig,
    LoginIn,
    LogoutIn,
    RefreshIn,
    RegisterIn,
    TokenPairOut,
    UserView,
)
from cortex_auth.services.auth.errors import (
    DuplicateEmailRegistrationError,
    InvalidPasswordForLoginError,
    InvalidRefreshTokenError,
    RefreshTokenReuseDetectedError,
    UserNotFoundForLoginError,
    UserNotFoundForSessionError,
)
from cortex_auth.services.auth.token_issuer import TokenIssuer

log = logging.getLogger(__name__)


class AuthService(BaseService):
    """
    Session lifecycle service (register / login / refresh / logout / me).

    Access tokens are stateless and signed through the :class:`TokenIssuer`.
    Refresh tokens are opaque, persisted only as SHA-256 digests in the
    :class:`SessionStore`, rotated on every use, and a replayed (already
    revoked) refresh token revokes every session of its owner.
    """

    def __init__(
        self,
        *,
        users: UserStore,
        sessions: SessionStore,
        tokens: TokenIssuer,
        credentials: CredentialVerifier,
        token_cfg: AuthTokenConfig | None = None,
    ) -> None:
        """
        Initialize the service with its dependencies.

        :param users: Store of user identities.
        :param sessions: Store of refresh-token records (conditional revoke).
        :param tokens: Access/refresh token minting and digesting.
        :param credentials: Password hashing and verification.
        :param token_cfg: Access/Refresh expiry configuration.
        """
        super().__init__()
        self.users = users
        self.sessions = sessions
        self.tokens = tokens
        self.credentials = credentials
        self.cfg = token_cfg or AuthTokenConfig()

    # ------------------------------------------------------------------ #
    # Register
    # ------------------------------------------------------------------ #

    def register(self, dto: RegisterIn) -> AuthResultOut:
        """
        Create a user and open its first session.

        :param dto: Registration input.
        :returns: Token pair plus the public user view.
        :raises DuplicateEmailRegistrationError: If the email is taken.
        """
        password_hash = self.credentials.hash(dto.password)
        try:
            user = self.users.create(email=dto.email, password_hash=password_hash, name=dto.name)
        except DuplicateEmailError as exc:
            log.warning("Registration rejected: duplicate email", extra={"email": dto.email})
            raise DuplicateEmailRegistrationError(dto.email) from exc

        tokens = self._issue_pair(user)
        log.info("User registered", extra={"event": "register", "user_id": user.id})
        return AuthResultOut(tokens=tokens, user=UserView.from_record(user))

    # ------------------------------------------------------------------ #
    # Login
    # ------------------------------------------------------------------ #

    def login(self, dto: LoginIn) -> AuthResultOut:
        """
        Authenticate credentials and issue a fresh token pair.

        The two failure kinds are distinct here for logging only; the HTTP
        layer renders both as the same "Invalid credentials" response.

        :param dto: Login input.
        :returns: Token pair plus the public user view.
        :raises UserNotFoundForLoginError: If no user has this email.
        :raises InvalidPasswordForLoginError: If the password does not match.
        """
        user = self.users.find_by_email_with_password(dto.email)
        if user is None:
            log.warning("Login failed: unknown email", extra={"email": dto.email})
            raise UserNotFoundForLoginError(dto.email)

        if not self.credentials.verify(dto.password, user.password_hash):
            log.warning("Login failed: invalid password", extra={"user_id": user.id})
            raise InvalidPasswordForLoginError(user.id)

        tokens = self._issue_pair(user)
        log.info("User logged in", extra={"event": "login", "user_id": user.id})
        return AuthResultOut(tokens=tokens, user=UserView.from_record(user))

    # ------------------------------------------------------------------ #
    # Refresh with rotation + reuse detection
    # ------------------------------------------------------------------ #

    def refresh(self, dto: RefreshIn) -> TokenPairOut:
        """
        Rotate a refresh token and emit a new token pair.

        Security
        --------
        - A revoked token presented again is treated as replay: every session
          of the owner is revoked. Tokens revoked because they expired stay
          plain invalid.
        - The successor is persisted *before* the predecessor is revoked, so an
          interrupted rotation never locks the user out.
        - The predecessor is revoked with a conditional write; losing that race
          to a concurrent refresh is handled exactly like a replay.

        :raises InvalidRefreshTokenError: Unknown or expired token.
        :raises RefreshTokenReuseDetectedError: Token was already revoked.
        :raises UserNotFoundForSessionError: Owner no longer exists.
        """
        record = self._lookup(dto.refresh_token)
        if record is None:
            log.warning("Refresh rejected: unknown token", extra={"event": "refresh"})
            raise InvalidRefreshTokenError()

        if record.is_revoked:
            if record.revoked_reason is RevocationReason.EXPIRED:
                # Expiry is terminal: a retry with a dead token is not a replay.
                log.warning(
                    "Refresh rejected: token expired",
                    extra={"event": "refresh", "user_id": record.user_id},
                )
                raise InvalidRefreshTokenError()
            raise self._handle_reuse(record)

        if record.is_expired(self.now_utc()):
            self.sessions.revoke_token(record.id, reason=RevocationReason.EXPIRED)
            log.warning(
                "Refresh rejected: token expired",
                extra={"event": "refresh", "user_id": record.user_id},
            )
            raise InvalidRefreshTokenError()

        # Always re-read: role may have changed since the token was issued.
        user = self.users.find_by_id(record.user_id)
        if user is None:
            log.warning(
                "Refresh rejected: user no longer exists",
                extra={"event": "refresh", "user_id": record.user_id},
            )
            raise UserNotFoundForSessionError(record.user_id)

        tokens = self._issue_pair(user)
        rotated = self.sessions.revoke_token(
            record.id,
            reason=RevocationReason.ROTATED,
            replaced_by_hash=self.tokens.hash_token(tokens.refresh_token),
        )
        if not rotated:
            raise self._handle_reuse(record)

        log.info("Session refreshed", extra={"event": "refresh", "user_id": user.id})
        return tokens

    # ------------------------------------------------------------------ #
    # Logout
    # ------------------------------------------------------------------ #

    def logout(self, dto: LogoutIn) -> None:
        """
        Revoke the session behind a refresh token.

        Idempotent: unknown, expired, rotated or already logged-out tokens are
        a silent no-op.
        """
        record = self._lookup(dto.refresh_token)
        if record is None or record.is_revoked:
            log.info("Logout no-op", extra={"event": "logout", "revoked": False})
            return

        revoked = self.sessions.revoke_token(record.id, reason=RevocationReason.LOGGED_OUT)
        log.info(
            "User logged out",
            extra={"event": "logout", "user_id": record.user_id, "revoked": revoked},
        )

    # ------------------------------------------------------------------ #
    # Current user
    # ------------------------------------------------------------------ #

    def get_current_user(self, user_id: str) -> UserView:
        """
        Return the public view of the authenticated user.

        :raises UserNotFoundForSessionError: If the user was deleted.
        """
        user = self.users.find_by_id(user_id)
        if user is None:
            log.warning("Current user not found", extra={"user_id": user_id})
            raise UserNotFoundForSessionError(user_id)
        return UserView.from_record(user)

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _issue_pair(self, user: UserRecord) -> TokenPairOut:
        """Sign an access token and persist a new refresh-token record."""
        access = self.tokens.generate_access_token(user)
        refresh = self.tokens.generate_refresh_token()
        self.sessions.save_refresh_token(
            user_id=user.id,
            token_hash=self.tokens.hash_token(refresh),
            expires_at=self.now_utc() + self.cfg.refresh_expires,
        )
        return TokenPairOut(access_token=access, refresh_token=refresh)

    def _lookup(self, raw: str) -> RefreshTokenRecord | None:
        record = self.sessions.find_refresh_token(self.tokens.hash_token(raw))
        if record is None or not self.tokens.compare_token_hash(raw, record.token_hash):
            return None
        return record

    def _handle_reuse(self, record: RefreshTokenRecord) -> RefreshTokenReuseDetectedError:
        """Revoke every active session of the owner and build the error to raise."""
        revoked = self.sessions.revoke_all_user_tokens(
            record.user_id, reason=RevocationReason.REPLAY
        )
        log.error(
            "Refresh token reuse detected; all sessions revoked (revoked=%d)",
            revoked,
            extra={"event": "refresh_reuse", "user_id": record.user_id, "revoked": revoked},
        )
        return RefreshTokenReuseDetectedError(record.user_id)
