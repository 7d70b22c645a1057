"""Authentication endpoints using the service layer."""

from __future__ import annotations

from flask import Blueprint
from flask_jwt_extended import get_jwt_identity

from cortex_auth.api.deps import auth_service, json_body, json_response, require_auth, timing
from cortex_auth.schemas import (
    AuthResultSchema,
    LoginSchema,
    RefreshTokenSchema,
    RegisterSchema,
    TokenPairSchema,
    UserSchema,
)
from cortex_auth.services._shared.errors import ServiceError
from cortex_auth.services.auth.dto import AuthResultOut, LoginIn, LogoutIn, RefreshIn, RegisterIn

bp = Blueprint("auth", __name__, url_prefix="/auth")

register_schema = RegisterSchema()
login_schema = LoginSchema()
refresh_schema = RefreshTokenSchema()
token_schema = TokenPairSchema()
auth_result_schema = AuthResultSchema()
user_schema = UserSchema()


def _auth_body(result: AuthResultOut) -> dict:
    return {
        "data": auth_result_schema.dump(
            {
                "access_token": result.tokens.access_token,
                "refresh_token": result.tokens.refresh_token,
                "user": result.user,
            }
        )
    }


@bp.post("/register")
@timing
def register():
    """Register a new user and open its first session."""

    payload = register_schema.load(json_body())
    service = auth_service()
    try:
        result = service.register(RegisterIn(**payload))
    except ServiceError as exc:
        raise service.translate_exceptions(exc) from exc
    return json_response(_auth_body(result), status=201)


@bp.post("/login")
@timing
def login():
    """Authenticate credentials and issue a token pair."""

    data = login_schema.load(json_body())
    service = auth_service()
    try:
        result = service.login(LoginIn(email=data["email"], password=data["password"]))
    except ServiceError as exc:
        raise service.translate_exceptions(exc) from exc
    return json_response(_auth_body(result))


@bp.post("/refresh")
@timing
def refresh():
    """Rotate a refresh token and return the new pair."""

    data = refresh_schema.load(json_body())
    service = auth_service()
    try:
        tokens = service.refresh(RefreshIn(refresh_token=data["refresh_token"]))
    except ServiceError as exc:
        raise service.translate_exceptions(exc) from exc
    return json_response({"data": token_schema.dump(tokens)})


@bp.post("/logout")
@timing
def logout():
    """Revoke a refresh token. Always succeeds for well-formed requests."""

    data = refresh_schema.load(json_body())
    auth_service().logout(LogoutIn(refresh_token=data["refresh_token"]))
    return json_response({"data": {"message": "Logged out"}})


@bp.get("/me")
@require_auth
@timing
def me():
    """Return the authenticated user profile."""

    identity = get_jwt_identity()
    service = auth_service()
    try:
        user = service.get_current_user(str(identity))
    except ServiceError as exc:
        raise service.translate_exceptions(exc) from exc
    return json_response({"data": user_schema.dump(user)})
