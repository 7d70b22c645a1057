"""Authentication-related Marshmallow schemas."""

from __future__ import annotations

from marshmallow import Schema, fields, validate

from cortex_auth.services._shared.ports import UserRole


class RegisterSchema(Schema):
    """Input payload for account registration."""

    email = fields.Email(required=True, validate=validate.Length(max=254))
    password = fields.String(required=True, validate=validate.Length(min=8, max=128))
    name = fields.String(load_default=None, allow_none=True, validate=validate.Length(max=100))


class LoginSchema(Schema):
    """Input payload for authenticating a user."""

    email = fields.Email(required=True, validate=validate.Length(max=254))
    password = fields.String(required=True, validate=validate.Length(min=1, max=128))


class RefreshTokenSchema(Schema):
    """Input payload carrying a raw refresh token (refresh and logout)."""

    refresh_token = fields.String(required=True, validate=validate.Length(min=1, max=256))


class TokenPairSchema(Schema):
    """Response payload containing an access/refresh token pair."""

    access_token = fields.String(required=True)
    refresh_token = fields.String(required=True)
    token_type = fields.String(dump_default="bearer")


class UserSchema(Schema):
    """Public user representation (never includes the password hash)."""

    id = fields.String(required=True)
    email = fields.Email(required=True)
    name = fields.String(allow_none=True)
    role = fields.Enum(UserRole, by_value=True)
    created_at = fields.DateTime()


class AuthResultSchema(TokenPairSchema):
    """Token pair plus the authenticated user."""

    user = fields.Nested(UserSchema)
