from __future__ import annotations

import pytest
from cortex_auth.core.errors import APIError, Conflict, NotFound, Unauthorized
from cortex_auth.services._shared.base import BaseService
from cortex_auth.services._shared.errors import ConflictError, NotFoundError, ServiceError
from cortex_auth.services.auth.errors import (
    DuplicateEmailRegistrationError,
    InvalidPasswordForLoginError,
    InvalidRefreshTokenError,
    RefreshTokenReuseDetectedError,
    UserNotFoundForLoginError,
    UserNotFoundForSessionError,
)


def test_duplicate_email_maps_to_conflict():
    out = BaseService.translate_exceptions(DuplicateEmailRegistrationError("a@b.c"))

    assert isinstance(out, Conflict)
    assert out.status_code == 409
    assert out.message == "Email already exists"
    assert "a@b.c" not in out.message


@pytest.mark.parametrize(
    "exc",
    [UserNotFoundForLoginError("a@b.c"), InvalidPasswordForLoginError("u-1")],
)
def test_login_failures_collapse(exc):
    out = BaseService.translate_exceptions(exc)

    assert isinstance(out, Unauthorized)
    assert out.status_code == 401
    assert out.code == "unauthorized"
    assert out.message == "Invalid credentials"


@pytest.mark.parametrize(
    "exc",
    [
        InvalidRefreshTokenError(),
        RefreshTokenReuseDetectedError("u-1"),
        UserNotFoundForSessionError("u-1"),
    ],
)
def test_session_failures_collapse(exc):
    out = BaseService.translate_exceptions(exc)

    assert isinstance(out, Unauthorized)
    assert out.message == "Session expired"
    assert "u-1" not in out.message


def test_generic_service_errors():
    assert isinstance(BaseService.translate_exceptions(NotFoundError("User", "x")), NotFound)
    assert isinstance(BaseService.translate_exceptions(ConflictError("User", "x")), Conflict)

    out = BaseService.translate_exceptions(ServiceError("boom"))
    assert type(out) is APIError
    assert out.status_code == 400


def test_non_service_errors_pass_through():
    exc = RuntimeError("infra")

    assert BaseService.translate_exceptions(exc) is exc
