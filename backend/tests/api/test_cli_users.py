"""``flask users`` command group over the in-memory store backend."""

from __future__ import annotations

import pytest
from cortex_auth.factory import create_app
from cortex_auth.services._shared.ports import UserRole

from tests.conftest import TestConfig


@pytest.fixture(autouse=True)
def _factories_session():
    """These commands never touch the transactional SQL session."""
    yield


@pytest.fixture()
def cli_app():
    """Fresh application whose context is active for the whole test.

    ``with_appcontext`` reuses whatever application context is current, so
    the commands and the assertions must both run under this one.
    """
    app = create_app(TestConfig)
    with app.app_context():
        yield app


@pytest.fixture()
def runner(cli_app):
    return cli_app.test_cli_runner()


def _users(cli_app):
    return cli_app.extensions["auth_service"].users


def test_commands_run_against_the_active_app(runner, cli_app):
    other = create_app(TestConfig)

    result = runner.invoke(
        args=["users", "create", "--email", "ctx@example.com", "--password", "Pw12345!"]
    )

    assert result.exit_code == 0, result.output
    assert _users(cli_app).find_by_email_with_password("ctx@example.com") is not None
    assert _users(other).find_by_email_with_password("ctx@example.com") is None


def test_create_user(runner, cli_app):
    result = runner.invoke(
        args=["users", "create", "--email", "Ops@Example.com", "--password", "Pw12345!"]
    )

    assert result.exit_code == 0, result.output
    assert "ops@example.com" in result.output
    assert "role=USER" in result.output

    service = cli_app.extensions["auth_service"]
    user = _users(cli_app).find_by_email_with_password("ops@example.com")
    assert user is not None
    assert service.credentials.verify("Pw12345!", user.password_hash)


def test_create_admin_user(runner, cli_app):
    result = runner.invoke(
        args=[
            "users", "create",
            "--email", "root@example.com",
            "--password", "Pw12345!",
            "--role", "admin",
        ]
    )

    assert result.exit_code == 0, result.output
    assert "role=ADMIN" in result.output
    user = _users(cli_app).find_by_email_with_password("root@example.com")
    assert user.role is UserRole.ADMIN


def test_create_duplicate_email_fails(runner):
    args = ["users", "create", "--email", "dup@example.com", "--password", "Pw12345!"]
    assert runner.invoke(args=args).exit_code == 0

    result = runner.invoke(args=args)

    assert result.exit_code != 0
    assert "Email already exists" in result.output


def test_set_role(runner, cli_app):
    created = _users(cli_app).create(email="bob@example.com", password_hash="x")

    result = runner.invoke(args=["users", "set-role", created.id, "ADMIN"])

    assert result.exit_code == 0, result.output
    assert _users(cli_app).find_by_id(created.id).role is UserRole.ADMIN


def test_set_role_unknown_user(runner):
    result = runner.invoke(args=["users", "set-role", "missing", "ADMIN"])

    assert result.exit_code != 0
    assert "Error" in result.output
