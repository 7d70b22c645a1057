"""Flask CLI commands for administrative user management."""

from __future__ import annotations

import logging

import click
from flask.cli import with_appcontext

from cortex_auth.infra.wiring import get_auth_service
from cortex_auth.services._shared.errors import DuplicateEmailError, NotFoundError
from cortex_auth.services._shared.ports import UserRecord, UserRole

LOGGER = logging.getLogger(__name__)

ROLE_CHOICES = click.Choice([role.value for role in UserRole], case_sensitive=False)


def _echo_user(user: UserRecord) -> None:
    click.echo(f"{user.id}  {user.email}  role={user.role.value}")


def _set_role(user_id: str, role: str) -> UserRecord:
    store = get_auth_service().users
    update_role = getattr(store, "update_role", None)
    if update_role is None:
        raise click.ClickException(f"{type(store).__name__} does not support role changes.")
    try:
        return update_role(user_id, UserRole(role.upper()))
    except NotFoundError as exc:
        raise click.ClickException(str(exc)) from exc


@click.group("users")
def users_cli() -> None:
    """Manage user accounts."""


@users_cli.command("create")
@click.option("--email", required=True, help="Login email.")
@click.option("--password", required=True, prompt=True, hide_input=True, help="Plaintext password.")
@click.option("--name", default=None, help="Optional display name.")
@click.option("--role", type=ROLE_CHOICES, default=UserRole.USER.value, show_default=True)
@with_appcontext
def create_command(email: str, password: str, name: str | None, role: str) -> None:
    """Create a user without opening a session."""
    service = get_auth_service()
    try:
        user = service.users.create(
            email=email, password_hash=service.credentials.hash(password), name=name
        )
    except DuplicateEmailError as exc:
        raise click.ClickException(f"Email already exists: {exc.email}") from exc

    if UserRole(role.upper()) is not UserRole.USER:
        user = _set_role(user.id, role)
    LOGGER.info("User created from CLI", extra={"user_id": user.id})
    _echo_user(user)


@users_cli.command("set-role")
@click.argument("user_id")
@click.argument("role", type=ROLE_CHOICES)
@with_appcontext
def set_role_command(user_id: str, role: str) -> None:
    """Change the role of an existing user."""
    user = _set_role(user_id, role)
    LOGGER.info("User role changed from CLI", extra={"user_id": user.id})
    _echo_user(user)
