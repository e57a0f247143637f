"""Administrative command-line interface."""

from __future__ import annotations

from pathlib import Path

import click
import structlog
from safir.asyncio import run_with_asyncio
from safir.click import display_help

from .config import Config
from .constants import CONFIG_PATH
from .exceptions import DirectoryError, InvalidUsernameError, PreconditionError
from .factory import Factory
from .models.ldap import LDAPUser

__all__ = [
    "authenticate",
    "exists",
    "help",
    "main",
    "roles",
]

_config_path_option = click.option(
    "--config-path",
    envvar="PORTHOR_CONFIG_PATH",
    type=click.Path(path_type=Path),
    default=CONFIG_PATH,
    help="Application configuration file.",
)


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(message="%(version)s")
def main() -> None:
    """Administrative command-line interface for porthor."""


@main.command()
@click.argument("topic", default=None, required=False, nargs=1)
@click.pass_context
def help(ctx: click.Context, topic: str | None) -> None:
    """Show help for any command."""
    display_help(main, ctx, topic)


@main.command()
@click.argument("username")
@click.password_option(confirmation_prompt=False)
@click.option(
    "--no-anonymous-search",
    default=False,
    is_flag=True,
    help="Bind as the user before searching for their entry.",
)
@_config_path_option
@run_with_asyncio
async def authenticate(
    username: str,
    *,
    password: str,
    no_anonymous_search: bool,
    config_path: Path,
) -> None:
    """Check the password of a user and show their roles."""
    config = _load_config(config_path)
    async with Factory.standalone(config) as factory:
        auth_service = factory.create_auth_service()
        try:
            if no_anonymous_search:
                result = await auth_service.authenticate_no_anonymous_search(
                    username, password
                )
            else:
                result = await auth_service.authenticate(username, password)
        except (InvalidUsernameError, PreconditionError) as e:
            raise click.UsageError(str(e)) from e
        except DirectoryError as e:
            raise click.ClickException(f"Directory error: {e}") from e
    if not result.user:
        raise click.ClickException("Authentication failed")
    _print_user(result.user)


@main.command()
@click.argument("username")
@_config_path_option
@run_with_asyncio
async def exists(username: str, *, config_path: Path) -> None:
    """Check whether a user exists in the directory."""
    config = _load_config(config_path)
    async with Factory.standalone(config) as factory:
        auth_service = factory.create_auth_service()
        try:
            found = await auth_service.exists(username)
        except (InvalidUsernameError, PreconditionError) as e:
            raise click.UsageError(str(e)) from e
        except DirectoryError as e:
            raise click.ClickException(f"Directory error: {e}") from e
    if not found:
        raise click.ClickException(f"User {username} not found")
    click.echo(f"User {username} exists")


@main.command()
@click.argument("username")
@_config_path_option
@run_with_asyncio
async def roles(username: str, *, config_path: Path) -> None:
    """Show the entry and roles of a user without checking a password."""
    config = _load_config(config_path)
    async with Factory.standalone(config) as factory:
        auth_service = factory.create_auth_service()
        try:
            user = await auth_service.get_user(username)
        except (InvalidUsernameError, PreconditionError) as e:
            raise click.UsageError(str(e)) from e
        except DirectoryError as e:
            raise click.ClickException(f"Directory error: {e}") from e
    if not user:
        raise click.ClickException(f"User {username} not found")
    _print_user(user)


def _load_config(config_path: Path) -> Config:
    """Load the configuration and set up logging."""
    config = Config.from_file(config_path)
    config.configure_logging()
    logger = structlog.get_logger("porthor")
    logger.debug("Loaded configuration", config_path=str(config_path))
    return config


def _print_user(user: LDAPUser) -> None:
    """Print the resolved data for a user."""
    click.echo(f"dn: {user.dn}")
    if user.email:
        click.echo(f"email: {user.email}")
    for name, value in user.attributes.items():
        click.echo(f"{name}: {value}")
    for role in sorted(user.roles or ()):
        click.echo(f"role: {role}")
