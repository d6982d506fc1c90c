"""Non-interactive credential provisioning commands."""

import asyncio
import sys
from datetime import UTC, datetime
from typing import Annotated

import typer
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from structlog import get_logger

from tweek_auth.auth.identity_client import IdentityClient
from tweek_auth.auth.models import CredentialPair, is_expiring_soon
from tweek_auth.auth.storage import TokenStore
from tweek_auth.config.settings import TweekSettings, get_settings
from tweek_auth.exceptions import (
    ClassifiedError,
    ConfigurationError,
    ErrorKind,
    describe_error,
)


app = typer.Typer(name="auth", help="Provision and inspect stored Tweek tokens")

console = Console()
err_console = Console(stderr=True)
logger = get_logger(__name__)


def _load_settings() -> TweekSettings:
    try:
        return get_settings()
    except ConfigurationError as e:
        err_console.print(f"[red]✗[/red] {escape(str(e))}")
        raise typer.Exit(1) from e


def _fail(action: str, error: ClassifiedError) -> typer.Exit:
    err_console.print(f"[red]✗[/red] {action} failed: {escape(describe_error(error))}")
    return typer.Exit(1)


def _store_for(settings: TweekSettings) -> TokenStore:
    return TokenStore(settings.tokens_path, settings.encryption_key_value())


async def _sign_in(settings: TweekSettings, email: str, password: str) -> CredentialPair:
    async with IdentityClient(settings) as client:
        return await client.exchange_credentials(email, password)


async def _import(settings: TweekSettings, refresh_token: str) -> CredentialPair:
    async with IdentityClient(settings) as client:
        refreshed = await client.refresh(refresh_token)
    return CredentialPair(
        access_token=refreshed.access_token,
        refresh_token=refresh_token,
        expires_at=refreshed.expires_at,
    )


@app.command(name="signin")
def signin(
    email: Annotated[
        str | None,
        typer.Option("--email", help="Account email address"),
    ] = None,
    password_stdin: Annotated[
        bool,
        typer.Option("--password-stdin", help="Read the password from stdin"),
    ] = False,
) -> None:
    """Sign in with email and password and store the resulting tokens.

    Examples:
        printf '%s' "$TWEEK_PASSWORD" | tweek-auth auth signin --email me@example.com --password-stdin

    """
    if not email or not password_stdin:
        err_console.print(
            "[red]✗[/red] --email and --password-stdin must be used together"
        )
        raise typer.Exit(1)

    settings = _load_settings()
    password = sys.stdin.read().strip()
    if not password:
        err_console.print("[red]✗[/red] Password read from stdin is empty")
        raise typer.Exit(1)

    console.print("Authenticating with Tweek...")
    try:
        pair = asyncio.run(_sign_in(settings, email.strip(), password))
        _store_for(settings).write(pair)
    except ClassifiedError as e:
        logger.warning("cli_signin_failed", error_kind=e.kind.value)
        raise _fail("Authentication", e) from e

    console.print(
        "[green]✓[/green] Authentication successful. "
        f"Tokens stored at: {escape(str(settings.tokens_path))}"
    )


@app.command(name="import")
def import_refresh_token(
    refresh_token: Annotated[
        str,
        typer.Option("--refresh-token", help="Existing refresh token to import"),
    ],
) -> None:
    """Exchange an existing refresh token and store the resulting tokens."""
    settings = _load_settings()
    token = refresh_token.strip()
    if not token:
        err_console.print("[red]✗[/red] Refresh token must not be empty")
        raise typer.Exit(1)

    console.print("Importing refresh token...")
    try:
        pair = asyncio.run(_import(settings, token))
        _store_for(settings).write(pair)
    except ClassifiedError as e:
        logger.warning("cli_import_failed", error_kind=e.kind.value)
        raise _fail("Import", e) from e

    console.print(
        "[green]✓[/green] Token import successful. "
        f"Tokens stored at: {escape(str(settings.tokens_path))}"
    )


@app.command(name="status")
def status() -> None:
    """Show where tokens are stored and when the access token expires.

    Token values are never printed.
    """
    settings = _load_settings()
    store = _store_for(settings)

    try:
        pair = store.read()
    except ClassifiedError as e:
        if e.kind is ErrorKind.NOT_FOUND:
            err_console.print(
                f"[red]✗[/red] No tokens found at {escape(str(settings.tokens_path))}. "
                "Run 'tweek-auth auth signin' or 'tweek-auth auth import'."
            )
            raise typer.Exit(1) from e
        raise _fail("Reading tokens", e) from e

    expires = pair.expires_at_datetime
    remaining = expires - datetime.now(UTC)
    if remaining.total_seconds() > 0:
        minutes = int(remaining.total_seconds() // 60)
        expires_text = f"{expires:%Y-%m-%d %H:%M:%S} UTC ({minutes}m remaining)"
    else:
        expires_text = f"{expires:%Y-%m-%d %H:%M:%S} UTC [red](expired)[/red]"

    refresh_due = is_expiring_soon(pair, settings.token_refresh_buffer_sec)

    table = Table(
        show_header=True,
        header_style="bold cyan",
        box=box.ROUNDED,
        title="Token Status",
        title_style="bold white",
    )
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Location", f"[dim]{escape(str(settings.tokens_path))}[/dim]")
    table.add_row("Encryption", "enabled" if store.encrypted else "disabled")
    table.add_row("Access token expires", expires_text)
    table.add_row(
        "Refresh due",
        "[yellow]yes[/yellow]" if refresh_due else "[green]no[/green]",
    )
    console.print(table)
