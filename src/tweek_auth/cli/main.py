"""Entry point for the ``tweek-auth`` command."""

from typing import Annotated

import typer

from tweek_auth._version import __version__
from tweek_auth.cli.commands.auth import app as auth_app
from tweek_auth.core.logging import configure_logging


app = typer.Typer(
    name="tweek-auth",
    help="Credential provisioning for the Tweek API integration",
    no_args_is_help=True,
)
app.add_typer(auth_app, name="auth")


def version_callback(value: bool) -> None:
    if value:
        typer.echo(f"tweek-auth {__version__}")
        raise typer.Exit()


@app.callback()
def app_main(
    log_level: Annotated[
        str,
        typer.Option("--log-level", help="Minimum log level", envvar="TWEEK_LOG_LEVEL"),
    ] = "WARNING",
    json_logs: Annotated[
        bool,
        typer.Option("--json-logs", help="Emit JSON log lines"),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
) -> None:
    """Configure logging before any command runs."""
    configure_logging(log_level, json_logs=json_logs)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
