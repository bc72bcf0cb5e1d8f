"""Command-line entry point for the secure container demo server."""

import typer
from pydantic import ValidationError

from .bootstrap import bootstrap
from .config import Settings, get_settings
from .exceptions import PrivilegedUserError
from .logging_config import get_logger, setup_logging
from .main import create_app
from .server import serve

logger = get_logger(__name__)

EXIT_PRIVILEGED_USER = 1
EXIT_INVALID_CONFIG = 2

app = typer.Typer(
    name="secure-container",
    help="""Secure Container Demo server

    Reads secrets from mounted files, refuses to run as root and serves
    / and /health until it receives SIGTERM.

    Configuration comes from the environment: PORT, SECRETS_DIR,
    SECRET_NAMES, STATUS_SECRET, SHUTDOWN_TIMEOUT, DEBUG, LOG_LEVEL.
    """,
    add_completion=False,
)


def run(settings: Settings | None = None) -> None:
    """Run the full startup sequence and serve until shutdown.

    The privilege guard runs inside bootstrap(), strictly before serve()
    creates the listening socket.
    """
    settings = settings or get_settings()
    setup_logging(settings)
    settings.log_fallbacks()
    context = bootstrap(settings)
    serve(create_app(context), settings)


@app.command()
def main(
    log_level: str | None = typer.Option(
        None, "--log-level", help="Override LOG_LEVEL (DEBUG, INFO, WARNING, ...)"
    ),
    debug: bool | None = typer.Option(
        None,
        "--debug/--no-debug",
        help="Override DEBUG: human-readable console logs instead of JSON",
    ),
) -> None:
    """Start the server"""
    try:
        settings = get_settings(log_level=log_level, debug=debug)
    except ValidationError as e:
        logger.error("Invalid configuration", errors=e.errors(include_input=False))
        raise typer.Exit(code=EXIT_INVALID_CONFIG) from e

    try:
        run(settings)
    except PrivilegedUserError as e:
        logger.error(str(e), uid=e.uid)
        raise typer.Exit(code=EXIT_PRIVILEGED_USER) from e

