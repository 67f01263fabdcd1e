"""CLI utility functions and decorators."""

import asyncio
import logging
from functools import wraps
from typing import Any, Callable, Coroutine, TypeVar

import httpx
import typer
from rich.console import Console

from foursquare_cli.api.exceptions import FoursquareAPIError
from foursquare_cli.auth.exceptions import AuthError, StorageError
from foursquare_cli.cli.errors import format_error

console = Console()
logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable)
T = TypeVar("T")


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine from a synchronous Typer command."""
    return asyncio.run(coro)


def handle_api_errors(f: F) -> F:
    """Decorator to handle common errors in CLI commands.

    Catches the auth, storage and API taxonomies plus httpx transport errors,
    shows a formatted panel with a suggestion and exits with code 1.

    Usage:
        @app.command()
        @handle_api_errors
        def my_command():
            ...
    """

    @wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except (AuthError, StorageError, FoursquareAPIError, httpx.HTTPError) as e:
            logger.debug(f"Command failed: {type(e).__name__}: {e}")
            format_error(e, console, verbose=logger.isEnabledFor(logging.DEBUG))
            raise typer.Exit(1)

    return wrapper  # type: ignore
