"""Progress indicators for CLI operations.

This module provides Rich-based progress utilities for consistent
user feedback across all CLI commands.
"""

from contextlib import contextmanager
from typing import Generator

from rich.console import Console
from rich.status import Status

# Shared console instance
console = Console()


@contextmanager
def api_spinner(message: str) -> Generator[Status, None, None]:
    """Spinner for API calls with unknown duration.

    Usage:
        with api_spinner("Fetching check-ins..."):
            checkins = await client.get_user_checkins()

    Args:
        message: Status message to display during operation

    Yields:
        Rich Status object for updating the message if needed
    """
    with console.status(f"[bold green]{message}", spinner="dots") as status:
        yield status


@contextmanager
def oauth_progress(port: int) -> Generator[Status, None, None]:
    """Progress indicator for the OAuth browser flow.

    Shows a spinner while waiting for the user to approve access.

    Args:
        port: Callback port the local server listens on

    Yields:
        Rich Status object
    """
    with console.status(
        f"[bold blue]Waiting for Foursquare authorization (callback on port {port})...",
        spinner="dots",
    ) as status:
        yield status


def print_success(message: str) -> None:
    """Print a success message with checkmark."""
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    """Print an error message with X mark."""
    console.print(f"[red]✗[/red] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]⚠[/yellow] {message}")
