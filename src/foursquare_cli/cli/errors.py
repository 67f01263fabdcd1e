"""User-friendly error messages with actionable suggestions."""

from dataclasses import dataclass

import httpx
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel

from foursquare_cli.api.exceptions import (
    FoursquareAPIError,
    NotAuthenticatedError,
    RateLimitError,
    TokenExpiredError,
)
from foursquare_cli.auth.exceptions import (
    FlowTimeoutError,
    ListenerBindError,
    MissingCodeError,
    PreconditionError,
    ProviderAuthError,
    StorageCorruptError,
    StorageError,
)


@dataclass
class ErrorInfo:
    """Structured error information for display."""

    title: str
    message: str
    suggestion: str
    command: str | None = None


ERROR_MESSAGES = {
    "auth_expired": ErrorInfo(
        title="Token rejected",
        message="Foursquare rejected the access token. It may have been revoked.",
        suggestion="Log in again",
        command="foursquare login",
    ),
    "auth_required": ErrorInfo(
        title="Not logged in",
        message="You need to log in before running this command.",
        suggestion="Log in with your Foursquare account, or set FOURSQUARE_ACCESS_TOKEN",
        command="foursquare login",
    ),
    "missing_client": ErrorInfo(
        title="Client credentials missing",
        message="{detail}",
        suggestion="Export FOURSQUARE_CLIENT_ID and FOURSQUARE_CLIENT_SECRET, or pass --client-id/--client-secret.",
        command=None,
    ),
    "port_in_use": ErrorInfo(
        title="Callback port busy",
        message="{detail}",
        suggestion="Finish or cancel the other login, or pick another registered port.",
        command="foursquare login --port <port>",
    ),
    "auth_denied": ErrorInfo(
        title="Authorization failed",
        message="{detail}",
        suggestion="Check the client credentials and that the redirect URI is registered with Foursquare.",
        command="foursquare login",
    ),
    "auth_timeout": ErrorInfo(
        title="Login timed out",
        message="{detail}",
        suggestion="Run the login again and approve access in the browser.",
        command="foursquare login",
    ),
    "token_corrupt": ErrorInfo(
        title="Token file unreadable",
        message="{detail}",
        suggestion="Remove the stored token and log in again.",
        command="foursquare logout && foursquare login",
    ),
    "storage_error": ErrorInfo(
        title="Storage error",
        message="{detail}",
        suggestion="Check the permissions of the configuration directory.",
        command="foursquare config path",
    ),
    "network_timeout": ErrorInfo(
        title="Connection timed out",
        message="Could not reach Foursquare in time.",
        suggestion="Check your internet connection and try again.",
        command=None,
    ),
    "network_error": ErrorInfo(
        title="Network error",
        message="An error occurred while connecting to Foursquare.",
        suggestion="Check your internet connection or try again later.",
        command=None,
    ),
    "rate_limit": ErrorInfo(
        title="Too many requests",
        message="Foursquare's rate limit was exceeded.",
        suggestion="Wait {retry_after} seconds and try again.",
        command=None,
    ),
    "server_error": ErrorInfo(
        title="Foursquare server error",
        message="The Foursquare server reported an error.",
        suggestion="This is probably temporary. Try again later.",
        command=None,
    ),
    "forbidden": ErrorInfo(
        title="Access denied",
        message="The token is not allowed to access this data.",
        suggestion="Log in again and grant the requested access.",
        command="foursquare login",
    ),
    "api_error": ErrorInfo(
        title="API error",
        message="{detail}",
        suggestion="Check the command options and try again.",
        command=None,
    ),
    "unknown": ErrorInfo(
        title="Unexpected error",
        message="An unexpected error occurred.",
        suggestion="If this keeps happening, try logging out and in again.",
        command="foursquare logout && foursquare login",
    ),
}


def get_error_type(error: Exception) -> str:
    """Determine error type from exception."""
    if isinstance(error, TokenExpiredError):
        return "auth_expired"
    elif isinstance(error, NotAuthenticatedError):
        return "auth_required"
    elif isinstance(error, RateLimitError):
        return "rate_limit"
    elif isinstance(error, PreconditionError):
        return "missing_client"
    elif isinstance(error, ListenerBindError):
        return "port_in_use"
    elif isinstance(error, (ProviderAuthError, MissingCodeError)):
        return "auth_denied"
    elif isinstance(error, FlowTimeoutError):
        return "auth_timeout"
    elif isinstance(error, StorageCorruptError):
        return "token_corrupt"
    elif isinstance(error, StorageError):
        return "storage_error"
    elif isinstance(error, FoursquareAPIError):
        status = error.status_code
        if status == 401:
            return "auth_expired"
        elif status == 403:
            return "forbidden"
        elif status == 429:
            return "rate_limit"
        elif status and status >= 500:
            return "server_error"
        return "api_error"
    elif isinstance(error, httpx.TimeoutException):
        return "network_timeout"
    elif isinstance(error, httpx.TransportError):
        return "network_error"

    return "unknown"


def format_error(
    error: Exception,
    console: Console,
    verbose: bool = False,
) -> None:
    """Format and display a user-friendly error message."""
    error_type = get_error_type(error)
    info = ERROR_MESSAGES.get(error_type, ERROR_MESSAGES["unknown"])

    message = info.message
    if "{detail}" in message:
        message = message.format(detail=escape(str(error)))
    suggestion = info.suggestion
    if "{retry_after}" in suggestion:
        suggestion = suggestion.format(retry_after=getattr(error, "retry_after", 60))

    content_lines = [
        f"[white]{message}[/white]",
        "",
        f"[yellow]Suggestion:[/yellow] {suggestion}",
    ]

    if info.command:
        content_lines.append("")
        content_lines.append(f"[cyan]{info.command}[/cyan]")

    # Technical details in verbose mode
    if verbose:
        content_lines.append("")
        content_lines.append("[dim]" + "─" * 40 + "[/dim]")
        content_lines.append(f"[dim]Type: {type(error).__name__}[/dim]")
        content_lines.append(f"[dim]Details: {escape(str(error))}[/dim]")

    console.print()
    console.print(Panel(
        "\n".join(content_lines),
        title=f"[red bold]Error: {info.title}[/red bold]",
        border_style="red",
        padding=(1, 2),
    ))
    console.print()
