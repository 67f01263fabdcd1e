"""Authentication CLI commands."""

from datetime import datetime, timezone
from typing import Annotated

import typer
from rich.console import Console

from foursquare_cli.api.exceptions import NotAuthenticatedError
from foursquare_cli.auth.oauth import AuthorizationFlow
from foursquare_cli.auth.session import SOURCE_ENVIRONMENT, Session
from foursquare_cli.cli.progress import (
    oauth_progress,
    print_error,
    print_success,
    print_warning,
)
from foursquare_cli.cli.utils import handle_api_errors, run_async

console = Console()
app = typer.Typer(help="Authentication commands")


def _show_manual_url(url: str) -> None:
    """Print the authorization URL when no browser could be opened."""
    console.print("[yellow]Could not open a browser.[/yellow] Open this URL to continue:")
    console.print(url, soft_wrap=True, highlight=False)


def _format_created(created_at_ms: int) -> str:
    created = datetime.fromtimestamp(created_at_ms / 1000, tz=timezone.utc).astimezone()
    return created.strftime("%Y-%m-%d %H:%M")


@app.command("login")
@handle_api_errors
def do_login(
    client_id: Annotated[
        str | None,
        typer.Option("--client-id", help="OAuth client ID (default: FOURSQUARE_CLIENT_ID)"),
    ] = None,
    client_secret: Annotated[
        str | None,
        typer.Option(
            "--client-secret",
            help="OAuth client secret (default: FOURSQUARE_CLIENT_SECRET)",
        ),
    ] = None,
    port: Annotated[
        int | None,
        typer.Option("--port", "-p", help="Callback port registered with Foursquare"),
    ] = None,
    timeout: Annotated[
        int | None,
        typer.Option("--timeout", help="Seconds to wait for the browser login"),
    ] = None,
):
    """
    Authenticate with Foursquare.

    Opens a browser window for you to approve access. The token is stored in
    the configuration directory, readable only by you.
    """
    flow = AuthorizationFlow(
        client_id,
        client_secret,
        port=port,
        timeout=timeout,
        on_manual_url=_show_manual_url,
    )

    console.print("Opening browser for login to [cyan]foursquare.com[/cyan]...")
    console.print(f"[dim]Redirect URI: {flow.redirect_uri}[/dim]")
    console.print()

    with oauth_progress(flow.port):
        record = run_async(flow.run())

    print_success("Login successful!")
    console.print(f"  Token saved to: [cyan]{flow.store.path}[/cyan]")
    if record.expires_at:
        local_expiry = record.expires_at.astimezone()
        console.print(f"  [dim]Valid until: {local_expiry.strftime('%Y-%m-%d %H:%M')}[/dim]")
    else:
        console.print("  [dim]The token does not expire.[/dim]")


@app.command("logout")
@handle_api_errors
def do_logout():
    """Remove the stored authentication token."""
    session = Session()

    if run_async(session.logout()):
        print_success("Logged out.")
    else:
        print_warning("No stored token found.")

    if session.environment_token:
        print_warning(
            "FOURSQUARE_ACCESS_TOKEN is still set and will be used until you unset it."
        )


@app.command()
@handle_api_errors
def status(
    online: Annotated[
        bool,
        typer.Option(
            "--online/--offline",
            help="Verify the token against the Foursquare API",
        ),
    ] = True,
):
    """Show current authentication status."""
    session = Session()

    async def _collect():
        try:
            resolved = await session.resolve()
        except NotAuthenticatedError:
            return None, None, None
        record = await session.store.load()
        accepted = await session.check_auth() if online else None
        return resolved, record, accepted

    resolved, record, accepted = run_async(_collect())

    if resolved is None:
        console.print("[red]Not logged in[/red]")
        console.print("\nLog in with: [cyan]foursquare login[/cyan]")
        raise typer.Exit(1)

    if resolved.source == SOURCE_ENVIRONMENT:
        console.print("Token source: [cyan]FOURSQUARE_ACCESS_TOKEN[/cyan]")
    else:
        console.print(f"Token file: [cyan]{session.store.path}[/cyan]")

    if resolved.source != SOURCE_ENVIRONMENT and record is not None:
        console.print(f"Obtained: {_format_created(record.created_at)}")
        if record.expires_at is None:
            console.print("Expires: [green]never[/green]")
        elif record.is_expired():
            console.print("[red]Token expired[/red]")
            console.print("\nLog in again with: [cyan]foursquare login[/cyan]")
            raise typer.Exit(1)
        else:
            expiry = record.expires_at.astimezone().strftime("%Y-%m-%d %H:%M")
            console.print(f"Expires: [yellow]{expiry}[/yellow]")

    if accepted is None:
        console.print("[dim]API check skipped (--offline)[/dim]")
    elif accepted:
        console.print("[green]Logged in[/green] [dim](token accepted by Foursquare)[/dim]")
    else:
        print_error("Foursquare rejected the token.")
        console.print("\nLog in again with: [cyan]foursquare login[/cyan]")
        raise typer.Exit(1)
