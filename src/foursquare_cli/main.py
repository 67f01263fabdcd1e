"""Main CLI entry point for Foursquare CLI."""

from datetime import datetime
from enum import Enum
from typing import Annotated

import typer
from rich.console import Console

from foursquare_cli import __version__
from foursquare_cli.api import FoursquareClient
from foursquare_cli.auth import Session
from foursquare_cli.cli.commands import auth, config
from foursquare_cli.cli.formatters import print_checkins, print_checkins_table
from foursquare_cli.cli.progress import api_spinner
from foursquare_cli.cli.utils import handle_api_errors, run_async
from foursquare_cli.config import get_settings
from foursquare_cli.log import setup_logging

console = Console()

app = typer.Typer(
    name="foursquare",
    help="CLI tool for Foursquare login and check-in history",
    no_args_is_help=True,
)

app.command("login")(auth.do_login)
app.command("logout")(auth.do_logout)
app.command("status")(auth.status)

app.add_typer(config.app, name="config", help="Manage configuration")


class SortOrder(str, Enum):
    newestfirst = "newestfirst"
    oldestfirst = "oldestfirst"


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"foursquare-cli {__version__}")
        raise typer.Exit()


def _parse_time(value: str | None) -> int | None:
    """Accept a Unix timestamp or an ISO date/datetime."""
    if value is None:
        return None
    if value.isdigit():
        return int(value)
    try:
        return int(datetime.fromisoformat(value).timestamp())
    except ValueError:
        raise typer.BadParameter(
            f"'{value}' is not a Unix timestamp or ISO date (YYYY-MM-DD[THH:MM])"
        )


@app.callback()
def main(
    debug: Annotated[
        bool,
        typer.Option("--debug", help="Show debug logging on stderr"),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
):
    """Foursquare CLI."""
    setup_logging(debug or get_settings().debug)


@app.command("checkins")
@handle_api_errors
def checkins(
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", min=1, max=250, help="Number of check-ins (1-250)"),
    ] = 50,
    after: Annotated[
        str | None,
        typer.Option("--after", help="Only check-ins after this time (Unix timestamp or ISO date)"),
    ] = None,
    before: Annotated[
        str | None,
        typer.Option("--before", help="Only check-ins before this time (Unix timestamp or ISO date)"),
    ] = None,
    sort: Annotated[
        SortOrder,
        typer.Option("--sort", "-s", help="Sort order"),
    ] = SortOrder.newestfirst,
    table_format: Annotated[
        bool,
        typer.Option("--table", "-t", help="Show as table"),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Print raw JSON"),
    ] = False,
    token: Annotated[
        str | None,
        typer.Option("--token", help="Use this access token instead of the stored one"),
    ] = None,
):
    """
    Show your recent check-ins.

    Examples:
        foursquare checkins --limit 10
        foursquare checkins --after 2025-01-01 --sort oldestfirst
        foursquare checkins --table
    """
    after_ts = _parse_time(after)
    before_ts = _parse_time(before)

    async def _fetch():
        session = Session()
        bearer = await session.resolve_token(token)
        async with FoursquareClient(
            bearer,
            timeout=session.settings.timeout,
            api_version=session.settings.api_version,
        ) as client:
            return await client.get_user_checkins(
                limit=limit,
                after_timestamp=after_ts,
                before_timestamp=before_ts,
                sort=sort.value,
            )

    with api_spinner("Fetching check-ins..."):
        items = run_async(_fetch())

    if json_output:
        console.print_json(data=[c.model_dump(mode="json", by_alias=True) for c in items])
    elif table_format:
        print_checkins_table(items, console)
    else:
        print_checkins(items, console)


if __name__ == "__main__":
    app()
