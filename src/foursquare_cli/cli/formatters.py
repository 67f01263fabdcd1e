"""Rich output formatters for CLI display."""

from datetime import datetime, timedelta, timezone

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from foursquare_cli.api.models import Checkin

# Offset used when a check-in carries none (Japan Standard Time)
DEFAULT_TIMEZONE_OFFSET = 540


def checkin_local_time(checkin: Checkin) -> datetime:
    """Check-in time in the timezone it was made in."""
    offset = checkin.time_zone_offset or DEFAULT_TIMEZONE_OFFSET
    tz = timezone(timedelta(minutes=offset))
    return datetime.fromtimestamp(checkin.created_at, tz=tz)


def format_checkin_date(checkin: Checkin) -> str:
    """Format the check-in time as ``YYYY/MM/DD HH:MM`` local to the venue."""
    return checkin_local_time(checkin).strftime("%Y/%m/%d %H:%M")


def format_checkin(checkin: Checkin) -> str:
    """Format a check-in as plain multi-line text."""
    venue = checkin.venue
    location = venue.location

    lines = [
        f"📍 {venue.name}",
        f"📅 {format_checkin_date(checkin)}",
    ]

    if checkin.shout:
        lines.append(f"💬 {checkin.shout}")

    address = location.display_address
    if address:
        lines.append(f"📮 {address}")

    if venue.categories:
        lines.append(f"🏷️ {', '.join(c.name for c in venue.categories)}")

    if location.lat is not None and location.lng is not None:
        lines.append(f"🗺️ {location.lat}, {location.lng}")

    if checkin.photos and checkin.photos.items:
        lines.append(f"📸 Photos ({checkin.photos.count})")
        for index, photo in enumerate(checkin.photos.items, start=1):
            lines.append(f"   {index}. {photo.original_url}")

    return "\n".join(lines)


def format_checkin_list(checkins: list[Checkin]) -> str:
    """Format a list of check-ins as numbered plain-text blocks."""
    if not checkins:
        return "No check-ins found."

    blocks = [
        f"--- Check-in #{index} ---\n{format_checkin(checkin)}"
        for index, checkin in enumerate(checkins, start=1)
    ]
    summary = f"🎯 Retrieved {len(checkins)} check-in{'s' if len(checkins) != 1 else ''}"
    return summary + "\n\n" + "\n\n".join(blocks)


def print_checkins(checkins: list[Checkin], console: Console) -> None:
    """Print check-ins as panels."""
    if not checkins:
        console.print("[yellow]No check-ins found.[/yellow]")
        return

    count = len(checkins)
    console.print(f"[bold]{count} check-in{'s' if count != 1 else ''}[/bold]")
    console.print()

    for checkin in checkins:
        body = format_checkin(checkin).split("\n", 1)
        details = body[1] if len(body) > 1 else ""
        console.print(Panel(
            details,
            title=f"[bold]{checkin.venue.name}[/bold]",
            title_align="left",
            border_style="blue",
        ))


def print_checkins_table(checkins: list[Checkin], console: Console) -> None:
    """Print check-ins as a table."""
    if not checkins:
        console.print("[yellow]No check-ins found.[/yellow]")
        return

    table = Table(title="Check-ins", show_header=True, header_style="bold")
    table.add_column("Date", style="cyan", no_wrap=True)
    table.add_column("Venue", style="bold")
    table.add_column("Category")
    table.add_column("City")
    table.add_column("Shout", style="dim")

    for checkin in checkins:
        venue = checkin.venue
        primary = next((c for c in venue.categories if c.primary), None)
        if primary is None and venue.categories:
            primary = venue.categories[0]
        table.add_row(
            format_checkin_date(checkin),
            venue.name,
            primary.name if primary else "-",
            venue.location.city or "-",
            checkin.shout or "",
        )

    console.print(table)
