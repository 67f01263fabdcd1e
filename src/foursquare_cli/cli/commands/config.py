"""Config CLI commands for managing settings."""

from typing import Annotated

import typer
from rich.console import Console
from rich.table import Table

from foursquare_cli.config import (
    Settings,
    get_config_path,
    get_settings,
    load_config,
    reset_settings,
    save_config,
)

console = Console()
app = typer.Typer(help="Manage configuration")

# Settings that can be configured via the config command.
# The client secret and access token stay in the environment.
CONFIGURABLE_KEYS = {
    "client_id": {
        "description": "OAuth client ID",
        "type": "str",
        "example": "ABCDEF123...",
    },
    "timeout": {
        "description": "HTTP timeout in seconds (5-120)",
        "type": "int",
        "example": "30",
    },
    "oauth_callback_port": {
        "description": "Port for OAuth callback (1024-65535)",
        "type": "int",
        "example": "52847",
    },
    "oauth_timeout": {
        "description": "OAuth flow timeout in seconds (1-3600)",
        "type": "int",
        "example": "300",
    },
    "debug": {
        "description": "Enable debug logging",
        "type": "bool",
        "example": "false",
    },
}


def parse_value(key: str, value: str) -> str | int | bool:
    """Parse string value to appropriate type based on key."""
    key_info = CONFIGURABLE_KEYS.get(key)
    if not key_info:
        return value

    value_type = key_info["type"]

    if value_type == "bool":
        return value.lower() in ("true", "1", "yes", "on")
    elif value_type == "int":
        try:
            return int(value)
        except ValueError:
            raise typer.BadParameter(f"'{value}' is not a valid number")
    return value


def validate_value(key: str, value: str | int | bool) -> None:
    """Validate a config value."""
    if key == "timeout":
        if not isinstance(value, int) or not (5 <= value <= 120):
            raise typer.BadParameter("timeout must be between 5 and 120")
    elif key == "oauth_callback_port":
        if not isinstance(value, int) or not (1024 <= value <= 65535):
            raise typer.BadParameter("oauth_callback_port must be between 1024 and 65535")
    elif key == "oauth_timeout":
        if not isinstance(value, int) or not (1 <= value <= 3600):
            raise typer.BadParameter("oauth_timeout must be between 1 and 3600")
    elif key == "client_id":
        if not isinstance(value, str) or not value.strip():
            raise typer.BadParameter("client_id must not be empty")


@app.command("show")
def config_show():
    """
    Show all configuration settings.

    Examples:
        foursquare config show
    """
    config = load_config()
    settings = get_settings()
    defaults = Settings.model_construct()

    table = Table(title="Foursquare CLI configuration", show_header=True)
    table.add_column("Setting", style="cyan", no_wrap=True)
    table.add_column("Value", style="green")
    table.add_column("Source", style="dim", no_wrap=True)
    table.add_column("Description", style="dim")

    for key, info in CONFIGURABLE_KEYS.items():
        file_value = config.get(key)
        effective_value = getattr(settings, key, None)

        if file_value is not None and file_value == effective_value:
            source = "config.yaml"
            display_value = str(file_value)
        elif effective_value is not None and effective_value != getattr(defaults, key, None):
            source = "env var"
            display_value = str(effective_value)
        elif effective_value is not None:
            source = "default"
            display_value = f"[dim]{effective_value}[/dim]"
        else:
            source = "-"
            display_value = "[dim]not set[/dim]"

        table.add_row(key, display_value, source, info["description"])

    console.print(table)
    console.print()
    secret_state = "set" if settings.client_secret else "not set"
    token_state = "set" if settings.access_token else "not set"
    console.print(f"[dim]FOURSQUARE_CLIENT_SECRET: {secret_state}[/dim]")
    console.print(f"[dim]FOURSQUARE_ACCESS_TOKEN: {token_state}[/dim]")
    console.print(f"[dim]Config file: {get_config_path()}[/dim]")


@app.command("set")
def config_set(
    key: Annotated[str, typer.Argument(help="Setting name")],
    value: Annotated[str, typer.Argument(help="New value")],
):
    """
    Set a configuration value.

    Examples:
        foursquare config set client_id ABCDEF123
        foursquare config set oauth_callback_port 52847
    """
    if key not in CONFIGURABLE_KEYS:
        console.print(f"[red]Unknown setting:[/red] {key}")
        console.print()
        console.print("[bold]Available settings:[/bold]")
        for k, info in CONFIGURABLE_KEYS.items():
            console.print(f"  [cyan]{k}[/cyan] - {info['description']}")
        raise typer.Exit(1)

    parsed_value = parse_value(key, value)
    validate_value(key, parsed_value)

    config = load_config()
    config[key] = parsed_value
    save_config(config)
    # Later reads in this process must see the new file value
    reset_settings()

    console.print(f"[green]✓[/green] {key} = {parsed_value}")


@app.command("get")
def config_get(
    key: Annotated[str, typer.Argument(help="Setting name")],
):
    """
    Get a single configuration value.

    Examples:
        foursquare config get oauth_callback_port
    """
    if key not in CONFIGURABLE_KEYS:
        console.print(f"[red]Unknown setting:[/red] {key}")
        raise typer.Exit(1)

    config = load_config()
    settings = get_settings()

    file_value = config.get(key)
    effective_value = getattr(settings, key, None)

    if file_value is not None and file_value == effective_value:
        console.print(f"{key} = {file_value} [dim](config.yaml)[/dim]")
    elif effective_value is not None:
        console.print(f"{key} = {effective_value} [dim](default/env)[/dim]")
    else:
        console.print(f"{key} = [dim]not set[/dim]")


@app.command("path")
def config_path():
    """
    Show the path to the configuration file.

    Examples:
        foursquare config path
    """
    console.print(str(get_config_path()))
