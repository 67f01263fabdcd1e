"""Configuration management using Pydantic Settings."""

import os
import sys
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

APP_DIR_NAME = "foursquare-cli"
CONFIG_FILENAME = "config.yaml"
TOKEN_FILENAME = "token.json"

# Foursquare endpoints
AUTHORIZE_URL = "https://foursquare.com/oauth2/authenticate"
TOKEN_URL = "https://foursquare.com/oauth2/access_token"
API_BASE_URL = "https://api.foursquare.com/v2"
API_VERSION = "20250824"  # YYYYMMDD

# Loopback redirect; the full origin must be registered with Foursquare
DEFAULT_CALLBACK_PORT = 52847
CALLBACK_PATH = "/callback"
DEFAULT_OAUTH_TIMEOUT = 300


def get_config_dir() -> Path:
    """Get the per-platform configuration directory.

    ``XDG_CONFIG_HOME`` wins on every platform. Otherwise macOS uses
    Application Support, Windows uses roaming AppData and everything else
    follows the XDG default of ``~/.config``.
    """
    xdg_home = os.environ.get("XDG_CONFIG_HOME")
    if xdg_home:
        return Path(xdg_home) / APP_DIR_NAME

    home = Path.home()

    if sys.platform == "darwin":
        return home / "Library" / "Application Support" / APP_DIR_NAME

    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA")
        base = Path(appdata) if appdata else home / "AppData" / "Roaming"
        return base / APP_DIR_NAME

    return home / ".config" / APP_DIR_NAME


def get_config_path() -> Path:
    """Path to the YAML config file."""
    return get_config_dir() / CONFIG_FILENAME


def redirect_uri_for(port: int) -> str:
    """Build the loopback redirect URI for a callback port."""
    return f"http://localhost:{port}{CALLBACK_PATH}"


class YamlConfigSettingsSource(PydanticBaseSettingsSource):
    """Custom settings source that loads from YAML config file."""

    def get_field_value(
        self, field: Any, field_name: str
    ) -> tuple[Any, str, bool]:
        """Get field value from YAML config."""
        config = load_config()
        if field_name in config:
            return config[field_name], field_name, False
        return None, field_name, False

    def __call__(self) -> dict[str, Any]:
        """Return all config values."""
        return load_config()


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="FOURSQUARE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    client_id: str | None = Field(default=None, description="OAuth client ID")
    client_secret: str | None = Field(default=None, description="OAuth client secret")
    access_token: str | None = Field(
        default=None,
        description="Bearer token override; bypasses the token file entirely",
    )
    timeout: int = Field(default=30, ge=5, le=120, description="HTTP timeout in seconds")
    oauth_callback_port: int = Field(
        default=DEFAULT_CALLBACK_PORT,
        ge=1024,
        le=65535,
        description="Port for OAuth callback server",
    )
    oauth_timeout: int = Field(
        default=DEFAULT_OAUTH_TIMEOUT,
        ge=1,
        le=3600,
        description="Timeout for OAuth flow in seconds",
    )
    api_version: str = Field(default=API_VERSION, description="Foursquare API version date")
    debug: bool = Field(default=False, description="Enable debug logging")

    @property
    def config_dir(self) -> Path:
        """Directory holding config and token files."""
        return get_config_dir()

    @property
    def token_file(self) -> Path:
        """Path to the token file."""
        return self.config_dir / TOKEN_FILENAME

    @property
    def redirect_uri(self) -> str:
        """Loopback redirect URI registered with Foursquare."""
        return redirect_uri_for(self.oauth_callback_port)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customize settings sources - priority: env > yaml > defaults."""
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
        )


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings (useful for testing)."""
    global _settings
    _settings = None


def load_config() -> dict[str, Any]:
    """Load config from YAML file.

    Returns:
        Dictionary of config values, empty dict if file doesn't exist or is invalid.
    """
    config_path = get_config_path()
    if not config_path.exists():
        return {}
    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError:
        return {}
    return data if isinstance(data, dict) else {}


def save_config(config: dict[str, Any]) -> None:
    """Save config to YAML file.

    Args:
        config: Dictionary of config values to save.
    """
    config_path = get_config_path()
    config_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        yaml.dump(config, f, default_flow_style=False, allow_unicode=True)
    config_path.chmod(0o600)
