"""Shared test fixtures."""

import json
import socket
from pathlib import Path

import pytest

from foursquare_cli.config import reset_settings

FIXTURES_DIR = Path(__file__).parent / "fixtures"

ENV_VARS = (
    "FOURSQUARE_CLIENT_ID",
    "FOURSQUARE_CLIENT_SECRET",
    "FOURSQUARE_ACCESS_TOKEN",
    "FOURSQUARE_TIMEOUT",
    "FOURSQUARE_OAUTH_CALLBACK_PORT",
    "FOURSQUARE_OAUTH_TIMEOUT",
    "FOURSQUARE_DEBUG",
)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point the config directory at a temp dir and clear FOURSQUARE_* vars."""
    config_home = tmp_path / "xdg"
    monkeypatch.setenv("XDG_CONFIG_HOME", str(config_home))
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    # Keep a stray .env in the working directory out of Settings
    monkeypatch.chdir(tmp_path)
    reset_settings()
    yield config_home / "foursquare-cli"
    reset_settings()


@pytest.fixture
def config_dir(isolated_config):
    """The isolated foursquare-cli config directory (may not exist yet)."""
    return isolated_config


@pytest.fixture
def checkins_response():
    """Load /users/self/checkins fixture."""
    with open(FIXTURES_DIR / "checkins.json") as f:
        return json.load(f)


@pytest.fixture
def free_port():
    """A TCP port that was free a moment ago."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]
