"""Token storage on local disk.

The credential record lives in ``token.json`` inside the per-platform config
directory. The directory is created owner-only (0700) and the file is written
owner-only (0600) through a temp file and an atomic rename, so readers see
either the previous record or the new one, never a partial write.
"""

import json
import logging
import os
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Self

import aiofiles
import aiofiles.os

from foursquare_cli.auth.exceptions import (
    StorageCorruptError,
    StorageError,
    StorageWriteError,
)
from foursquare_cli.config import TOKEN_FILENAME, get_config_dir

logger = logging.getLogger(__name__)

DIR_MODE = 0o700
FILE_MODE = 0o600


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


@dataclass
class CredentialRecord:
    """Stored credential.

    ``expires_in`` is None for tokens that do not expire. Foursquare issues
    such tokens; other providers may not.
    """

    access_token: str
    created_at: int
    expires_in: int | None = None

    @classmethod
    def create(cls, access_token: str, expires_in: int | None = None) -> Self:
        """Create a record stamped with the current time."""
        return cls(access_token=access_token, created_at=now_ms(), expires_in=expires_in)

    @property
    def expires_at(self) -> datetime | None:
        """Expiry instant, or None when the token never expires."""
        if self.expires_in is None:
            return None
        return datetime.fromtimestamp(
            (self.created_at + self.expires_in * 1000) / 1000, tz=timezone.utc
        )

    def is_expired(self, now: int | None = None) -> bool:
        """Check if the token is past its expiry instant."""
        if self.expires_in is None:
            return False
        current = now_ms() if now is None else now
        return current > self.created_at + self.expires_in * 1000

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data: dict[str, Any] = {
            "access_token": self.access_token,
            "created_at": self.created_at,
        }
        if self.expires_in is not None:
            data["expires_in"] = self.expires_in
        return data

    @classmethod
    def from_dict(cls, data: Any) -> Self:
        """Create from dictionary.

        Raises:
            ValueError: If the payload is not a valid credential record
        """
        if not isinstance(data, dict):
            raise ValueError("credential record must be a JSON object")

        access_token = data.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise ValueError("access_token must be a non-empty string")

        created_at = data.get("created_at")
        if isinstance(created_at, bool) or not isinstance(created_at, (int, float)):
            raise ValueError("created_at must be a number")

        expires_in = data.get("expires_in")
        if expires_in is not None and (
            isinstance(expires_in, bool) or not isinstance(expires_in, (int, float))
        ):
            raise ValueError("expires_in must be a number")

        return cls(
            access_token=access_token,
            created_at=int(created_at),
            expires_in=int(expires_in) if expires_in is not None else None,
        )


class TokenStore:
    """Single-record token persistence in the config directory."""

    def __init__(self, path: Path | None = None):
        """Initialize the store.

        Args:
            path: Explicit token file path. Defaults to ``token.json`` in the
                config directory, resolved on each call so that a changed
                ``XDG_CONFIG_HOME`` is honored.
        """
        self._path = path

    @property
    def path(self) -> Path:
        """Token file path (without creating anything)."""
        if self._path is not None:
            return self._path
        return get_config_dir() / TOKEN_FILENAME

    async def resolve_storage_location(self) -> Path:
        """Return the token file path, creating its directory owner-only.

        Raises:
            StorageWriteError: If the directory cannot be created
        """
        path = self.path
        try:
            await aiofiles.os.makedirs(path.parent, mode=DIR_MODE, exist_ok=True)
        except OSError as e:
            raise StorageWriteError(
                f"Cannot create config directory {path.parent}: {e.strerror or e}",
                path,
            ) from e
        return path

    async def save(self, record: CredentialRecord) -> None:
        """Write the record, replacing any previous one.

        Raises:
            StorageWriteError: On any I/O failure
        """
        path = await self.resolve_storage_location()
        temp_path = path.with_name(f".{path.name}.tmp")
        content = json.dumps(record.to_dict(), indent=2)

        try:
            async with aiofiles.open(
                temp_path,
                "w",
                encoding="utf-8",
                opener=lambda p, flags: os.open(p, flags, FILE_MODE),
            ) as f:
                await f.write(content)
            # A stale temp file keeps its old mode; os.open only applies it on create
            os.chmod(temp_path, FILE_MODE)
            await aiofiles.os.replace(temp_path, path)
        except OSError as e:
            await self._discard(temp_path)
            raise StorageWriteError(
                f"Cannot write token file {path}: {e.strerror or e}", path
            ) from e

        logger.debug(f"Token saved to {path}")

    async def load(self) -> CredentialRecord | None:
        """Read the stored record.

        Returns:
            The record, or None if no token file exists

        Raises:
            StorageCorruptError: If the file exists but cannot be parsed
            StorageError: If the file exists but cannot be read
        """
        path = self.path
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                content = await f.read()
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as e:
            raise StorageCorruptError(f"Token file {path} is not valid text", path) from e
        except OSError as e:
            raise StorageError(
                f"Cannot read token file {path}: {e.strerror or e}", path
            ) from e

        try:
            return CredentialRecord.from_dict(json.loads(content))
        except ValueError as e:
            # json.JSONDecodeError is a ValueError too
            raise StorageCorruptError(f"Token file {path} is corrupt: {e}", path) from e

    async def delete(self) -> bool:
        """Remove the stored record.

        Returns:
            True if a file was removed, False if there was none

        Raises:
            StorageWriteError: If the file exists but cannot be removed
        """
        path = self.path
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageWriteError(
                f"Cannot remove token file {path}: {e.strerror or e}", path
            ) from e
        logger.debug(f"Token file {path} removed")
        return True

    async def exists(self) -> bool:
        """Check whether a valid record is stored."""
        try:
            return await self.load() is not None
        except StorageError:
            return False

    async def _discard(self, temp_path: Path) -> None:
        """Remove a leftover temp file after a failed write."""
        try:
            await aiofiles.os.remove(temp_path)
        except OSError:
            logger.debug(f"Could not remove temp file {temp_path}")


class InMemoryTokenStore:
    """Token store that keeps the record in memory.

    Same interface as TokenStore; used for tests and embedding.
    """

    def __init__(self, record: CredentialRecord | None = None):
        self._record = record
        self.path = Path(":memory:")

    async def resolve_storage_location(self) -> Path:
        return self.path

    async def save(self, record: CredentialRecord) -> None:
        self._record = CredentialRecord(**record.to_dict())

    async def load(self) -> CredentialRecord | None:
        if self._record is None:
            return None
        return CredentialRecord(**self._record.to_dict())

    async def delete(self) -> bool:
        existed = self._record is not None
        self._record = None
        return existed

    async def exists(self) -> bool:
        return self._record is not None
