"""Exceptions for the OAuth flow and the token store."""

from pathlib import Path


class AuthError(Exception):
    """Base exception for authorization flow errors."""


class PreconditionError(AuthError):
    """Client credentials are missing; nothing was started."""


class ListenerBindError(AuthError):
    """The callback port is already bound by another process."""

    def __init__(self, port: int):
        super().__init__(
            f"Port {port} is already in use. "
            "Stop the other process (or another running login) and try again."
        )
        self.port = port


class ProviderAuthError(AuthError):
    """Foursquare rejected the authorization or the token exchange."""

    def __init__(self, message: str, error: str | None = None):
        super().__init__(message)
        self.error = error


class MissingCodeError(AuthError):
    """The redirect carried neither an authorization code nor an error."""

    def __init__(self, message: str = "No authorization code in callback"):
        super().__init__(message)


class FlowTimeoutError(AuthError):
    """No callback arrived within the time budget."""

    def __init__(self, timeout: float):
        super().__init__(
            f"Authorization timed out after {timeout:g} seconds. "
            "Complete the login in the browser within the time limit."
        )
        self.timeout = timeout


class StorageError(Exception):
    """Base exception for token file errors."""

    def __init__(self, message: str, path: Path | None = None):
        super().__init__(message)
        self.path = path


class StorageWriteError(StorageError):
    """The token file could not be written or removed."""


class StorageCorruptError(StorageError):
    """The token file exists but does not hold a valid credential record."""
