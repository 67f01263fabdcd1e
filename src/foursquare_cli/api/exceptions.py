"""Exceptions for Foursquare API."""


class FoursquareAPIError(Exception):
    """Base exception for Foursquare API errors."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TokenExpiredError(FoursquareAPIError):
    """Token was rejected; it has expired or been revoked."""


class RateLimitError(FoursquareAPIError):
    """Rate limit exceeded."""

    def __init__(self, message: str, retry_after: int = 60):
        super().__init__(message, 429)
        self.retry_after = retry_after


class NotAuthenticatedError(FoursquareAPIError):
    """No usable credential was found."""

    def __init__(self, message: str | None = None):
        super().__init__(
            message or "Not authenticated. Run 'foursquare login' first."
        )
