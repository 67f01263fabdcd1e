"""API module for Foursquare CLI."""

from foursquare_cli.api.client import FoursquareClient
from foursquare_cli.api.exceptions import (
    FoursquareAPIError,
    NotAuthenticatedError,
    RateLimitError,
    TokenExpiredError,
)
from foursquare_cli.api.models import (
    Category,
    Checkin,
    CheckinsResponse,
    FoursquareModel,
    Location,
    Photo,
    Venue,
)

__all__ = [
    # Client
    "FoursquareClient",
    # Exceptions
    "FoursquareAPIError",
    "NotAuthenticatedError",
    "TokenExpiredError",
    "RateLimitError",
    # Models
    "FoursquareModel",
    "Category",
    "Checkin",
    "CheckinsResponse",
    "Location",
    "Photo",
    "Venue",
]
