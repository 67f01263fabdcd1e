"""Re-export all models."""

from foursquare_cli.api.models.base import FoursquareModel
from foursquare_cli.api.models.checkins import (
    Category,
    Checkin,
    CheckinsResponse,
    Location,
    Photo,
    PhotoList,
    Source,
    Venue,
)

__all__ = [
    "FoursquareModel",
    "Category",
    "Checkin",
    "CheckinsResponse",
    "Location",
    "Photo",
    "PhotoList",
    "Source",
    "Venue",
]
