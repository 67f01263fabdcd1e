"""Check-in models."""

from pydantic import Field

from foursquare_cli.api.models.base import FoursquareModel


class Location(FoursquareModel):
    """Venue location."""

    lat: float | None = None
    lng: float | None = None
    address: str | None = None
    cross_street: str | None = Field(default=None, alias="crossStreet")
    city: str | None = None
    state: str | None = None
    postal_code: str | None = Field(default=None, alias="postalCode")
    country: str | None = None
    formatted_address: list[str] = Field(default_factory=list, alias="formattedAddress")

    @property
    def display_address(self) -> str | None:
        """Single-line address, preferring Foursquare's formatted version."""
        if self.formatted_address:
            return ", ".join(self.formatted_address)
        if self.address:
            parts = [self.address, self.city, self.state, self.country]
            return ", ".join(p for p in parts if p)
        return None


class Category(FoursquareModel):
    """Venue category."""

    id: str
    name: str
    short_name: str | None = Field(default=None, alias="shortName")
    primary: bool = False


class Venue(FoursquareModel):
    """Venue a check-in happened at."""

    id: str
    name: str
    location: Location = Field(default_factory=Location)
    categories: list[Category] = Field(default_factory=list)


class Photo(FoursquareModel):
    """Photo attached to a check-in."""

    id: str
    prefix: str
    suffix: str
    width: int | None = None
    height: int | None = None

    @property
    def original_url(self) -> str:
        """URL of the full-size image."""
        return f"{self.prefix}original{self.suffix}"


class PhotoList(FoursquareModel):
    """Photo collection on a check-in."""

    count: int = 0
    items: list[Photo] = Field(default_factory=list)


class Source(FoursquareModel):
    """App that created the check-in."""

    name: str
    url: str | None = None


class Checkin(FoursquareModel):
    """A single check-in."""

    id: str
    created_at: int = Field(alias="createdAt")
    type: str = "checkin"
    time_zone_offset: int | None = Field(default=None, alias="timeZoneOffset")
    shout: str | None = None
    venue: Venue
    photos: PhotoList | None = None
    source: Source | None = None


class CheckinsResponse(FoursquareModel):
    """Inner ``checkins`` object of /users/self/checkins."""

    count: int = 0
    items: list[Checkin] = Field(default_factory=list)

    @classmethod
    def from_response(cls, data: dict) -> "CheckinsResponse":
        """Parse the full API envelope."""
        return cls.model_validate(data.get("response", {}).get("checkins", {}))
