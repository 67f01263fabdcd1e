"""Async HTTP client for the Foursquare API."""

import logging
from typing import Any

import httpx

from foursquare_cli import __version__
from foursquare_cli.api.exceptions import (
    FoursquareAPIError,
    RateLimitError,
    TokenExpiredError,
)
from foursquare_cli.api.models import Checkin, CheckinsResponse
from foursquare_cli.config import API_BASE_URL, API_VERSION

logger = logging.getLogger(__name__)

MAX_CHECKINS_LIMIT = 250
SORT_ORDERS = ("newestfirst", "oldestfirst")


class FoursquareClient:
    """Async HTTP client for the Foursquare API.

    Usage:
        async with FoursquareClient(token) as client:
            checkins = await client.get_user_checkins(limit=20)
    """

    def __init__(
        self,
        token: str,
        timeout: float | None = None,
        base_url: str = API_BASE_URL,
        api_version: str = API_VERSION,
    ):
        self.token = token
        self.base_url = base_url
        self.api_version = api_version
        self._timeout = timeout or 30.0
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "FoursquareClient":
        """Enter context manager, creating HTTP client."""
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {self.token}",
                "Accept": "application/json",
                "User-Agent": f"Foursquare-CLI/{__version__}",
            },
            timeout=self._timeout,
        )
        return self

    async def __aexit__(self, *args) -> None:
        """Exit context manager, closing HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        """Ensure client is initialized."""
        if self._client is None:
            raise RuntimeError("Client not initialized - use 'async with' context manager")
        return self._client

    def _handle_response(self, response: httpx.Response) -> Any:
        """Handle API response, raising appropriate errors."""
        if response.status_code == 401:
            raise TokenExpiredError("Access token was rejected", 401)

        if response.status_code == 429:
            try:
                retry_after = int(response.headers.get("Retry-After", "60"))
            except ValueError:
                retry_after = 60
            raise RateLimitError("Rate limit exceeded", retry_after)

        if response.status_code >= 400:
            # Log detailed error for debugging, but don't expose raw response to users
            logger.error(f"API error: {response.status_code} - {response.text}")
            raise FoursquareAPIError(
                f"API request failed ({response.status_code})",
                response.status_code,
            )

        data = response.json()
        meta = data.get("meta", {})
        code = meta.get("code", 200)
        if code != 200:
            message = f"API error: {meta.get('errorType', 'unknown')}"
            if meta.get("errorDetail"):
                message += f" - {meta['errorDetail']}"
            raise FoursquareAPIError(message, code)
        return data

    async def _get(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        """Make a versioned GET request."""
        client = self._ensure_client()
        query = {"v": self.api_version}
        if params:
            query.update(params)
        response = await client.get(endpoint, params=query)
        return self._handle_response(response)

    async def get_user_checkins(
        self,
        limit: int = 50,
        after_timestamp: int | None = None,
        before_timestamp: int | None = None,
        sort: str = "newestfirst",
    ) -> list[Checkin]:
        """Get the authenticated user's check-ins.

        Args:
            limit: Number of check-ins (clamped to 1-250)
            after_timestamp: Only check-ins after this Unix timestamp
            before_timestamp: Only check-ins before this Unix timestamp
            sort: 'newestfirst' or 'oldestfirst'
        """
        if sort not in SORT_ORDERS:
            raise ValueError(f"Invalid sort order: {sort}")

        params: dict[str, Any] = {
            "limit": max(1, min(limit, MAX_CHECKINS_LIMIT)),
            "sort": sort,
        }
        if after_timestamp:
            params["afterTimestamp"] = after_timestamp
        if before_timestamp:
            params["beforeTimestamp"] = before_timestamp

        data = await self._get("/users/self/checkins", params)
        return CheckinsResponse.from_response(data).items

    async def probe(self) -> bool:
        """Cheapest authenticated call; True if the token is accepted."""
        client = self._ensure_client()
        response = await client.get(
            "/users/self/checkins", params={"v": self.api_version, "limit": 1}
        )
        return response.is_success
