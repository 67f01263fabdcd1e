"""Session provider: decides which bearer token an API call uses.

Precedence is an explicit token passed by the caller, then the
``FOURSQUARE_ACCESS_TOKEN`` environment override, then the token file.
"""

import logging
from dataclasses import dataclass

from foursquare_cli.api.client import FoursquareClient
from foursquare_cli.api.exceptions import NotAuthenticatedError
from foursquare_cli.auth.token_store import TokenStore
from foursquare_cli.config import Settings, get_settings

logger = logging.getLogger(__name__)

SOURCE_EXPLICIT = "explicit"
SOURCE_ENVIRONMENT = "environment"
SOURCE_STORE = "store"


@dataclass(frozen=True)
class ResolvedToken:
    """A bearer token together with where it came from."""

    token: str
    source: str


class Session:
    """Per-process credential resolver.

    Build one at startup and pass it to whatever needs a token:

        session = Session()
        token = await session.resolve_token()

    Tests inject an ``InMemoryTokenStore`` and explicit ``Settings``.
    """

    def __init__(
        self,
        store: TokenStore | None = None,
        settings: Settings | None = None,
    ):
        self.store = store if store is not None else TokenStore()
        self.settings = settings if settings is not None else get_settings()

    @property
    def environment_token(self) -> str | None:
        """Token supplied through the environment, if any."""
        return self.settings.access_token or None

    async def resolve(self, explicit_token: str | None = None) -> ResolvedToken:
        """Resolve the token to use and its source.

        Raises:
            NotAuthenticatedError: If no token is available anywhere
            StorageCorruptError: If the token file is unreadable
        """
        if explicit_token:
            return ResolvedToken(explicit_token, SOURCE_EXPLICIT)

        env_token = self.environment_token
        if env_token:
            return ResolvedToken(env_token, SOURCE_ENVIRONMENT)

        record = await self.store.load()
        if record is None:
            raise NotAuthenticatedError()
        return ResolvedToken(record.access_token, SOURCE_STORE)

    async def resolve_token(self, explicit_token: str | None = None) -> str:
        """Resolve the bearer token for an API call."""
        resolved = await self.resolve(explicit_token)
        return resolved.token

    async def check_auth(self, explicit_token: str | None = None) -> bool:
        """Probe the API with the resolved token.

        Returns False on any failure, including a missing token. Never raises.
        """
        try:
            token = await self.resolve_token(explicit_token)
            async with FoursquareClient(
                token,
                timeout=self.settings.timeout,
                api_version=self.settings.api_version,
            ) as client:
                return await client.probe()
        except Exception as e:
            logger.debug(f"Auth probe failed: {type(e).__name__}: {e}")
            return False

    async def is_token_valid(self) -> bool:
        """Local expiry check on the stored record; no network."""
        record = await self.store.load()
        if record is None:
            return False
        return not record.is_expired()

    async def has_token(self) -> bool:
        """Check whether an environment or stored token is available."""
        if self.environment_token:
            return True
        return await self.store.exists()

    async def logout(self) -> bool:
        """Delete the stored record.

        Returns:
            True if a record was removed
        """
        return await self.store.delete()
