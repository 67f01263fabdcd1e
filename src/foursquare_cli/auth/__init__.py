"""Authentication module for Foursquare CLI."""

from foursquare_cli.auth.exceptions import (
    AuthError,
    FlowTimeoutError,
    ListenerBindError,
    MissingCodeError,
    PreconditionError,
    ProviderAuthError,
    StorageCorruptError,
    StorageError,
    StorageWriteError,
)
from foursquare_cli.auth.oauth import (
    AuthorizationFlow,
    FlowState,
    authenticate,
    build_authorization_url,
    resolve_client_credentials,
)
from foursquare_cli.auth.session import ResolvedToken, Session
from foursquare_cli.auth.token_store import (
    CredentialRecord,
    InMemoryTokenStore,
    TokenStore,
)

__all__ = [
    # Authorization flow
    "AuthorizationFlow",
    "FlowState",
    "authenticate",
    "build_authorization_url",
    "resolve_client_credentials",
    # Token storage
    "CredentialRecord",
    "TokenStore",
    "InMemoryTokenStore",
    # Session
    "Session",
    "ResolvedToken",
    # Errors
    "AuthError",
    "PreconditionError",
    "ListenerBindError",
    "ProviderAuthError",
    "MissingCodeError",
    "FlowTimeoutError",
    "StorageError",
    "StorageWriteError",
    "StorageCorruptError",
]
