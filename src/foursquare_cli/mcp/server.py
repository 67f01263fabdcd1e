"""MCP server for Foursquare CLI.

This server exposes Foursquare authentication and check-in history as MCP
tools for Claude and other AI agents.

Usage:
    # Via entry point
    foursquare-mcp

    # Test with MCP dev tools
    mcp dev src/foursquare_cli/mcp/server.py
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from functools import wraps
from typing import AsyncIterator, Callable, Literal, Optional, TypeVar

import httpx
from mcp.server.fastmcp import Context, FastMCP

from foursquare_cli.api.client import FoursquareClient
from foursquare_cli.api.exceptions import (
    FoursquareAPIError,
    NotAuthenticatedError,
    RateLimitError,
    TokenExpiredError,
)
from foursquare_cli.auth.exceptions import (
    AuthError,
    ListenerBindError,
    PreconditionError,
    StorageCorruptError,
    StorageError,
)
from foursquare_cli.auth.oauth import AuthorizationFlow
from foursquare_cli.auth.session import SOURCE_ENVIRONMENT, Session
from foursquare_cli.cli.formatters import format_checkin_list
from foursquare_cli.config import get_settings
from foursquare_cli.log import setup_logging

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable)


@dataclass
class ServerContext:
    """State shared by all requests of one server run."""

    session: Session


@asynccontextmanager
async def server_lifespan(server: FastMCP) -> AsyncIterator[ServerContext]:
    """Build the session once when the server starts."""
    yield ServerContext(session=Session())


def session_from(ctx: Context) -> Session:
    """Session injected through the server lifespan."""
    return ctx.request_context.lifespan_context.session


def _login_resolution() -> dict:
    return {
        "action": "login_required",
        "user_instruction": (
            "Use the 'authenticate' tool, run 'foursquare login' in a terminal, "
            "or set FOURSQUARE_ACCESS_TOKEN."
        ),
    }


def mcp_error_handler(f: F) -> F:
    """Decorator to handle common errors in MCP tools.

    Converts the auth, storage and API error taxonomies into structured
    error responses instead of protocol errors.
    """

    @wraps(f)
    async def wrapper(*args, **kwargs):
        try:
            return await f(*args, **kwargs)
        except ValueError as e:
            return {
                "success": False,
                "error_type": "validation_error",
                "message": str(e),
                "resolution": {
                    "action": "fix_input",
                    "user_instruction": "Check the input parameters and try again.",
                },
            }
        except (NotAuthenticatedError, TokenExpiredError) as e:
            return {
                "success": False,
                "error_type": "auth_error",
                "message": str(e),
                "resolution": _login_resolution(),
            }
        except RateLimitError as e:
            return {
                "success": False,
                "error_type": "rate_limited",
                "message": str(e),
                "retry_after": e.retry_after,
            }
        except FoursquareAPIError as e:
            return {
                "success": False,
                "error_type": "api_error",
                "message": str(e),
                "status_code": e.status_code,
            }
        except PreconditionError as e:
            return {
                "success": False,
                "error_type": "missing_client_credentials",
                "message": str(e),
                "resolution": {
                    "action": "configure",
                    "user_instruction": (
                        "Set FOURSQUARE_CLIENT_ID and FOURSQUARE_CLIENT_SECRET, "
                        "or pass client_id and client_secret."
                    ),
                },
            }
        except ListenerBindError as e:
            return {
                "success": False,
                "error_type": "port_in_use",
                "message": str(e),
                "port": e.port,
            }
        except AuthError as e:
            return {
                "success": False,
                "error_type": "auth_error",
                "message": str(e),
                "resolution": {
                    "action": "retry",
                    "user_instruction": "Run the 'authenticate' tool again.",
                },
            }
        except StorageCorruptError as e:
            return {
                "success": False,
                "error_type": "token_corrupt",
                "message": str(e),
                "path": str(e.path) if e.path else None,
                "resolution": {
                    "action": "login_required",
                    "user_instruction": (
                        "Remove the token file (foursquare logout), then use the "
                        "'authenticate' tool again."
                    ),
                },
            }
        except StorageError as e:
            return {
                "success": False,
                "error_type": "storage_error",
                "message": str(e),
                "path": str(e.path) if e.path else None,
            }
        except httpx.HTTPError as e:
            return {
                "success": False,
                "error_type": "network_error",
                "message": f"Could not reach Foursquare: {e}",
            }
        except Exception:
            logger.exception(f"MCP tool error in {f.__name__}")
            return {
                "success": False,
                "error_type": "internal_error",
                "message": "An unexpected error occurred",
            }

    return wrapper  # type: ignore


# Initialize MCP server
mcp = FastMCP(
    name="foursquare",
    lifespan=server_lifespan,
    instructions=(
        "Foursquare check-in history. Use 'check_auth_status' first; if not "
        "authenticated, call 'authenticate' (opens a browser on the user's "
        "machine), then 'get_user_checkins'."
    ),
)


# -----------------------------------------------------------------------------
# MCP Tools
# -----------------------------------------------------------------------------


@mcp.tool()
@mcp_error_handler
async def authenticate(
    ctx: Context,
    client_id: Optional[str] = None,
    client_secret: Optional[str] = None,
) -> dict:
    """
    Log in to Foursquare in the browser and store the access token.

    Opens the Foursquare consent page and waits (up to the configured OAuth
    timeout, 5 minutes by default) for the user to approve access.

    Args:
        client_id: Foursquare client ID (defaults to FOURSQUARE_CLIENT_ID)
        client_secret: Foursquare client secret (defaults to FOURSQUARE_CLIENT_SECRET)

    Returns:
        Authentication result with:
        - success: True if authenticated
        - token_path: Where the token was saved
        - expires_at: Expiry time, or None when the token does not expire
    """
    session = session_from(ctx)
    flow = AuthorizationFlow(
        client_id,
        client_secret,
        store=session.store,
        settings=session.settings,
    )
    record = await flow.run()

    return {
        "success": True,
        "message": "Authentication successful. The 'get_user_checkins' tool is now available.",
        "token_path": str(session.store.path),
        "expires_at": record.expires_at.isoformat() if record.expires_at else None,
        "browser_opened": flow.browser_opened,
    }


@mcp.tool()
@mcp_error_handler
async def check_auth_status(ctx: Context) -> dict:
    """
    Check whether a usable Foursquare token is available.

    Probes the API with the resolved token, so a revoked token is reported
    as invalid.

    Returns:
        Authentication status with:
        - is_authenticated: boolean
        - token_source: 'environment' or 'store' when a token exists
        - token_path: Location of the token file
    """
    session = session_from(ctx)

    # A corrupt token file propagates as a storage error
    try:
        resolved = await session.resolve()
    except NotAuthenticatedError:
        return {
            "success": True,
            "is_authenticated": False,
            "message": "No token found.",
            "resolution": _login_resolution(),
        }

    is_valid = await session.check_auth()

    result = {
        "success": True,
        "is_authenticated": is_valid,
        "token_source": resolved.source,
        "token_path": (
            None if resolved.source == SOURCE_ENVIRONMENT else str(session.store.path)
        ),
    }
    if is_valid:
        result["message"] = (
            "Authenticated (token from FOURSQUARE_ACCESS_TOKEN)."
            if resolved.source == SOURCE_ENVIRONMENT
            else "Authenticated."
        )
    else:
        result["message"] = "The token is invalid. Re-authenticate."
        result["resolution"] = _login_resolution()
    return result


@mcp.tool()
@mcp_error_handler
async def get_user_checkins(
    ctx: Context,
    limit: int = 50,
    after_timestamp: Optional[int] = None,
    sort: Literal["newestfirst", "oldestfirst"] = "newestfirst",
) -> dict:
    """
    Get the authenticated user's recent check-ins.

    Args:
        limit: Number of check-ins to fetch (1-250, default: 50)
        after_timestamp: Only return check-ins after this Unix timestamp
        sort: 'newestfirst' (default) or 'oldestfirst'

    Returns:
        Check-ins with:
        - count: Number of check-ins returned
        - checkins: Structured check-in data
        - text: Human-readable listing
    """
    session = session_from(ctx)
    token = await session.resolve_token()

    async with FoursquareClient(
        token,
        timeout=session.settings.timeout,
        api_version=session.settings.api_version,
    ) as client:
        checkins = await client.get_user_checkins(
            limit=limit,
            after_timestamp=after_timestamp,
            sort=sort,
        )

    return {
        "success": True,
        "count": len(checkins),
        "checkins": [c.model_dump(mode="json", by_alias=True) for c in checkins],
        "text": format_checkin_list(checkins),
    }


# -----------------------------------------------------------------------------
# MCP Resources
# -----------------------------------------------------------------------------


@mcp.resource("foursquare://status")
async def get_auth_status() -> str:
    """
    Get local authentication status without calling the API.
    """
    session = session_from(mcp.get_context())

    try:
        resolved = await session.resolve()
    except NotAuthenticatedError:
        return "Not authenticated. Use the 'authenticate' tool or run 'foursquare login'."
    except StorageError as e:
        return f"Token file is unreadable: {e}"

    if resolved.source == SOURCE_ENVIRONMENT:
        return "Authenticated via FOURSQUARE_ACCESS_TOKEN."

    record = await session.store.load()
    if record is not None and record.is_expired():
        return "Stored token has expired. Re-authenticate."
    expires = (
        record.expires_at.strftime("%Y-%m-%d %H:%M")
        if record is not None and record.expires_at
        else "never"
    )
    return f"Authenticated with stored token at {session.store.path} (expires: {expires})"


# -----------------------------------------------------------------------------
# Server Entry Point
# -----------------------------------------------------------------------------


def main():
    """Run the MCP server."""
    setup_logging(get_settings().debug)
    logger.info("Foursquare MCP server starting (tools: authenticate, check_auth_status, get_user_checkins)")
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
