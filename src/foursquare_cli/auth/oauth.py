"""OAuth 2.0 authorization code flow with a loopback callback server.

The flow binds a short-lived HTTP listener on localhost, sends the user's
browser to Foursquare's consent page and waits for the redirect. The callback
handler exchanges the code for a token, stores it and renders a result page.
The listener is always closed before run() returns or raises.

    flow = AuthorizationFlow(client_id, client_secret)
    record = await flow.run()
"""

import asyncio
import errno
import html
import logging
import webbrowser
from enum import Enum
from typing import Callable
from urllib.parse import urlencode

import httpx
from aiohttp import web
from rich.console import Console

from foursquare_cli.auth.exceptions import (
    FlowTimeoutError,
    ListenerBindError,
    MissingCodeError,
    PreconditionError,
    ProviderAuthError,
)
from foursquare_cli.auth.token_store import CredentialRecord, TokenStore
from foursquare_cli.config import (
    AUTHORIZE_URL,
    CALLBACK_PATH,
    TOKEN_URL,
    Settings,
    get_settings,
    redirect_uri_for,
)

logger = logging.getLogger(__name__)

# EADDRINUSE on POSIX, WSAEADDRINUSE on Windows
ADDRESS_IN_USE_ERRNOS = {errno.EADDRINUSE, 10048}

DEFAULT_CLOSE_DELAY = 1.0
LISTENER_SHUTDOWN_TIMEOUT = 5.0
TOKEN_EXCHANGE_TIMEOUT = 30.0

_stderr = Console(stderr=True)


class FlowState(str, Enum):
    """Lifecycle of one authorization flow."""

    IDLE = "idle"
    LISTENING = "listening"
    AWAITING_CODE = "awaiting_code"
    EXCHANGING = "exchanging"
    SUCCESS = "success"
    FAILED = "failed"


def resolve_client_credentials(
    client_id: str | None,
    client_secret: str | None,
    settings: Settings | None = None,
) -> tuple[str, str]:
    """Resolve client credentials from arguments, falling back to settings.

    Raises:
        PreconditionError: If either value is missing after resolution
    """
    settings = settings or get_settings()
    final_id = client_id or settings.client_id
    final_secret = client_secret or settings.client_secret

    if not final_id or not final_secret:
        missing = [
            name
            for name, value in (
                ("FOURSQUARE_CLIENT_ID", final_id),
                ("FOURSQUARE_CLIENT_SECRET", final_secret),
            )
            if not value
        ]
        raise PreconditionError(
            f"Missing {' and '.join(missing)}. "
            "Set the environment variable(s) or pass them explicitly."
        )
    return final_id, final_secret


def build_authorization_url(client_id: str, redirect_uri: str) -> str:
    """Build the consent page URL the browser is sent to."""
    params = {
        "client_id": client_id,
        "response_type": "code",
        "redirect_uri": redirect_uri,
    }
    return f"{AUTHORIZE_URL}?{urlencode(params)}"


def print_manual_url(url: str) -> None:
    """Tell the user to open the authorization URL by hand."""
    _stderr.print("[yellow]Could not open a browser automatically.[/yellow]")
    _stderr.print("Open this URL to continue:")
    _stderr.print(url, soft_wrap=True, highlight=False)


def render_page(title: str, heading: str, paragraphs: list[str], css_class: str = "") -> str:
    """Render a minimal HTML page; all text is escaped."""
    body = "\n".join(f"<p>{html.escape(p)}</p>" for p in paragraphs)
    class_attr = f' class="{css_class}"' if css_class else ""
    return f"""<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>{html.escape(title)}</title>
<style>
body {{ font-family: system-ui; padding: 40px; max-width: 600px; margin: 0 auto; }}
.error {{ color: #d32f2f; }}
.success {{ color: #388e3c; }}
</style>
</head>
<body>
<h1{class_attr}>{html.escape(heading)}</h1>
{body}
</body>
</html>
"""


def _html_response(content: str, status: int = 200) -> web.Response:
    return web.Response(
        text=content,
        status=status,
        content_type="text/html",
        headers={"X-Content-Type-Options": "nosniff", "X-Frame-Options": "DENY"},
    )


class AuthorizationFlow:
    """One interactive authorization code exchange.

    A flow instance is single-use. Only one flow can hold the callback port at
    a time; a second concurrent flow fails fast with ListenerBindError.
    """

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        *,
        store: TokenStore | None = None,
        settings: Settings | None = None,
        port: int | None = None,
        timeout: float | None = None,
        host: str = "127.0.0.1",
        browser_opener: Callable[[str], bool] = webbrowser.open,
        on_manual_url: Callable[[str], None] = print_manual_url,
        close_delay: float = DEFAULT_CLOSE_DELAY,
    ):
        """Initialize the flow.

        Args:
            client_id: OAuth client ID (falls back to FOURSQUARE_CLIENT_ID)
            client_secret: OAuth client secret (falls back to FOURSQUARE_CLIENT_SECRET)
            store: Where the token is saved on success
            settings: Settings to read defaults from
            port: Callback port (must match the registered redirect URI)
            timeout: Seconds to wait for the callback
            host: Interface the listener binds to
            browser_opener: Opens a URL, returns False if it could not
            on_manual_url: Receives the URL when the browser could not be opened
            close_delay: Seconds to keep serving after success so the page renders

        Raises:
            PreconditionError: If client credentials are missing
        """
        self.settings = settings or get_settings()
        self.client_id, self.client_secret = resolve_client_credentials(
            client_id, client_secret, self.settings
        )
        self.store = store if store is not None else TokenStore()
        self.port = port or self.settings.oauth_callback_port
        self.timeout = timeout if timeout is not None else self.settings.oauth_timeout
        self.host = host
        self.close_delay = close_delay

        self._browser_opener = browser_opener
        self._on_manual_url = on_manual_url

        self.state = FlowState.IDLE
        self.browser_opened: bool | None = None
        self._runner: web.AppRunner | None = None
        self._result: asyncio.Future[CredentialRecord] | None = None
        self._callback_handled = False
        self._exchange: asyncio.Task[CredentialRecord] | None = None

    @property
    def redirect_uri(self) -> str:
        """Redirect URI sent in both the authorize and token requests."""
        return redirect_uri_for(self.port)

    @property
    def authorization_url(self) -> str:
        """Consent page URL for this flow."""
        return build_authorization_url(self.client_id, self.redirect_uri)

    async def run(self) -> CredentialRecord:
        """Run the flow to completion.

        Returns:
            The stored CredentialRecord

        Raises:
            ListenerBindError: If the callback port is in use
            ProviderAuthError: If Foursquare reported an error
            MissingCodeError: If the callback had no code
            FlowTimeoutError: If no callback arrived in time
            StorageWriteError: If the token could not be saved
        """
        if self.state is not FlowState.IDLE:
            raise RuntimeError("AuthorizationFlow instances are single-use")

        loop = asyncio.get_running_loop()
        self._result = loop.create_future()

        await self._start_listener()
        deadline = loop.time() + self.timeout

        try:
            await self._open_browser()
            if self.state is FlowState.LISTENING:
                self.state = FlowState.AWAITING_CODE

            try:
                record = await asyncio.wait_for(
                    self._result, max(0.0, deadline - loop.time())
                )
            except asyncio.TimeoutError:
                self.state = FlowState.FAILED
                # An exchange still in flight must not save a token
                if self._exchange is not None and not self._exchange.done():
                    self._exchange.cancel()
                logger.warning(f"No OAuth callback within {self.timeout:g}s")
                raise FlowTimeoutError(self.timeout) from None

            # Let the browser finish loading the success page
            if self.close_delay > 0:
                await asyncio.sleep(self.close_delay)
            return record
        finally:
            await self._stop_listener()

    async def _start_listener(self) -> None:
        """Bind the callback server."""
        app = web.Application()
        app.router.add_get("/", self._handle_root)
        app.router.add_get(CALLBACK_PATH, self._handle_callback)

        runner = web.AppRunner(
            app, access_log=None, shutdown_timeout=LISTENER_SHUTDOWN_TIMEOUT
        )
        await runner.setup()
        site = web.TCPSite(runner, self.host, self.port)
        try:
            await site.start()
        except OSError as e:
            await runner.cleanup()
            self.state = FlowState.FAILED
            if e.errno in ADDRESS_IN_USE_ERRNOS:
                raise ListenerBindError(self.port) from e
            raise

        self._runner = runner
        self.state = FlowState.LISTENING
        logger.info(f"OAuth callback server listening on http://localhost:{self.port}")

    async def _stop_listener(self) -> None:
        """Close the callback server and release the port."""
        if self._runner is None:
            return
        runner, self._runner = self._runner, None
        await runner.cleanup()
        logger.debug(f"OAuth callback server on port {self.port} stopped")

    async def _open_browser(self) -> None:
        """Open the consent page, falling back to showing the URL."""
        url = self.authorization_url
        try:
            opened = await asyncio.to_thread(self._browser_opener, url)
        except (webbrowser.Error, OSError) as e:
            logger.debug(f"Browser launch failed: {e}")
            opened = False

        self.browser_opened = bool(opened)
        if self.browser_opened:
            logger.info("Opened browser for Foursquare authorization")
        else:
            self._on_manual_url(url)

    async def _handle_root(self, request: web.Request) -> web.Response:
        """Static landing page."""
        return _html_response(
            render_page(
                "Foursquare authorization",
                "Foursquare authorization server",
                ["Waiting for authorization..."],
            )
        )

    async def _handle_callback(self, request: web.Request) -> web.Response:
        """Handle the OAuth redirect; resolves the flow exactly once."""
        if self._callback_handled:
            return _html_response(
                render_page(
                    "Already handled",
                    "Request already handled",
                    ["This authorization request was already processed. You can close this window."],
                ),
                status=409,
            )
        self._callback_handled = True

        query = request.query

        error = query.get("error")
        if error:
            description = query.get("error_description")
            message = f"Authorization error: {error}"
            if description:
                message += f" ({description})"
            logger.error(f"OAuth callback received error: {error}")
            return self._fail(ProviderAuthError(message, error=error))

        code = query.get("code")
        if not code:
            logger.error("OAuth callback missing authorization code")
            return self._fail(MissingCodeError())

        self.state = FlowState.EXCHANGING
        self._exchange = asyncio.ensure_future(self._exchange_code(code))
        try:
            record = await self._exchange
            if self._result.done():
                return self._fail(FlowTimeoutError(self.timeout))
            await self.store.save(record)
        except asyncio.CancelledError:
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise
            logger.error("Token exchange abandoned after the OAuth timeout")
            return self._fail(FlowTimeoutError(self.timeout))
        except Exception as e:
            if not isinstance(e, ProviderAuthError):
                logger.exception("Could not complete authorization")
            return self._fail(e)

        if self._result.done():
            return self._fail(FlowTimeoutError(self.timeout))
        self.state = FlowState.SUCCESS
        self._result.set_result(record)

        return _html_response(
            render_page(
                "Authorization successful",
                "Authorization successful",
                [
                    "Foursquare authorization is complete and the token has been saved.",
                    "You can close this window and return to the terminal.",
                ],
                css_class="success",
            )
        )

    def _fail(self, exc: Exception) -> web.Response:
        """Fail the flow and render an error page."""
        self.state = FlowState.FAILED
        if self._result is not None and not self._result.done():
            self._result.set_exception(exc)
        return _html_response(
            render_page(
                "Authorization error",
                "Authorization error",
                [str(exc), "Close this window and try again."],
                css_class="error",
            ),
            status=400,
        )

    async def _exchange_code(self, code: str) -> CredentialRecord:
        """Exchange the authorization code for an access token.

        Raises:
            ProviderAuthError: If the exchange fails for any reason
        """
        try:
            async with httpx.AsyncClient(timeout=TOKEN_EXCHANGE_TIMEOUT) as client:
                response = await client.post(
                    TOKEN_URL,
                    data={
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                        "grant_type": "authorization_code",
                        "redirect_uri": self.redirect_uri,
                        "code": code,
                    },
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as e:
            raise ProviderAuthError(f"Token exchange request failed: {e}") from e

        try:
            data = response.json()
        except ValueError:
            data = None

        if not isinstance(data, dict):
            raise ProviderAuthError(
                f"Token exchange failed with status {response.status_code}: "
                "response is not a JSON object"
            )

        if data.get("error"):
            error = str(data["error"])
            detail = data.get("error_description") or error
            raise ProviderAuthError(f"Token exchange failed: {detail}", error=error)

        if response.status_code >= 400:
            raise ProviderAuthError(
                f"Token exchange failed with status {response.status_code}"
            )

        access_token = data.get("access_token")
        if not access_token or not isinstance(access_token, str):
            raise ProviderAuthError("No access_token in token response")

        expires_in = data.get("expires_in")
        if not isinstance(expires_in, int) or isinstance(expires_in, bool):
            expires_in = None

        logger.info(
            f"Token exchange successful, expiry: {expires_in if expires_in else 'none'}"
        )
        return CredentialRecord.create(access_token, expires_in=expires_in)


async def authenticate(
    client_id: str | None = None,
    client_secret: str | None = None,
    **flow_options,
) -> CredentialRecord:
    """Run an authorization flow and return the stored record.

    Keyword options are passed to AuthorizationFlow.
    """
    flow = AuthorizationFlow(client_id, client_secret, **flow_options)
    return await flow.run()
