"""Tests for the OAuth authorization flow and its callback server."""

import asyncio
import socket
import webbrowser
from unittest.mock import AsyncMock, MagicMock
from urllib.parse import parse_qs, urlparse

import aiohttp
import httpx
import pytest
import respx

from foursquare_cli.auth.exceptions import (
    FlowTimeoutError,
    ListenerBindError,
    MissingCodeError,
    PreconditionError,
    ProviderAuthError,
    StorageWriteError,
)
from foursquare_cli.auth.oauth import (
    AuthorizationFlow,
    FlowState,
    authenticate,
    build_authorization_url,
    resolve_client_credentials,
)
from foursquare_cli.auth.token_store import CredentialRecord, InMemoryTokenStore, now_ms
from foursquare_cli.config import TOKEN_URL, Settings, reset_settings


def make_flow(port, store=None, **kwargs):
    kwargs.setdefault("browser_opener", lambda url: True)
    kwargs.setdefault("on_manual_url", MagicMock())
    kwargs.setdefault("close_delay", 0)
    kwargs.setdefault("timeout", 10)
    return AuthorizationFlow(
        "client-id",
        "client-secret",
        store=store if store is not None else InMemoryTokenStore(),
        settings=Settings(),
        port=port,
        **kwargs,
    )


async def wait_for_state(flow, state, timeout=5.0):
    """Poll until the flow reaches a state."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while flow.state is not state:
        if loop.time() > deadline:
            raise AssertionError(f"flow stuck in {flow.state}, expected {state}")
        await asyncio.sleep(0.01)


async def hit(port, path="/callback", params=None):
    """GET the local callback server, returning (status, body, headers)."""
    async with aiohttp.ClientSession() as http:
        async with http.get(f"http://127.0.0.1:{port}{path}", params=params) as resp:
            return resp.status, await resp.text(), resp.headers


def port_is_free(port):
    """True if nothing is listening on the port."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            s.bind(("127.0.0.1", port))
            s.listen()
        except OSError:
            return False
    return True


class TestClientCredentials:
    """Resolution of client id and secret."""

    def test_explicit_values(self):
        assert resolve_client_credentials("id", "secret", Settings()) == ("id", "secret")

    def test_falls_back_to_environment(self, monkeypatch):
        monkeypatch.setenv("FOURSQUARE_CLIENT_ID", "env-id")
        monkeypatch.setenv("FOURSQUARE_CLIENT_SECRET", "env-secret")
        reset_settings()
        assert resolve_client_credentials(None, None) == ("env-id", "env-secret")

    def test_missing_secret(self):
        with pytest.raises(PreconditionError, match="FOURSQUARE_CLIENT_SECRET"):
            resolve_client_credentials("id", None, Settings())

    def test_flow_fails_before_binding(self, free_port):
        """Missing credentials are reported before any listener exists."""
        opener = MagicMock()
        with pytest.raises(PreconditionError):
            AuthorizationFlow(
                None, None, settings=Settings(), port=free_port, browser_opener=opener
            )
        opener.assert_not_called()
        assert port_is_free(free_port)


class TestAuthorizationUrl:
    """Consent page URL."""

    def test_build_authorization_url(self):
        url = build_authorization_url("abc", "http://localhost:52847/callback")
        parsed = urlparse(url)

        assert f"{parsed.scheme}://{parsed.netloc}{parsed.path}" == (
            "https://foursquare.com/oauth2/authenticate"
        )
        assert parse_qs(parsed.query) == {
            "client_id": ["abc"],
            "response_type": ["code"],
            "redirect_uri": ["http://localhost:52847/callback"],
        }

    def test_flow_uses_configured_port(self, free_port):
        flow = make_flow(free_port)
        assert flow.redirect_uri == f"http://localhost:{free_port}/callback"
        assert f"localhost%3A{free_port}%2Fcallback" in flow.authorization_url

    def test_default_port(self):
        flow = AuthorizationFlow("id", "secret", settings=Settings())
        assert flow.port == 52847
        assert flow.timeout == 300


@pytest.mark.asyncio
class TestSuccessfulFlow:
    """Callback with a code, successful exchange."""

    async def test_exchange_saves_token(self, free_port):
        store = InMemoryTokenStore()
        started = now_ms()
        opened = []
        flow = make_flow(free_port, store, browser_opener=lambda url: opened.append(url) or True)

        with respx.mock:
            route = respx.post(TOKEN_URL).mock(
                return_value=httpx.Response(200, json={"access_token": "tok123"})
            )
            task = asyncio.create_task(flow.run())
            await wait_for_state(flow, FlowState.AWAITING_CODE)

            status, body, headers = await hit(free_port, params={"code": "abc"})
            record = await task

        assert status == 200
        assert "Authorization successful" in body
        assert headers["X-Content-Type-Options"] == "nosniff"
        assert headers["X-Frame-Options"] == "DENY"

        assert record.access_token == "tok123"
        assert record.expires_in is None
        assert started <= record.created_at <= now_ms()
        assert (await store.load()).access_token == "tok123"
        assert flow.state is FlowState.SUCCESS
        assert flow.browser_opened is True
        assert opened == [flow.authorization_url]

        form = parse_qs(route.calls.last.request.content.decode())
        assert form == {
            "client_id": ["client-id"],
            "client_secret": ["client-secret"],
            "grant_type": ["authorization_code"],
            "redirect_uri": [f"http://localhost:{free_port}/callback"],
            "code": ["abc"],
        }
        assert port_is_free(free_port)

    async def test_expires_in_is_kept(self, free_port):
        flow = make_flow(free_port)

        with respx.mock:
            respx.post(TOKEN_URL).mock(
                return_value=httpx.Response(
                    200, json={"access_token": "tok", "expires_in": 3600}
                )
            )
            task = asyncio.create_task(flow.run())
            await wait_for_state(flow, FlowState.AWAITING_CODE)
            await hit(free_port, params={"code": "abc"})
            record = await task

        assert record.expires_in == 3600
        assert not record.is_expired()

    async def test_second_callback_is_rejected(self, free_port):
        """Only the first callback resolves the flow."""
        flow = make_flow(free_port, close_delay=0.5)

        with respx.mock:
            route = respx.post(TOKEN_URL).mock(
                return_value=httpx.Response(200, json={"access_token": "first"})
            )
            task = asyncio.create_task(flow.run())
            await wait_for_state(flow, FlowState.AWAITING_CODE)

            first_status, _, _ = await hit(free_port, params={"code": "one"})
            second_status, second_body, _ = await hit(free_port, params={"code": "two"})
            record = await task

        assert first_status == 200
        assert second_status == 409
        assert "already handled" in second_body
        assert route.call_count == 1
        assert record.access_token == "first"

    async def test_root_page(self, free_port):
        """The root path serves a static waiting page."""
        flow = make_flow(free_port)
        task = asyncio.create_task(flow.run())
        await wait_for_state(flow, FlowState.AWAITING_CODE)

        status, body, headers = await hit(free_port, path="/")

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert status == 200
        assert "Waiting for authorization" in body
        assert headers["X-Frame-Options"] == "DENY"


@pytest.mark.asyncio
class TestFailedFlow:
    """Callback errors, exchange errors, storage errors."""

    async def _run_with_callback(self, flow, port, params):
        task = asyncio.create_task(flow.run())
        await wait_for_state(flow, FlowState.AWAITING_CODE)
        status, body, _ = await hit(port, params=params)
        return task, status, body

    async def test_provider_error(self, free_port):
        store = InMemoryTokenStore()
        flow = make_flow(free_port, store)

        task, status, body = await self._run_with_callback(
            flow,
            free_port,
            {"error": "access_denied", "error_description": "User denied access"},
        )

        with pytest.raises(ProviderAuthError) as exc_info:
            await task

        assert exc_info.value.error == "access_denied"
        assert "User denied access" in str(exc_info.value)
        assert status == 400
        assert "Authorization error" in body
        assert await store.load() is None
        assert flow.state is FlowState.FAILED
        assert port_is_free(free_port)

    async def test_error_page_escapes_input(self, free_port):
        flow = make_flow(free_port)

        task, _, body = await self._run_with_callback(
            flow,
            free_port,
            {"error": "bad", "error_description": "<script>alert(1)</script>"},
        )
        with pytest.raises(ProviderAuthError):
            await task

        assert "<script>" not in body
        assert "&lt;script&gt;" in body

    async def test_missing_code(self, free_port):
        store = InMemoryTokenStore()
        flow = make_flow(free_port, store)

        task, status, _ = await self._run_with_callback(flow, free_port, None)

        with pytest.raises(MissingCodeError):
            await task
        assert status == 400
        assert await store.load() is None

    async def test_token_endpoint_error(self, free_port):
        store = InMemoryTokenStore()
        flow = make_flow(free_port, store)

        with respx.mock:
            respx.post(TOKEN_URL).mock(
                return_value=httpx.Response(
                    400, json={"error": "invalid_grant", "error_description": "Code expired"}
                )
            )
            task, status, body = await self._run_with_callback(
                flow, free_port, {"code": "stale"}
            )
            with pytest.raises(ProviderAuthError) as exc_info:
                await task

        assert exc_info.value.error == "invalid_grant"
        assert "Code expired" in str(exc_info.value)
        assert status == 400
        assert "Code expired" in body
        assert await store.load() is None

    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(200, text="<html>not json</html>"),
            httpx.Response(200, json={"token_type": "bearer"}),
            httpx.Response(502, json={"message": "bad gateway"}),
        ],
    )
    async def test_unusable_token_response(self, free_port, response):
        store = InMemoryTokenStore()
        flow = make_flow(free_port, store)

        with respx.mock:
            respx.post(TOKEN_URL).mock(return_value=response)
            task, status, _ = await self._run_with_callback(flow, free_port, {"code": "abc"})
            with pytest.raises(ProviderAuthError):
                await task

        assert status == 400
        assert await store.load() is None

    async def test_transport_error(self, free_port):
        flow = make_flow(free_port)

        with respx.mock:
            respx.post(TOKEN_URL).mock(side_effect=httpx.ConnectError("unreachable"))
            task, _, _ = await self._run_with_callback(flow, free_port, {"code": "abc"})
            with pytest.raises(ProviderAuthError, match="unreachable"):
                await task

    async def test_storage_failure_propagates(self, free_port):
        store = MagicMock()
        store.save = AsyncMock(side_effect=StorageWriteError("disk full"))
        flow = make_flow(free_port, store)

        with respx.mock:
            respx.post(TOKEN_URL).mock(
                return_value=httpx.Response(200, json={"access_token": "tok"})
            )
            task, status, _ = await self._run_with_callback(flow, free_port, {"code": "abc"})
            with pytest.raises(StorageWriteError):
                await task

        assert status == 400
        assert flow.state is FlowState.FAILED
        assert port_is_free(free_port)


@pytest.mark.asyncio
class TestListenerLifecycle:
    """Timeouts, port conflicts, browser fallback, cancellation."""

    async def test_timeout_releases_port(self, free_port):
        flow = make_flow(free_port, timeout=0.2)

        with pytest.raises(FlowTimeoutError) as exc_info:
            await flow.run()

        assert exc_info.value.timeout == 0.2
        assert flow.state is FlowState.FAILED
        assert port_is_free(free_port)

        # A fresh flow can take the port again
        retry = make_flow(free_port, timeout=0.1)
        with pytest.raises(FlowTimeoutError):
            await retry.run()

    async def test_timeout_during_exchange_saves_nothing(self, free_port):
        """A token endpoint slower than the timeout fails the flow."""
        store = InMemoryTokenStore()
        flow = make_flow(free_port, store, timeout=0.5)
        exchange_cancelled = asyncio.Event()

        async def slow_exchange(code):
            try:
                await asyncio.sleep(30)
            except asyncio.CancelledError:
                exchange_cancelled.set()
                raise
            return CredentialRecord.create("late-token")

        flow._exchange_code = slow_exchange

        task = asyncio.create_task(flow.run())
        await wait_for_state(flow, FlowState.AWAITING_CODE)
        callback = asyncio.create_task(hit(free_port, params={"code": "abc"}))
        await wait_for_state(flow, FlowState.EXCHANGING)

        with pytest.raises(FlowTimeoutError):
            await task
        status, body, _ = await callback

        assert exchange_cancelled.is_set()
        assert status == 400
        assert "Authorization successful" not in body
        assert flow.state is FlowState.FAILED
        assert await store.load() is None
        assert port_is_free(free_port)

    async def test_port_in_use_by_other_process(self, free_port):
        opener = MagicMock(return_value=True)
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind(("127.0.0.1", free_port))
            blocker.listen()

            flow = make_flow(free_port, browser_opener=opener)
            with pytest.raises(ListenerBindError) as exc_info:
                await flow.run()

        assert exc_info.value.port == free_port
        assert str(free_port) in str(exc_info.value)
        assert flow.state is FlowState.FAILED
        opener.assert_not_called()

    async def test_concurrent_flow_fails_fast(self, free_port):
        """A second flow on the same port fails while the first keeps waiting."""
        first = make_flow(free_port)
        first_task = asyncio.create_task(first.run())
        await wait_for_state(first, FlowState.AWAITING_CODE)

        second_opener = MagicMock(return_value=True)
        second = make_flow(free_port, browser_opener=second_opener)
        with pytest.raises(ListenerBindError):
            await second.run()

        second_opener.assert_not_called()
        assert first.state is FlowState.AWAITING_CODE

        first_task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await first_task

    async def test_browser_failure_shows_url(self, free_port):
        on_manual_url = MagicMock()
        flow = make_flow(
            free_port, browser_opener=lambda url: False, on_manual_url=on_manual_url
        )

        task = asyncio.create_task(flow.run())
        await wait_for_state(flow, FlowState.AWAITING_CODE)

        assert flow.browser_opened is False
        on_manual_url.assert_called_once_with(flow.authorization_url)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    async def test_browser_exception_shows_url(self, free_port):
        def broken_opener(url):
            raise webbrowser.Error("no runnable browser")

        on_manual_url = MagicMock()
        flow = make_flow(free_port, browser_opener=broken_opener, on_manual_url=on_manual_url)

        task = asyncio.create_task(flow.run())
        await wait_for_state(flow, FlowState.AWAITING_CODE)

        assert flow.browser_opened is False
        on_manual_url.assert_called_once()

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    async def test_cancellation_releases_port(self, free_port):
        flow = make_flow(free_port)
        task = asyncio.create_task(flow.run())
        await wait_for_state(flow, FlowState.AWAITING_CODE)
        assert not port_is_free(free_port)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert port_is_free(free_port)

    async def test_flow_is_single_use(self, free_port):
        flow = make_flow(free_port, timeout=0.05)
        with pytest.raises(FlowTimeoutError):
            await flow.run()
        with pytest.raises(RuntimeError):
            await flow.run()


@pytest.mark.asyncio
async def test_authenticate_wrapper(free_port):
    """authenticate() runs a flow and returns the stored record."""
    store = InMemoryTokenStore()

    async def approve_in_browser():
        # Follow the provider's redirect as soon as the listener accepts
        for _ in range(250):
            try:
                return await hit(free_port, params={"code": "abc"})
            except aiohttp.ClientConnectorError:
                await asyncio.sleep(0.02)
        raise AssertionError("callback server never came up")

    with respx.mock:
        respx.post(TOKEN_URL).mock(
            return_value=httpx.Response(200, json={"access_token": "wrapped"})
        )
        urls = []
        record, _ = await asyncio.gather(
            authenticate(
                "client-id",
                "client-secret",
                store=store,
                settings=Settings(),
                port=free_port,
                browser_opener=lambda url: urls.append(url) or True,
                close_delay=0,
            ),
            approve_in_browser(),
        )

    assert record.access_token == "wrapped"
    assert (await store.load()).access_token == "wrapped"
    assert len(urls) == 1
