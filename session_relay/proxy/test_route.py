"""
Tests for the proxy pipeline.

Tests cover:
- Session cookie injection on the upstream request
- Security header stripping and Set-Cookie translation
- Body rewriting and interceptor injection by content type
- Redirect Location rewriting
- Per-request proxy origin derivation
- Upstream failures surfacing as 502
"""

import asyncio
import json
from unittest.mock import AsyncMock, Mock, patch

import httpx
import pytest
from fastapi import Request
from fastapi.testclient import TestClient
from httpx import AsyncClient, ConnectError, ReadTimeout

from session_relay.config import ProxyConfig
from session_relay.proxy.interceptor import INTERCEPTOR_MARKER
from session_relay.proxy.route import forward_to_upstream

UPSTREAM = "https://www.fastmoss.com"
PNG_BYTES = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR https://www.fastmoss.com \xff\x00"


@pytest.fixture
def proxy_config(monkeypatch):
    config = ProxyConfig.create(UPSTREAM)
    monkeypatch.setattr("session_relay.proxy.route.PROXY_CONFIG", config)
    return config


@pytest.fixture
def static_proxy_config(monkeypatch):
    config = ProxyConfig.create(UPSTREAM, proxy_domain="proxy.example.com")
    monkeypatch.setattr("session_relay.proxy.route.PROXY_CONFIG", config)
    return config


@pytest.fixture
def session_cookie(monkeypatch):
    monkeypatch.setattr("session_relay.proxy.route.OUTBOUND_COOKIE_HEADER", "sid=abc")


@pytest.fixture(scope="module")
def test_client():
    from session_relay.server import app

    with TestClient(app) as client:
        yield client


class TestForwardToUpstream:
    @pytest.mark.asyncio
    async def test_session_cookie_sent_upstream(
        self, mock_request, proxy_config, session_cookie
    ):
        mock_request.url.path = "/vi/search"
        mock_request.url.query = "x=1"

        with patch.object(AsyncClient, "request", new_callable=AsyncMock) as mock_client:
            mock_client.return_value = httpx.Response(200, content=b"ok")

            result = await forward_to_upstream(mock_request)

        assert result.status_code == 200
        kwargs = mock_client.call_args.kwargs
        assert kwargs["url"] == f"{UPSTREAM}/vi/search?x=1"
        assert kwargs["headers"]["cookie"] == "sid=abc"

    @pytest.mark.asyncio
    async def test_post_body_forwarded(self, mock_request, proxy_config):
        mock_request.method = "POST"
        mock_request.body = AsyncMock(return_value=b'{"name": "test"}')

        with patch.object(AsyncClient, "request", new_callable=AsyncMock) as mock_client:
            mock_client.return_value = httpx.Response(
                201, headers={"content-type": "application/json"}, content=b'{"id": 1}'
            )

            result = await forward_to_upstream(mock_request)

        assert result.status_code == 201
        assert mock_client.call_args.kwargs["method"] == "POST"
        assert mock_client.call_args.kwargs["content"] == b'{"name": "test"}'

    @pytest.mark.asyncio
    async def test_html_rewritten_and_injected(self, mock_request, static_proxy_config):
        body = b'<head></head><a href="https://www.fastmoss.com/login">Login</a>'

        with patch.object(AsyncClient, "request", new_callable=AsyncMock) as mock_client:
            mock_client.return_value = httpx.Response(
                200, headers={"content-type": "text/html"}, content=body
            )

            result = await forward_to_upstream(mock_request)

        text = result.body.decode()
        assert text.startswith(f'<head><script {INTERCEPTOR_MARKER}="navigation-interceptor">')
        assert '<a href="https://proxy.example.com/login">Login</a>' in text
        assert "https://www.fastmoss.com/login" not in text
        assert int(result.headers["content-length"]) == len(result.body)

    @pytest.mark.asyncio
    async def test_json_rewritten_without_injection(self, mock_request, static_proxy_config):
        body = json.dumps({"next": "https://www.fastmoss.com/vi/home"}).encode()

        with patch.object(AsyncClient, "request", new_callable=AsyncMock) as mock_client:
            mock_client.return_value = httpx.Response(
                200, headers={"content-type": "application/json"}, content=body
            )

            result = await forward_to_upstream(mock_request)

        assert json.loads(result.body) == {"next": "https://proxy.example.com/vi/home"}
        assert INTERCEPTOR_MARKER.encode() not in result.body

    @pytest.mark.asyncio
    async def test_binary_passthrough(self, mock_request, static_proxy_config):
        with patch.object(AsyncClient, "request", new_callable=AsyncMock) as mock_client:
            mock_client.return_value = httpx.Response(
                200, headers={"content-type": "image/png"}, content=PNG_BYTES
            )

            result = await forward_to_upstream(mock_request)

        assert result.body == PNG_BYTES
        assert result.headers["content-type"] == "image/png"

    @pytest.mark.asyncio
    async def test_injection_can_be_disabled(
        self, mock_request, static_proxy_config, monkeypatch
    ):
        monkeypatch.setattr("session_relay.proxy.route.INJECT_NAVIGATION_INTERCEPTOR", False)

        with patch.object(AsyncClient, "request", new_callable=AsyncMock) as mock_client:
            mock_client.return_value = httpx.Response(
                200, headers={"content-type": "text/html"}, content=b"<head></head>"
            )

            result = await forward_to_upstream(mock_request)

        assert result.body == b"<head></head>"

    @pytest.mark.asyncio
    async def test_headers_sanitized(self, mock_request, static_proxy_config):
        upstream = httpx.Response(
            200,
            headers=[
                ("content-type", "text/plain"),
                ("x-frame-options", "SAMEORIGIN"),
                ("content-security-policy", "frame-ancestors 'self'"),
                ("set-cookie", "a=1; Domain=.fastmoss.com; Path=/; Secure"),
                ("set-cookie", "b=2; Path=/; SameSite=None; Secure"),
                ("x-request-id", "r-1"),
            ],
            content=b"plain",
        )

        with patch.object(AsyncClient, "request", new_callable=AsyncMock) as mock_client:
            mock_client.return_value = upstream

            result = await forward_to_upstream(mock_request)

        assert "x-frame-options" not in result.headers
        assert "content-security-policy" not in result.headers
        assert result.headers.getlist("set-cookie") == [
            "a=1; Path=/",
            "b=2; Path=/; SameSite=Lax",
        ]
        assert result.headers["x-request-id"] == "r-1"

    @pytest.mark.asyncio
    async def test_set_cookie_translation_can_be_disabled(
        self, mock_request, static_proxy_config, monkeypatch
    ):
        monkeypatch.setattr("session_relay.proxy.route.TRANSLATE_SET_COOKIES", False)

        with patch.object(AsyncClient, "request", new_callable=AsyncMock) as mock_client:
            mock_client.return_value = httpx.Response(
                200, headers=[("set-cookie", "a=1; Domain=.fastmoss.com; Secure")]
            )

            result = await forward_to_upstream(mock_request)

        assert result.headers.getlist("set-cookie") == ["a=1; Domain=.fastmoss.com; Secure"]

    @pytest.mark.asyncio
    async def test_redirect_location_rewritten(self, mock_request, static_proxy_config):
        with patch.object(AsyncClient, "request", new_callable=AsyncMock) as mock_client:
            mock_client.return_value = httpx.Response(
                302, headers={"location": "https://www.fastmoss.com/vi/login?next=%2F"}
            )

            result = await forward_to_upstream(mock_request)

        assert result.status_code == 302
        assert result.headers["location"] == "https://proxy.example.com/vi/login?next=%2F"

    @pytest.mark.asyncio
    async def test_external_redirect_untouched(self, mock_request, static_proxy_config):
        location = "https://accounts.google.com/o/oauth2/auth"

        with patch.object(AsyncClient, "request", new_callable=AsyncMock) as mock_client:
            mock_client.return_value = httpx.Response(302, headers={"location": location})

            result = await forward_to_upstream(mock_request)

        assert result.headers["location"] == location

    @pytest.mark.asyncio
    async def test_connection_refused_is_502(self, mock_request, proxy_config):
        with patch.object(AsyncClient, "request", new_callable=AsyncMock) as mock_client:
            mock_client.side_effect = ConnectError("Connection refused")

            result = await forward_to_upstream(mock_request)

        assert result.status_code == 502
        assert json.loads(result.body) == {
            "error": "Proxy Error",
            "message": "Connection refused",
        }

    @pytest.mark.asyncio
    async def test_timeout_is_502(self, mock_request, proxy_config):
        with patch.object(AsyncClient, "request", new_callable=AsyncMock) as mock_client:
            mock_client.side_effect = ReadTimeout("")

            result = await forward_to_upstream(mock_request)

        assert result.status_code == 502
        assert json.loads(result.body) == {"error": "Proxy Error", "message": "ReadTimeout"}

    @pytest.mark.asyncio
    async def test_head_keeps_upstream_content_length(self, mock_request, static_proxy_config):
        mock_request.method = "HEAD"

        with patch.object(AsyncClient, "request", new_callable=AsyncMock) as mock_client:
            mock_client.return_value = httpx.Response(
                200, headers={"content-type": "text/html", "content-length": "1234"}
            )

            result = await forward_to_upstream(mock_request)

        assert result.status_code == 200
        assert result.body == b""
        assert result.headers.getlist("content-length") == ["1234"]
        assert result.headers["content-type"] == "text/html"

    @pytest.mark.asyncio
    async def test_proxy_origin_derived_per_request(self, mock_request, proxy_config):
        """Concurrent requests from different hosts each see their own origin."""

        def request_for(host):
            request = Mock(spec=Request)
            request.method = "GET"
            request.url.path = "/"
            request.url.query = ""
            request.url.netloc = host
            request.scope = {"type": "http"}
            request.headers = {"host": host}
            request.body = AsyncMock(return_value=b"")
            request.is_disconnected = AsyncMock(return_value=False)
            return request

        async def slow_upstream(*args, **kwargs):
            await asyncio.sleep(0.01)
            return httpx.Response(
                200,
                headers={"content-type": "text/html"},
                content=b'<a href="https://www.fastmoss.com/x">x</a>',
            )

        hosts = [f"preview-{i}.example.com" for i in range(5)] + ["custom.example.org"]

        with patch.object(AsyncClient, "request", side_effect=slow_upstream):
            results = await asyncio.gather(
                *(forward_to_upstream(request_for(h)) for h in hosts)
            )

        for host, result in zip(hosts, results):
            assert f'href="https://{host}/x"' in result.body.decode()


class TestProxyRoutes:
    """Full application routing through the TestClient."""

    def test_get_with_query_and_cookie(self, test_client, proxy_config, session_cookie):
        with patch.object(AsyncClient, "request", new_callable=AsyncMock) as mock_client:
            mock_client.return_value = httpx.Response(
                200, headers={"content-type": "text/plain"}, content=b"results"
            )

            response = test_client.get("/vi/search?x=1", headers={"x-forwarded-host": "evil"})

        assert response.status_code == 200
        assert response.text == "results"
        kwargs = mock_client.call_args.kwargs
        assert kwargs["url"] == f"{UPSTREAM}/vi/search?x=1"
        assert kwargs["headers"]["cookie"] == "sid=abc"
        assert "x-forwarded-host" not in kwargs["headers"]

    def test_html_uses_request_host(self, test_client, proxy_config):
        with patch.object(AsyncClient, "request", new_callable=AsyncMock) as mock_client:
            mock_client.return_value = httpx.Response(
                200,
                headers={"content-type": "text/html; charset=utf-8"},
                content=b"<html><body><a href='//www.fastmoss.com/vi'>x</a></body></html>",
            )

            response = test_client.get("/", headers={"host": "relay.example.net"})

        assert response.status_code == 200
        assert "<head><script" in response.text
        assert "href='//relay.example.net/vi'" in response.text
        assert "<body><a href='//relay.example.net/vi'>x</a></body>" in response.text

    def test_upstream_unreachable(self, test_client, proxy_config):
        with patch.object(AsyncClient, "request", new_callable=AsyncMock) as mock_client:
            mock_client.side_effect = ConnectError("Connection refused")

            response = test_client.post("/api/submit", json={"a": 1})

        assert response.status_code == 502
        assert response.json() == {"error": "Proxy Error", "message": "Connection refused"}
        assert mock_client.call_count == 1

    def test_png_byte_identical(self, test_client, proxy_config):
        with patch.object(AsyncClient, "request", new_callable=AsyncMock) as mock_client:
            mock_client.return_value = httpx.Response(
                200, headers={"content-type": "image/png"}, content=PNG_BYTES
            )

            response = test_client.get("/static/logo.png")

        assert response.content == PNG_BYTES

    @pytest.mark.parametrize(
        "url, expected",
        [
            ("/vi/a%3Fb?x=1", "/vi/a%3Fb?x=1"),
            ("/files/a%2Fb", "/files/a%2Fb"),
            ("/tag/c%23d", "/tag/c%23d"),
        ],
    )
    def test_percent_encoded_path_forwarded_verbatim(
        self, test_client, proxy_config, url, expected
    ):
        with patch.object(AsyncClient, "request", new_callable=AsyncMock) as mock_client:
            mock_client.return_value = httpx.Response(200, content=b"ok")

            response = test_client.get(url)

        assert response.status_code == 200
        assert mock_client.call_args.kwargs["url"] == f"{UPSTREAM}{expected}"

    def test_malformed_host_not_reflected(self, test_client, proxy_config):
        with patch.object(AsyncClient, "request", new_callable=AsyncMock) as mock_client:
            mock_client.return_value = httpx.Response(
                302,
                headers={
                    "content-type": "text/html",
                    "location": "https://www.fastmoss.com/vi/login",
                },
                content=b'<head></head><a href="https://www.fastmoss.com/x">x</a>',
            )

            response = test_client.get(
                "/", headers={"host": 'evil"><img src=x onerror=alert(1)>'},
                follow_redirects=False,
            )

        assert response.status_code == 302
        assert "onerror" not in response.text
        assert "<img" not in response.text
        assert "onerror" not in response.headers["location"]
        assert response.headers["location"].endswith("/vi/login")
