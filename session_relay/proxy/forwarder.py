import asyncio
import logging
from typing import Dict, Optional

import httpx
from fastapi import Request

from session_relay.config import ProxyConfig
from session_relay.proxy.sanitizer import HOP_BY_HOP_HEADERS
from session_relay.utils import mask_cookie_header
from session_relay.vars import (
    BROWSER_ACCEPT,
    BROWSER_ACCEPT_LANGUAGE,
    BROWSER_USER_AGENT,
)

logger = logging.getLogger("uvicorn.error")

# Headers that would reveal the proxy to the upstream or confuse its host checks
PROXY_REVEALING_HEADERS = {
    "x-forwarded-for",
    "x-forwarded-host",
    "x-forwarded-proto",
    "x-real-ip",
}

# Recomputed for the upstream hop
DROPPED_REQUEST_HEADERS = {"host", "accept-encoding"}

DISCONNECT_POLL_INTERVAL = 0.25


class ClientDisconnected(Exception):
    """The inbound client went away before the upstream answered."""


def get_target_url(request: Request, config: ProxyConfig) -> str:
    """
    Upstream origin + original path and query.

    The path is taken from the raw request target so percent-escapes such as
    %2F and %3F reach the upstream unchanged.
    """
    raw_path = request.scope.get("raw_path")
    if raw_path:
        path = raw_path.decode("latin-1").split("?", 1)[0]
    else:
        path = request.url.path
    path = path or "/"
    if not path.startswith("/"):
        path = "/" + path
    query_string = str(request.url.query)
    if query_string:
        path = f"{path}?{query_string}"
    return f"{config.upstream_origin}{path}"


def prepare_headers(
    request: Request, config: ProxyConfig, cookie_header: str
) -> Dict[str, str]:
    """
    Headers for the upstream request.

    Inbound headers are copied minus hop-by-hop and proxy-revealing ones, then
    the session cookie and a fixed browser identity are applied.
    """
    headers = {}
    for name, value in request.headers.items():
        name_lower = name.lower()
        if name_lower in HOP_BY_HOP_HEADERS:
            continue
        if name_lower in PROXY_REVEALING_HEADERS or name_lower in DROPPED_REQUEST_HEADERS:
            continue
        headers[name_lower] = value

    # Never send an empty Cookie header
    if cookie_header:
        headers["cookie"] = cookie_header

    headers["user-agent"] = BROWSER_USER_AGENT
    headers["accept"] = BROWSER_ACCEPT
    headers["accept-language"] = BROWSER_ACCEPT_LANGUAGE
    headers["referer"] = config.upstream_origin
    headers["origin"] = config.upstream_origin
    logger.debug(f"[Proxy] Upstream cookie: {mask_cookie_header(headers.get('cookie', ''))}")
    return headers


def build_timeout(config: ProxyConfig) -> httpx.Timeout:
    return httpx.Timeout(config.timeout, connect=config.connect_timeout)


async def _wait_for_disconnect(request: Request) -> None:
    while not await request.is_disconnected():
        await asyncio.sleep(DISCONNECT_POLL_INTERVAL)


async def send_upstream(
    request: Request,
    config: ProxyConfig,
    target_url: str,
    headers: Dict[str, str],
    body: Optional[bytes],
) -> httpx.Response:
    """
    Send the request upstream, aborting it if the client disconnects first.

    Raises:
        httpx.HTTPError: transport failure talking to the upstream.
        ClientDisconnected: the client closed the connection while waiting.
    """
    async with httpx.AsyncClient(
        timeout=build_timeout(config),
        follow_redirects=False,  # Redirects are rewritten and handed to the client
    ) as client:
        upstream = asyncio.ensure_future(
            client.request(
                method=request.method,
                url=target_url,
                headers=headers,
                content=body,
            )
        )
        watcher = asyncio.ensure_future(_wait_for_disconnect(request))
        try:
            done, _ = await asyncio.wait(
                {upstream, watcher}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            watcher.cancel()
            if not upstream.done():
                upstream.cancel()
        if upstream not in done:
            try:
                await upstream
            except (asyncio.CancelledError, httpx.HTTPError):
                pass
            raise ClientDisconnected(f"{request.method} {request.url.path}")
        return upstream.result()
