import logging

import httpx
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, Response
from opentelemetry import trace

from session_relay.config import (
    PROXY_CONFIG,
    ProxyConfig,
    effective_proxy_host,
    effective_proxy_origin,
)
from session_relay.models import ProxyErrorBody
from session_relay.proxy.forwarder import (
    ClientDisconnected,
    get_target_url,
    prepare_headers,
    send_upstream,
)
from session_relay.proxy.interceptor import build_interceptor_script, inject_interceptor
from session_relay.proxy.rewriter import (
    RewriteRuleSet,
    build_rewrite_rules,
    charset_of,
    content_family,
    rewrite_content,
    rewrite_text,
)
from session_relay.proxy.sanitizer import sanitize_response_headers
from session_relay.session import OUTBOUND_COOKIE_HEADER
from session_relay.utils.exception_logging import (
    format_exception_message,
    log_exception_with_details,
)
from session_relay.vars import INJECT_NAVIGATION_INTERCEPTOR, TRANSLATE_SET_COOKIES

router = APIRouter()
tracer = trace.get_tracer(__name__)
logger = logging.getLogger("uvicorn.error")

# Status recorded when the client left before the upstream answered
CLIENT_CLOSED_REQUEST = 499


def proxy_error_response(exception: Exception) -> JSONResponse:
    body = ProxyErrorBody(message=format_exception_message(exception))
    return JSONResponse(status_code=502, content=body.model_dump())


def build_client_response(
    upstream: httpx.Response,
    rules: RewriteRuleSet,
    proxy_origin: str,
    config: ProxyConfig,
    method: str = "GET",
) -> Response:
    """
    Turn the upstream response into the client response.

    Headers are sanitized, redirects re-pointed at the proxy, textual bodies
    rewritten and HTML pages given the navigation interceptor. HEAD responses
    carry no body, so the upstream Content-Length is passed on as is.
    """
    headers = []
    for name, value in sanitize_response_headers(
        upstream.headers.multi_items(), translate_cookies=TRANSLATE_SET_COOKIES
    ):
        if name == "location":
            value = rewrite_text(value, rules)
        headers.append((name, value))

    if method.upper() == "HEAD":
        response = Response(status_code=upstream.status_code)
        for name, value in headers:
            response.headers.append(name, value)
        content_length = upstream.headers.get("content-length")
        if content_length is not None:
            response.headers["content-length"] = content_length
        return response

    content_type = upstream.headers.get("content-type", "")
    body = rewrite_content(upstream.content, content_type, rules)

    if INJECT_NAVIGATION_INTERCEPTOR and content_family(content_type) == "html":
        script = build_interceptor_script(proxy_origin, config.matched_hosts)
        body = inject_interceptor(body, charset_of(content_type), script)

    response = Response(content=body, status_code=upstream.status_code)
    for name, value in headers:
        response.headers.append(name, value)
    return response


async def forward_to_upstream(request: Request) -> Response:
    """
    Forward an inbound request to the upstream origin with the session applied.

    Transport failures become a 502 with a JSON body; nothing is retried.
    """
    config = PROXY_CONFIG
    with tracer.start_as_current_span("proxy_request") as span:
        target_url = get_target_url(request, config)
        span.set_attribute("proxy.target_url", target_url)
        span.set_attribute("proxy.method", request.method)

        path = request.url.path
        logger.info(
            f"[Proxy] {request.method} {path}",
            extra={"method": request.method, "path": path},
        )

        headers = prepare_headers(request, config, OUTBOUND_COOKIE_HEADER)
        body = await request.body()

        try:
            upstream = await send_upstream(request, config, target_url, headers, body)
        except ClientDisconnected:
            logger.info(f"[Proxy] Client disconnected, aborted {request.method} {path}")
            span.set_attribute("proxy.error", "client_disconnected")
            return Response(status_code=CLIENT_CLOSED_REQUEST)
        except httpx.HTTPError as e:
            log_exception_with_details(logger, "[Proxy] Error:", e)
            span.set_attribute("proxy.error", type(e).__name__)
            return proxy_error_response(e)

        span.set_attribute("proxy.status_code", upstream.status_code)
        logger.info(f"[Proxy] Response {upstream.status_code} for {path}")

        # Request scoped; never stored beyond this response
        proxy_host = effective_proxy_host(request, config)
        rules = build_rewrite_rules(config, proxy_host)
        proxy_origin = effective_proxy_origin(request, config)

        response = build_client_response(
            upstream, rules, proxy_origin, config, method=request.method
        )
        span.set_attribute("proxy.rewritten", response.body != upstream.content)
        return response


# Register catch-all route for proxying
@router.api_route(
    "/{path:path}",
    methods=["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"],
)
async def proxy_all(request: Request, path: str):
    """Catch-all route that proxies all requests to the upstream."""
    return await forward_to_upstream(request)
