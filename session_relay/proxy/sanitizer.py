"""
Upstream response header handling.

Framing and CSP headers are dropped on purpose: the proxy exists so the
upstream app can be embedded in a frame the operator controls, and the
operator also controls the script injected into every HTML page.
"""

import logging
import re
from typing import Iterable, List, Tuple

from session_relay.utils.exception_logging import log_exception_with_details

logger = logging.getLogger("uvicorn.error")

# Hop-by-hop headers that should NOT be forwarded (RFC 2616)
HOP_BY_HOP_HEADERS = {
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "te",
    "trailers",
    "transfer-encoding",
    "upgrade",
}

EMBEDDING_BLOCKING_HEADERS = {"x-frame-options", "content-security-policy"}

# Bodies are returned decoded and re-measured
BODY_FRAMING_HEADERS = {"content-encoding", "content-length"}

_DOMAIN_ATTRIBUTE = re.compile(r";\s*domain=[^;]*", re.IGNORECASE)
_SECURE_ATTRIBUTE = re.compile(r";\s*secure\s*(?=;|$)", re.IGNORECASE)
_SAMESITE_NONE = re.compile(r"(;\s*samesite\s*=\s*)none(?=\s*(?:;|$))", re.IGNORECASE)


def translate_set_cookie(set_cookie: str) -> str:
    """
    Re-home an upstream Set-Cookie value on the proxy's own host.

    In order: drop Domain, drop Secure, downgrade SameSite=None to Lax.
    Every other attribute is kept verbatim.
    """
    try:
        value = _DOMAIN_ATTRIBUTE.sub("", set_cookie)
        value = _SECURE_ATTRIBUTE.sub("", value)
        return _SAMESITE_NONE.sub(lambda m: f"{m.group(1)}Lax", value)
    except Exception as e:
        log_exception_with_details(logger, "[Cookies] Set-Cookie translation failed", e)
        return set_cookie


def sanitize_response_headers(
    headers: Iterable[Tuple[str, str]], translate_cookies: bool = True
) -> List[Tuple[str, str]]:
    """
    Filter upstream response headers for the client.

    Accepts (name, value) pairs so repeated headers such as Set-Cookie survive.
    """
    sanitized = []
    for name, value in headers:
        name_lower = name.lower()
        if name_lower in HOP_BY_HOP_HEADERS:
            continue
        if name_lower in EMBEDDING_BLOCKING_HEADERS:
            continue
        if name_lower in BODY_FRAMING_HEADERS:
            continue
        if name_lower == "set-cookie" and translate_cookies:
            value = translate_set_cookie(value)
        sanitized.append((name_lower, value))
    return sanitized
