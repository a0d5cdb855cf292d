"""
Pre-captured session cookies.

The cookie set is supplied as a JSON array of records as exported by browser
cookie editors (``[{"name": ..., "value": ..., "expirationDate": ...}, ...]``).
It is loaded once at startup and never written back.
"""

import json
import logging
import time
from dataclasses import dataclass
from email.utils import formatdate
from typing import Optional, Sequence, Tuple

from session_relay.json.schema_validation import schema_errors
from session_relay.utils import mask_cookie_header

logger = logging.getLogger("uvicorn.error")

DEFAULT_COOKIE_LIFETIME_SECONDS = 15 * 24 * 60 * 60

SESSION_COOKIES_SCHEMA = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "name": {"type": ["string", "null"]},
            "value": {"type": ["string", "null"]},
            "expirationDate": {"type": ["number", "null"]},
        },
    },
}


class SessionConfigError(ValueError):
    """Raised when the configured cookie collection is not usable."""


@dataclass(frozen=True)
class SessionCookie:
    name: str
    value: str
    expires_at: Optional[float] = None


SessionCookieSet = Tuple[SessionCookie, ...]


def parse_session_cookies(raw: str) -> SessionCookieSet:
    """
    Strictly parse a serialized cookie collection.

    Entries without a name or a value are dropped; order is preserved.

    Raises:
        SessionConfigError: raw is not JSON or does not match the schema.
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise SessionConfigError(f"Cookie configuration is not valid JSON: {e}")

    errors = schema_errors(SESSION_COOKIES_SCHEMA, data)
    if errors:
        raise SessionConfigError(
            "Cookie configuration does not match schema: " + "; ".join(errors)
        )

    cookies = []
    for entry in data:
        name = entry.get("name")
        value = entry.get("value")
        if not name or not value:
            continue
        cookies.append(
            SessionCookie(name=name, value=value, expires_at=entry.get("expirationDate"))
        )
    return tuple(cookies)


def load_session_cookies(raw: Optional[str]) -> SessionCookieSet:
    """
    Best-effort variant of parse_session_cookies used at startup.
    A missing or malformed configuration yields an empty set and a warning.
    """
    if not raw or not raw.strip():
        logger.warning("[Cookies] No cookies configured!")
        return ()
    try:
        cookies = parse_session_cookies(raw)
    except SessionConfigError as e:
        logger.warning(f"[Cookies] Failed to parse cookies: {e}")
        return ()
    if not cookies:
        logger.warning("[Cookies] No cookies configured!")
    else:
        logger.info(
            f"[Cookies] Loaded {len(cookies)} cookies: "
            f"{mask_cookie_header(to_header_string(cookies))}"
        )
    return cookies


def to_header_string(cookies: Sequence[SessionCookie]) -> str:
    return "; ".join(f"{c.name}={c.value}" for c in cookies)


def _cookie_expiry(cookie: SessionCookie, now: float) -> str:
    expires_at = cookie.expires_at
    if expires_at is None:
        expires_at = now + DEFAULT_COOKIE_LIFETIME_SECONDS
    return formatdate(expires_at, usegmt=True)


def _js_string(value: str) -> str:
    # json.dumps yields a valid JS string literal; "</" must not close the script
    return json.dumps(value).replace("</", "<\\/")


def to_bootstrap_script(
    cookies: Sequence[SessionCookie], now: Optional[float] = None
) -> str:
    """
    Client-side statements that store each cookie in the browser's jar.

    Cookies get path=/, their own expiry (or a 15 day default) and
    SameSite=Lax so they survive the top-level navigation that follows.
    """
    if now is None:
        now = time.time()
    lines = []
    for cookie in cookies:
        attributes = (
            f"{cookie.name}={cookie.value}; path=/; "
            f"expires={_cookie_expiry(cookie, now)}; SameSite=Lax"
        )
        lines.append(f"document.cookie = {_js_string(attributes)};")
    return "\n".join(lines)
