from session_relay.vars import SESSION_COOKIES as SESSION_COOKIES_JSON

from .cookie_store import (
    SessionConfigError,
    SessionCookie,
    SessionCookieSet,
    load_session_cookies,
    parse_session_cookies,
    to_bootstrap_script,
    to_header_string,
)

SESSION_COOKIES: SessionCookieSet = load_session_cookies(SESSION_COOKIES_JSON)
OUTBOUND_COOKIE_HEADER: str = to_header_string(SESSION_COOKIES)

__all__ = [
    "SessionConfigError",
    "SessionCookie",
    "SessionCookieSet",
    "load_session_cookies",
    "parse_session_cookies",
    "to_bootstrap_script",
    "to_header_string",
    "SESSION_COOKIES",
    "OUTBOUND_COOKIE_HEADER",
]
