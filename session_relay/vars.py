import os

SERVICE_NAME = os.getenv("SERVICE_NAME", "session-relay-proxy")
HOST = os.environ.get("HOSTNAME", "0.0.0.0")
PORT = int(os.environ.get("PORT", "3000"))


def _env_flag(name: str, default: str = "true") -> bool:
    return os.environ.get(name, default).lower() == "true"


def _env_list(name: str) -> list:
    return [v.strip() for v in os.environ.get(name, "").split(",") if v.strip()]


# Upstream
UPSTREAM_URL = os.environ.get("UPSTREAM_URL", "https://www.fastmoss.com").rstrip("/")
UPSTREAM_HOST_ALIASES = _env_list("UPSTREAM_HOST_ALIASES")
PROXY_TIMEOUT = float(os.environ.get("PROXY_TIMEOUT", "60"))
PROXY_CONNECT_TIMEOUT = float(os.environ.get("PROXY_CONNECT_TIMEOUT", "10"))

# Proxy origin; empty PROXY_DOMAIN means the Host header of each request is used
PROXY_DOMAIN = os.environ.get("PROXY_DOMAIN", "").strip().rstrip("/")
PROXY_SCHEME = os.environ.get("PROXY_SCHEME", "https").lower()

# Pre-captured session (JSON array as exported by cookie editor extensions)
SESSION_COOKIES = os.environ.get("SESSION_COOKIES", "[]")

# Browser identity presented to the upstream
BROWSER_USER_AGENT = os.environ.get(
    "BROWSER_USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
)
BROWSER_ACCEPT = os.environ.get(
    "BROWSER_ACCEPT",
    "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
)
BROWSER_ACCEPT_LANGUAGE = os.environ.get(
    "BROWSER_ACCEPT_LANGUAGE", "vi-VN,vi;q=0.9,en;q=0.8"
)

# Response rewriting
REWRITE_HTML_URLS = _env_flag("REWRITE_HTML_URLS")
REWRITE_CSS_URLS = _env_flag("REWRITE_CSS_URLS")
REWRITE_JS_URLS = _env_flag("REWRITE_JS_URLS")
REWRITE_JSON_URLS = _env_flag("REWRITE_JSON_URLS")
INJECT_NAVIGATION_INTERCEPTOR = _env_flag("INJECT_NAVIGATION_INTERCEPTOR")
TRANSLATE_SET_COOKIES = _env_flag("TRANSLATE_SET_COOKIES")

# Cookie bootstrap page
ENABLE_COOKIE_BOOTSTRAP = _env_flag("ENABLE_COOKIE_BOOTSTRAP")
BOOTSTRAP_REDIRECT_PATH = os.environ.get("BOOTSTRAP_REDIRECT_PATH", "/vi/dashboard")
BOOTSTRAP_REDIRECT_DELAY_MS = int(os.environ.get("BOOTSTRAP_REDIRECT_DELAY_MS", "1000"))

METRICS_PATH = os.environ.get("METRICS_PATH", "/metrics")
OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT")
OTLP_HEADERS = os.getenv("OTLP_HEADERS", "")
