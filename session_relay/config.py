import logging
import re
from dataclasses import dataclass, field
from typing import FrozenSet, Optional, Tuple
from urllib.parse import urlparse

from fastapi import Request

from session_relay.vars import (
    PROXY_CONNECT_TIMEOUT,
    PROXY_DOMAIN,
    PROXY_SCHEME,
    PROXY_TIMEOUT,
    UPSTREAM_HOST_ALIASES,
    UPSTREAM_URL,
)

logger = logging.getLogger("uvicorn.error")


# host[:port] as it may appear in a Host header; bracketed form for IPv6
_HOST_PORT = re.compile(
    r"(?:[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?(?:\.[A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?)*"
    r"|\[[0-9A-Fa-f:.]+\])(?::\d{1,5})?"
)


def is_valid_host(value: Optional[str]) -> bool:
    return bool(value) and _HOST_PORT.fullmatch(value) is not None


def _normalize_proxy_domain(value: Optional[str]) -> Optional[str]:
    """Accept either a bare host or an origin; keep only host[:port]."""
    if not value:
        return None
    value = value.strip()
    if "://" in value:
        value = urlparse(value).netloc
    value = value.split("/", 1)[0]
    return value or None


def _bare_host(host: str) -> str:
    return host[4:] if host.startswith("www.") else host


@dataclass(frozen=True)
class ProxyConfig:
    """Startup parameters shared read-only by every request handler."""

    upstream_origin: str
    upstream_host: str
    upstream_host_aliases: FrozenSet[str] = field(default_factory=frozenset)
    proxy_domain: Optional[str] = None
    proxy_scheme: str = "https"
    timeout: float = 60.0
    connect_timeout: float = 10.0

    @classmethod
    def create(
        cls,
        upstream_origin: str,
        aliases: Tuple[str, ...] = (),
        proxy_domain: Optional[str] = None,
        proxy_scheme: str = "https",
        timeout: float = 60.0,
        connect_timeout: float = 10.0,
    ) -> "ProxyConfig":
        upstream_origin = upstream_origin.rstrip("/")
        host = (urlparse(upstream_origin).hostname or "").lower()
        if not host:
            raise ValueError(f"Upstream origin has no host: {upstream_origin!r}")
        names = {_bare_host(host)}
        names.update(_bare_host(a.strip().lower()) for a in aliases if a.strip())
        return cls(
            upstream_origin=upstream_origin,
            upstream_host=host,
            upstream_host_aliases=frozenset(names),
            proxy_domain=_normalize_proxy_domain(proxy_domain),
            proxy_scheme=proxy_scheme,
            timeout=timeout,
            connect_timeout=connect_timeout,
        )

    @classmethod
    def from_env(cls) -> "ProxyConfig":
        return cls.create(
            UPSTREAM_URL,
            aliases=tuple(UPSTREAM_HOST_ALIASES),
            proxy_domain=PROXY_DOMAIN,
            proxy_scheme=PROXY_SCHEME,
            timeout=PROXY_TIMEOUT,
            connect_timeout=PROXY_CONNECT_TIMEOUT,
        )

    @property
    def bare_hosts(self) -> Tuple[str, ...]:
        """Upstream host names without a leading ``www.``, longest first."""
        return tuple(sorted(self.upstream_host_aliases, key=lambda h: (-len(h), h)))

    @property
    def matched_hosts(self) -> Tuple[str, ...]:
        """Every host name a client-side URL may carry for the upstream."""
        hosts = set()
        for host in self.upstream_host_aliases:
            hosts.add(host)
            hosts.add(f"www.{host}")
        return tuple(sorted(hosts))


def _server_host(request: Request) -> Optional[str]:
    server = request.scope.get("server")
    if not server:
        return None
    host, port = server[0], server[1]
    if ":" in host and not host.startswith("["):
        host = f"[{host}]"
    return host if port is None else f"{host}:{port}"


def effective_proxy_host(request: Request, config: ProxyConfig) -> str:
    """
    Host under which the client reached the proxy.

    Derived from the current request on every call unless a static
    PROXY_DOMAIN is configured. Request-supplied values that are not a plain
    host[:port] are ignored, so they never end up in rewritten content.
    """
    if config.proxy_domain:
        return config.proxy_domain
    candidates = (
        request.headers.get("host", ""),
        request.url.netloc,
        _server_host(request),
    )
    for candidate in candidates:
        if is_valid_host(candidate):
            return candidate
    logger.warning("[Proxy] No usable Host for this request, falling back to localhost")
    return "localhost"


def effective_proxy_origin(request: Request, config: ProxyConfig) -> str:
    return f"{config.proxy_scheme}://{effective_proxy_host(request, config)}"


PROXY_CONFIG = ProxyConfig.from_env()
