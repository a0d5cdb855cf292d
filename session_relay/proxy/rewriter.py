"""
Textual rewriting of upstream origin references in response bodies.

Substitution is pattern based on the raw text, not HTML/JS/CSS aware.
Strings that merely contain the upstream host may be over-matched and hosts
the upstream builds at runtime are not seen at all; both are accepted.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional, Tuple

from session_relay.config import ProxyConfig
from session_relay.utils.exception_logging import log_exception_with_details
from session_relay.vars import (
    REWRITE_CSS_URLS,
    REWRITE_HTML_URLS,
    REWRITE_JS_URLS,
    REWRITE_JSON_URLS,
)

logger = logging.getLogger("uvicorn.error")

# A host match must not continue into a longer host name
_HOST_END = r"(?![\w-]|\.[\w-])"

_CHARSET = re.compile(r"charset\s*=\s*[\"']?([\w.:-]+)", re.IGNORECASE)


@dataclass(frozen=True)
class RewriteRule:
    pattern: re.Pattern
    replacement: str

    def apply(self, text: str) -> str:
        return self.pattern.sub(lambda _match: self.replacement, text)


@dataclass(frozen=True)
class RewriteRuleSet:
    """Ordered substitutions for one effective proxy host."""

    rules: Tuple[RewriteRule, ...]

    def apply(self, text: str) -> str:
        for rule in self.rules:
            text = rule.apply(text)
        return text


def build_rewrite_rules(
    config: ProxyConfig, proxy_host: str, scheme: Optional[str] = None
) -> RewriteRuleSet:
    """
    Build the rule set mapping every upstream alias onto proxy_host.

    Built per request: proxy_host may differ between requests.
    Rules run absolute forms first so looser forms never see an already
    rewritten URL.
    """
    scheme = scheme or config.proxy_scheme
    absolute, escaped, relative, quoted = [], [], [], []
    for host in config.bare_hosts:
        host_pattern = r"(?:www\.)?" + re.escape(host) + _HOST_END
        absolute.append(
            RewriteRule(
                re.compile(r"https?://" + host_pattern, re.IGNORECASE),
                f"{scheme}://{proxy_host}",
            )
        )
        escaped.append(
            RewriteRule(
                re.compile(r"https?:\\/\\/" + host_pattern, re.IGNORECASE),
                f"{scheme}:\\/\\/{proxy_host}",
            )
        )
        relative.append(
            RewriteRule(re.compile(r"//" + host_pattern, re.IGNORECASE), f"//{proxy_host}")
        )
        for quote in ('"', "'", "`"):
            quoted.append(
                RewriteRule(
                    re.compile(
                        re.escape(quote) + r"(?:www\.)?" + re.escape(host) + re.escape(quote),
                        re.IGNORECASE,
                    ),
                    f"{quote}{proxy_host}{quote}",
                )
            )
    return RewriteRuleSet(rules=tuple(absolute + escaped + relative + quoted))


def content_family(content_type: str) -> Optional[str]:
    """Map a Content-Type to html/css/js/json, or None for untouched types."""
    if not content_type:
        return None
    media_type = content_type.split(";", 1)[0].strip().lower()
    if media_type in ("text/html", "application/xhtml+xml"):
        return "html"
    if media_type == "text/css":
        return "css"
    if "javascript" in media_type or "ecmascript" in media_type:
        return "js"
    if media_type == "application/json" or media_type.endswith("+json"):
        return "json"
    return None


def should_rewrite(content_type: str) -> bool:
    family = content_family(content_type)
    return (
        (family == "html" and REWRITE_HTML_URLS)
        or (family == "css" and REWRITE_CSS_URLS)
        or (family == "js" and REWRITE_JS_URLS)
        or (family == "json" and REWRITE_JSON_URLS)
    )


def charset_of(content_type: str) -> str:
    match = _CHARSET.search(content_type or "")
    return match.group(1) if match else "utf-8"


def rewrite_text(text: str, rules: RewriteRuleSet) -> str:
    return rules.apply(text)


def rewrite_content(body: bytes, content_type: str, rules: RewriteRuleSet) -> bytes:
    """
    Rewrite upstream origin references in a textual body.

    Binary or unrecognized types, undecodable bodies and any failure during
    rewriting return the body untouched.
    """
    if not body or not should_rewrite(content_type):
        return body
    charset = charset_of(content_type)
    try:
        text = body.decode(charset)
    except (UnicodeDecodeError, LookupError):
        logger.debug(f"[Rewrite] Body not decodable as {charset}, passing through")
        return body
    try:
        return rewrite_text(text, rules).encode(charset)
    except Exception as e:
        log_exception_with_details(logger, "[Rewrite] Content rewrite failed", e)
        return body
