"""
Client-side navigation interceptor for proxied HTML pages.

The script keeps the upstream app's own navigation on the proxy origin. It is
advisory: each override is attempted independently and may be refused by the
browser, so the document-wide click handler stays in place as a fallback.
"""

import json
import logging
import re
from typing import Iterable

from session_relay.utils.exception_logging import log_exception_with_details

logger = logging.getLogger("uvicorn.error")

INTERCEPTOR_MARKER = "data-session-relay"

_HEAD_OPEN = re.compile(r"<head(?=[\s>/])[^>]*>", re.IGNORECASE)
_HTML_OPEN = re.compile(r"<html(?=[\s>])[^>]*>", re.IGNORECASE)

_SCRIPT_TEMPLATE = """<script {marker}="navigation-interceptor">
(function () {{
  "use strict";
  var PROXY_ORIGIN = {proxy_origin};
  var UPSTREAM_HOSTS = {upstream_hosts};

  function toProxy(url) {{
    if (url === undefined || url === null) return url;
    var raw = String(url);
    var parsed;
    try {{
      parsed = new URL(raw, window.location.href);
    }} catch (e) {{
      return url;
    }}
    if (UPSTREAM_HOSTS.indexOf(parsed.hostname.toLowerCase()) === -1) return url;
    return PROXY_ORIGIN + parsed.pathname + parsed.search + parsed.hash;
  }}

  function warn(what, error) {{
    if (window.console && console.warn) console.warn("[session-relay] " + what + " override failed", error);
  }}

  function install(target, name, wrapper, label) {{
    try {{
      target[name] = wrapper;
    }} catch (e) {{
      warn(label, e);
      return;
    }}
    if (target[name] !== wrapper) warn(label, "assignment ignored");
  }}

  ["assign", "replace"].forEach(function (method) {{
    var original;
    try {{
      original = window.location[method].bind(window.location);
    }} catch (e) {{
      warn("location." + method, e);
      return;
    }}
    install(window.location, method, function (url) {{
      return original(toProxy(url));
    }}, "location." + method);
  }});

  try {{
    var descriptor = Object.getOwnPropertyDescriptor(window.location, "href") ||
      (window.Location && Object.getOwnPropertyDescriptor(window.Location.prototype, "href"));
    if (!descriptor || !descriptor.set) {{
      warn("location.href", "no href setter");
    }} else {{
      var setHref = function (url) {{
        descriptor.set.call(window.location, toProxy(url));
      }};
      Object.defineProperty(window.location, "href", {{
        configurable: true,
        enumerable: descriptor.enumerable,
        get: descriptor.get,
        set: setHref
      }});
      var installed = Object.getOwnPropertyDescriptor(window.location, "href");
      if (!installed || installed.set !== setHref) warn("location.href", "setter not installed");
    }}
  }} catch (e) {{
    warn("location.href", e);
  }}

  var originalOpen = window.open;
  install(window, "open", function (url) {{
    var args = Array.prototype.slice.call(arguments);
    args[0] = toProxy(url);
    return originalOpen.apply(window, args);
  }}, "window.open");

  document.addEventListener("click", function (event) {{
    var node = event.target;
    while (node && !(node.tagName && node.tagName.toUpperCase() === "A")) {{
      node = node.parentNode;
    }}
    if (!node || !node.href) return;
    var rewritten = toProxy(node.href);
    if (rewritten !== node.href) node.setAttribute("href", rewritten);
  }}, true);
}})();
</script>"""


def _js_literal(value) -> str:
    return json.dumps(value).replace("</", "<\\/")


def build_interceptor_script(proxy_origin: str, upstream_hosts: Iterable[str]) -> str:
    return _SCRIPT_TEMPLATE.format(
        marker=INTERCEPTOR_MARKER,
        proxy_origin=_js_literal(proxy_origin),
        upstream_hosts=_js_literal(sorted(h.lower() for h in upstream_hosts)),
    )


def inject_script(html: str, script: str) -> str:
    """
    Insert script right after the opening head tag.

    Falls back to a synthesized head after <html>, then to prepending.
    """
    match = _HEAD_OPEN.search(html)
    if match:
        return html[: match.end()] + script + html[match.end():]
    match = _HTML_OPEN.search(html)
    if match:
        return html[: match.end()] + "<head>" + script + "</head>" + html[match.end():]
    return script + html


def inject_interceptor(body: bytes, charset: str, script: str) -> bytes:
    """Byte-level wrapper around inject_script; never fails the response."""
    try:
        html = body.decode(charset)
    except (UnicodeDecodeError, LookupError):
        logger.debug(f"[Inject] Body not decodable as {charset}, skipping injection")
        return body
    try:
        return inject_script(html, script).encode(charset)
    except Exception as e:
        log_exception_with_details(logger, "[Inject] Interceptor injection failed", e)
        return body
