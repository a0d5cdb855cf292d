import html
import json
from typing import Optional, Sequence

from session_relay.session.cookie_store import SessionCookie, to_bootstrap_script

NO_COOKIES_PAGE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>No cookies configured</title>
</head>
<body>
  <h1>No cookies configured</h1>
  <p>Set the SESSION_COOKIES environment variable and restart the proxy.</p>
</body>
</html>
"""

_BOOTSTRAP_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>Setting up session</title>
</head>
<body>
  <p>Setting up session ({count} cookies), redirecting to <code>{path_label}</code>...</p>
  <script>
{cookie_script}
setTimeout(function () {{
  window.location.href = {redirect_path};
}}, {delay_ms});
  </script>
</body>
</html>
"""


def render_bootstrap_page(
    cookies: Sequence[SessionCookie],
    redirect_path: str,
    delay_ms: int,
    now: Optional[float] = None,
) -> str:
    """One-shot page storing the session cookies in the browser, then entering the app."""
    if not cookies:
        return NO_COOKIES_PAGE
    return _BOOTSTRAP_TEMPLATE.format(
        count=len(cookies),
        path_label=html.escape(redirect_path),
        cookie_script=to_bootstrap_script(cookies, now=now),
        redirect_path=json.dumps(redirect_path).replace("</", "<\\/"),
        delay_ms=int(delay_ms),
    )
