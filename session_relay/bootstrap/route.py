import logging

from fastapi import APIRouter, HTTPException
from fastapi.responses import HTMLResponse

from session_relay.bootstrap.page import render_bootstrap_page
from session_relay.session import SESSION_COOKIES
from session_relay.vars import (
    BOOTSTRAP_REDIRECT_DELAY_MS,
    BOOTSTRAP_REDIRECT_PATH,
    ENABLE_COOKIE_BOOTSTRAP,
)

router = APIRouter()
logger = logging.getLogger("uvicorn.error")


@router.get("/inject-cookies", response_class=HTMLResponse)
async def inject_cookies():
    """Serve the cookie bootstrap page."""
    if not ENABLE_COOKIE_BOOTSTRAP:
        raise HTTPException(status_code=404, detail="Cookie bootstrap is disabled")
    if not SESSION_COOKIES:
        logger.warning("[Bootstrap] Requested but no cookies are configured")
    else:
        logger.info(f"[Bootstrap] Serving {len(SESSION_COOKIES)} cookies")
    content = render_bootstrap_page(
        SESSION_COOKIES, BOOTSTRAP_REDIRECT_PATH, BOOTSTRAP_REDIRECT_DELAY_MS
    )
    return HTMLResponse(content=content, media_type="text/html")
