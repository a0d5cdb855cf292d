import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter

from session_relay.bootstrap.route import router as bootstrap_router
from session_relay.config import PROXY_CONFIG
from session_relay.models import HealthStatus
from session_relay.proxy.route import router as proxy_router
from session_relay.session import SESSION_COOKIES

router = APIRouter()
logger = logging.getLogger("uvicorn.error")

STARTED_AT = time.monotonic()


@router.get("/health", response_model=HealthStatus)
async def health():
    return HealthStatus(
        status="ok",
        target=PROXY_CONFIG.upstream_origin,
        hasCookies=len(SESSION_COOKIES) > 0,
        cookieCount=len(SESSION_COOKIES),
        uptime=time.monotonic() - STARTED_AT,
        timestamp=datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z"),
    )


router.include_router(bootstrap_router)
# Catch-all, must stay last
router.include_router(proxy_router)
