import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import Info
from prometheus_fastapi_instrumentator import Instrumentator

from session_relay.config import PROXY_CONFIG
from session_relay.session import SESSION_COOKIES
from session_relay.vars import (
    ENABLE_COOKIE_BOOTSTRAP,
    METRICS_PATH,
    OTLP_ENDPOINT,
    OTLP_HEADERS,
    PORT,
    SERVICE_NAME,
)

from .routes import router

logger = logging.getLogger("uvicorn.error")


def log_startup_banner() -> None:
    proxy_origin = PROXY_CONFIG.proxy_domain or "<derived from Host header>"
    cookies = f"Loaded ({len(SESSION_COOKIES)})" if SESSION_COOKIES else "Not configured"
    lines = [
        f"[Server] {SERVICE_NAME} listening on port {PORT}",
        f"[Server] Target: {PROXY_CONFIG.upstream_origin}",
        f"[Server] Proxy origin: {proxy_origin}",
        f"[Server] Cookies: {cookies}",
        "[Server] Endpoints:",
        "[Server]   GET /health         - Health check",
    ]
    if ENABLE_COOKIE_BOOTSTRAP:
        lines.append("[Server]   GET /inject-cookies - Cookie bootstrap page")
    lines.append(f"[Server]   GET {METRICS_PATH:<15}- Prometheus metrics")
    lines.append("[Server]   /*                  - Proxy to upstream")
    for line in lines:
        logger.info(line)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    log_startup_banner()
    yield


app = FastAPI(lifespan=lifespan)
instrumentator = Instrumentator()

instrumentator.instrument(app).expose(app, endpoint=METRICS_PATH)


trace.set_tracer_provider(
    TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME}))
)
tracer_provider = trace.get_tracer_provider()
if OTLP_ENDPOINT:
    otlp_exporter = OTLPSpanExporter(
        endpoint=OTLP_ENDPOINT,
        headers=OTLP_HEADERS or None,
    )
    tracer_provider.add_span_processor(BatchSpanProcessor(otlp_exporter))

FastAPIInstrumentor.instrument_app(
    app,
    excluded_urls="health",
    server_request_hook=None,
    client_request_hook=None,
)

# Add app_name to the metrics
app_info = Info("fastapi_app_info", "Application Info")
app_info.info({"app_name": SERVICE_NAME})

app.include_router(router)
