# Ensure tests import the service package from this directory and see a
# predictable configuration: module-level settings are read at import time.
import os
import sys
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi import Request

SERVICE_ROOT = os.path.dirname(__file__)
if SERVICE_ROOT not in sys.path:
    sys.path.insert(0, SERVICE_ROOT)

os.environ.setdefault("UPSTREAM_URL", "https://www.fastmoss.com")
os.environ.setdefault("SESSION_COOKIES", "[]")
os.environ.pop("PROXY_DOMAIN", None)
os.environ.pop("OTLP_ENDPOINT", None)


@pytest.fixture
def mock_request():
    """Create a mock FastAPI Request object."""
    request = Mock(spec=Request)
    request.method = "GET"
    request.url.path = "/vi/search"
    request.url.query = ""
    request.url.scheme = "https"
    request.url.netloc = "proxy.example.com"
    request.headers = {"host": "proxy.example.com", "user-agent": "test-agent"}
    request.client.host = "192.168.1.100"
    request.scope = {"type": "http"}
    request.body = AsyncMock(return_value=b"")
    request.is_disconnected = AsyncMock(return_value=False)
    return request
