from pydantic import BaseModel


class HealthStatus(BaseModel):
    status: str
    target: str
    hasCookies: bool
    cookieCount: int
    uptime: float
    timestamp: str


class ProxyErrorBody(BaseModel):
    error: str = "Proxy Error"
    message: str
