"""Per-client request rate limiting using slowapi.

Complements the per-phone OTP limits: those stop one number being
flooded, this stops one client cycling through many numbers.
"""

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from starlette.requests import Request
from starlette.responses import JSONResponse

from speedyvan_verify.config import settings

# In-memory storage under tests (no Redis), Redis otherwise
_storage_uri = (
    "memory://"
    if settings.testing
    else (settings.redis_url if settings.redis_url else "memory://")
)


def get_client_ip(request: Request) -> str:
    """Client IP, honouring X-Forwarded-For / X-Real-IP from the proxy."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        # Leftmost entry is the original client
        return forwarded_for.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


limiter = Limiter(
    key_func=get_client_ip,
    storage_uri=_storage_uri,
    enabled=not settings.testing,
)

# Limits are applied per endpoint with @limiter.limit():
# OTP send: 10/minute
# OTP verify: 20/minute


async def rate_limit_exceeded_handler(
    request: Request, exc: RateLimitExceeded
) -> JSONResponse:
    """Return a 429 JSON response when a client exceeds its limit."""
    return JSONResponse(
        status_code=429,
        content={"detail": f"Rate limit exceeded: {exc.detail}"},
    )
