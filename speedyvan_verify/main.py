"""Speedy Van verification API application."""

from contextlib import asynccontextmanager
from typing import Any

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded

from speedyvan_verify import __version__
from speedyvan_verify.config import settings
from speedyvan_verify.database import close_database
from speedyvan_verify.logging_config import get_logger, setup_logging
from speedyvan_verify.middleware import CorrelationIdMiddleware
from speedyvan_verify.middleware.rate_limit import (
    limiter,
    rate_limit_exceeded_handler,
)
from speedyvan_verify.routers import health, otp, sms
from speedyvan_verify.services.otp import OtpPolicy
from speedyvan_verify.services.scheduler import start_scheduler, stop_scheduler
from speedyvan_verify.services.sms import SmsDispatcher

setup_logging(
    log_format=settings.log_format,
    log_level=settings.log_level,
    service_name=settings.service_name,
)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build shared clients and the scheduler; tear them down on exit."""
    # Fails fast on an out-of-range OTP configuration
    policy = OtpPolicy.from_settings(settings)

    http_client = httpx.AsyncClient(timeout=settings.sms_timeout_seconds)
    app.state.sms_dispatcher = SmsDispatcher.from_settings(
        settings, client=http_client
    )
    if not app.state.sms_dispatcher.configured:
        logger.warning("SMS gateway credentials not set; OTP delivery disabled")

    if not settings.testing:
        start_scheduler()

    logger.info(
        "Speedy Van verification API started",
        otp_ttl_min=policy.ttl_min,
        otp_max_attempts=policy.max_attempts,
    )

    yield

    logger.info("Shutting down Speedy Van verification API...")
    stop_scheduler()
    await http_client.aclose()
    await close_database()
    logger.info("Shutdown complete")


app = FastAPI(
    title="Speedy Van Verify API",
    description="Phone verification codes and SMS notifications",
    version=__version__,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

# Middleware (order matters: first added = last executed)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIdMiddleware)

app.include_router(health.router)
app.include_router(otp.router)
app.include_router(sms.router)


@app.get("/")
async def root() -> dict[str, Any]:
    """Root endpoint."""
    return {
        "name": "Speedy Van Verify API",
        "version": __version__,
        "docs": "/docs",
    }
