"""Phone verification endpoints.

Issue a one-time code by SMS and verify it. Used by the booking flow and
the driver/customer login flows.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from speedyvan_verify.config import settings
from speedyvan_verify.core.auth import require_internal_key
from speedyvan_verify.core.phone import is_valid_uk_mobile, mask_phone_number
from speedyvan_verify.database import get_db
from speedyvan_verify.logging_config import get_logger
from speedyvan_verify.middleware.rate_limit import limiter
from speedyvan_verify.routers.sms import gateway_http_error, get_sms_dispatcher
from speedyvan_verify.schemas.otp import (
    PURPOSE_PATTERN,
    OtpSendRequest,
    OtpSendResponse,
    OtpStatsResponse,
    OtpVerifyRequest,
    OtpVerifyResponse,
)
from speedyvan_verify.services.otp import OtpPolicy, OtpService, RateLimitedError
from speedyvan_verify.services.otp_store import OtpStore
from speedyvan_verify.services.sms import SmsDispatcher, SmsGatewayError

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api/otp",
    tags=["otp"],
)


def get_otp_service(db: AsyncSession = Depends(get_db)) -> OtpService:
    return OtpService(OtpStore(db), OtpPolicy.from_settings(settings))


def _require_uk_mobile(phone: str) -> None:
    if not is_valid_uk_mobile(phone):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Please enter a valid UK mobile number",
        )


@router.post(
    "/send",
    response_model=OtpSendResponse,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit("10/minute")
async def send_code(
    body: OtpSendRequest,
    request: Request,
    service: OtpService = Depends(get_otp_service),
    dispatcher: SmsDispatcher = Depends(get_sms_dispatcher),
) -> OtpSendResponse:
    """Issue a verification code and text it to ``destination``.

    Returns 429 with a Retry-After header while the phone is in its
    cooldown or over its hourly allowance.
    """
    _require_uk_mobile(body.destination)

    try:
        issued = await service.issue(body.destination, body.purpose)
    except RateLimitedError as e:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=str(e),
            headers={"Retry-After": str(e.retry_after_seconds)},
        )

    try:
        await dispatcher.send_otp(body.destination, issued.code)
    except SmsGatewayError as e:
        logger.error(
            "OTP issued but SMS delivery failed",
            phone=issued.phone_masked,
            purpose=body.purpose,
            error=str(e),
        )
        raise gateway_http_error(e)

    return OtpSendResponse(
        phone_masked=issued.phone_masked,
        expires_in_min=issued.expires_in_min,
    )


@router.post(
    "/verify",
    response_model=OtpVerifyResponse,
)
@limiter.limit("20/minute")
async def verify_code(
    body: OtpVerifyRequest,
    request: Request,
    service: OtpService = Depends(get_otp_service),
) -> OtpVerifyResponse:
    """Check a submitted code. Always 200; ``verified`` carries the result."""
    verified = await service.verify(body.destination, body.purpose, body.code)
    return OtpVerifyResponse(verified=verified)


@router.get(
    "/stats",
    response_model=OtpStatsResponse,
    dependencies=[Depends(require_internal_key)],
)
async def get_stats(
    destination: str = Query(..., min_length=7, max_length=32),
    purpose: str = Query(..., pattern=PURPOSE_PATTERN),
    service: OtpService = Depends(get_otp_service),
) -> OtpStatsResponse:
    """Last-24h issuance and outcome counts for one phone and purpose."""
    _require_uk_mobile(destination)
    stats = await service.get_stats(destination, purpose)
    logger.info(
        "OTP stats requested",
        phone=mask_phone_number(destination),
        purpose=purpose,
    )
    return OtpStatsResponse.model_validate(stats)
