"""OTP request/response schemas."""

from datetime import datetime

from pydantic import BaseModel, Field

PURPOSE_PATTERN = r"^[a-z0-9][a-z0-9_-]{0,49}$"


class OtpSendRequest(BaseModel):
    """Request schema for POST /api/otp/send."""

    destination: str = Field(
        ...,
        min_length=7,
        max_length=32,
        description="UK mobile number in any common format",
    )
    purpose: str = Field(
        ...,
        pattern=PURPOSE_PATTERN,
        description="Flow the code belongs to, e.g. 'login' or 'booking-verify'",
    )


class OtpSendResponse(BaseModel):
    """Response schema for POST /api/otp/send."""

    phone_masked: str
    expires_in_min: int


class OtpVerifyRequest(BaseModel):
    """Request schema for POST /api/otp/verify."""

    destination: str = Field(..., min_length=7, max_length=32)
    purpose: str = Field(..., pattern=PURPOSE_PATTERN)
    code: str = Field(..., pattern=r"^\d{4,10}$")


class OtpVerifyResponse(BaseModel):
    """Response schema for POST /api/otp/verify."""

    verified: bool


class OtpStatsResponse(BaseModel):
    """Response schema for GET /api/otp/stats (last 24 hours)."""

    model_config = {"from_attributes": True}

    total_issued: int
    total_verified: int
    total_failed: int
    last_issued: datetime | None = None
    last_verified: datetime | None = None
