"""SMS dispatch schemas."""

from typing import Any

from pydantic import BaseModel, Field


class SmsSendRequest(BaseModel):
    """Request schema for POST /api/sms/send."""

    type: str = Field(..., description="Template name, e.g. BOOKING_CONFIRMED")
    to: str = Field(..., min_length=7, max_length=32)
    data: dict[str, Any] = Field(default_factory=dict)


class SmsSendResponse(BaseModel):
    """Gateway outcome for a sent message."""

    model_config = {"from_attributes": True}

    success: bool
    status_code: int
    attempts: int
    message_id: str | None = None
