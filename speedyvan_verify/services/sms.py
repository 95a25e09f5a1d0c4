"""SMS notifications through The SMS Works gateway.

Renders one of a fixed set of message templates and posts it to the gateway
with a short-lived signed token. Server errors and transport failures are
retried with exponential backoff; client errors fail immediately.
"""

import asyncio
import enum
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx
from jose import jwt

from speedyvan_verify.config import Settings
from speedyvan_verify.core.phone import mask_phone_number, normalize_uk
from speedyvan_verify.logging_config import get_logger

logger = get_logger(__name__)

SEND_PATH = "/v1/message/send"
TOKEN_ALGORITHM = "HS256"


class SmsTemplate(str, enum.Enum):
    """Registered message templates."""

    BOOKING_CREATED = "BOOKING_CREATED"
    BOOKING_CONFIRMED = "BOOKING_CONFIRMED"
    DRIVER_EN_ROUTE = "DRIVER_EN_ROUTE"
    DELIVERY_COMPLETED = "DELIVERY_COMPLETED"
    PAYMENT_REMINDER = "PAYMENT_REMINDER"
    OTP = "OTP"


TEMPLATES: dict[SmsTemplate, str] = {
    SmsTemplate.BOOKING_CREATED: (
        "Speedy Van: we've received your booking {booking_reference} for "
        "{date} at {time}. We'll confirm shortly."
    ),
    SmsTemplate.BOOKING_CONFIRMED: (
        "Speedy Van: booking {booking_reference} is confirmed for {date} at "
        "{time}. Track your move at https://speedy-van.co.uk/track"
    ),
    SmsTemplate.DRIVER_EN_ROUTE: (
        "Speedy Van: your driver {driver_name} is on the way for booking "
        "{booking_reference}. ETA {eta}."
    ),
    SmsTemplate.DELIVERY_COMPLETED: (
        "Speedy Van: booking {booking_reference} is complete. "
        "Thank you for moving with us!"
    ),
    SmsTemplate.PAYMENT_REMINDER: (
        "Speedy Van: payment of £{amount} for booking {booking_reference} "
        "is due by {due_date}."
    ),
    SmsTemplate.OTP: (
        "Your Speedy Van verification code is {code}. It expires in 10 minutes."
    ),
}


class UnknownTemplateError(ValueError):
    """Template name is not registered."""


class SmsGatewayError(Exception):
    """Error communicating with the SMS gateway."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SmsNotConfiguredError(SmsGatewayError):
    """Gateway credentials are missing."""


class SmsGatewayClientError(SmsGatewayError):
    """Gateway answered with a non-retryable status (4xx, 3xx). Not retried."""


class SmsGatewayServerError(SmsGatewayError):
    """Gateway kept failing (5xx or transport error) after all retries."""


@dataclass(frozen=True)
class SmsEvent:
    type: SmsTemplate | str
    to: str
    data: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ProviderResponse:
    success: bool
    status_code: int
    attempts: int
    message_id: str | None = None


class _KeepPlaceholders(dict):
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def render_template(template_type: SmsTemplate | str, data: Mapping[str, Any]) -> str:
    """Render a registered template.

    Fields missing from ``data`` are left as literal ``{field}``
    placeholders.

    Raises:
        UnknownTemplateError: ``template_type`` is not a registered name.
    """
    try:
        template = SmsTemplate(template_type)
    except ValueError:
        raise UnknownTemplateError(f"Unknown SMS template: {template_type}") from None
    return TEMPLATES[template].format_map(_KeepPlaceholders(data))


def create_gateway_token(
    api_key: str,
    secret: str,
    ttl_seconds: int = 60,
    now: datetime | None = None,
) -> str:
    """Create a short-lived HS256 token for the gateway."""
    issued_at = now or datetime.now(UTC)
    payload = {
        "iss": api_key,
        "iat": issued_at,
        "exp": issued_at + timedelta(seconds=ttl_seconds),
    }
    return jwt.encode(payload, secret, algorithm=TOKEN_ALGORITHM)


class SmsDispatcher:
    """Gateway client.

    Pass a shared ``httpx.AsyncClient`` to reuse connections; the owner of
    that client is responsible for closing it. Without one, a client is
    opened per send.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        secret: str,
        sender: str = "SpeedyVan",
        timeout_seconds: float = 10.0,
        max_attempts: int = 3,
        backoff_base_seconds: float = 2.0,
        token_ttl_seconds: int = 60,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.secret = secret
        self.sender = sender
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max_attempts
        self.backoff_base_seconds = backoff_base_seconds
        self.token_ttl_seconds = token_ttl_seconds
        self._client = client

    @classmethod
    def from_settings(
        cls, settings: Settings, client: httpx.AsyncClient | None = None
    ) -> "SmsDispatcher":
        return cls(
            base_url=settings.sms_works_base_url,
            api_key=settings.sms_works_api_key,
            secret=settings.sms_works_secret,
            sender=settings.sms_sender,
            timeout_seconds=settings.sms_timeout_seconds,
            max_attempts=settings.sms_max_attempts,
            backoff_base_seconds=settings.sms_backoff_base_seconds,
            token_ttl_seconds=settings.sms_token_ttl_seconds,
            client=client,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.secret)

    async def send(self, event: SmsEvent) -> ProviderResponse:
        """Render the event's template and send it to ``event.to``."""
        message = render_template(event.type, event.data)
        return await self.send_sms(event.to, message)

    async def send_otp(self, to: str, code: str) -> ProviderResponse:
        return await self.send(SmsEvent(type=SmsTemplate.OTP, to=to, data={"code": code}))

    async def send_sms(self, to: str, message: str) -> ProviderResponse:
        """Send ``message`` to ``to``.

        Makes up to ``max_attempts`` attempts. After failed attempt ``n`` it
        waits ``backoff_base_seconds ** n`` seconds (2s, 4s, ...).

        Raises:
            SmsNotConfiguredError: API key or secret is missing.
            SmsGatewayClientError: The gateway answered 4xx or another
                non-success status that is not a server error.
            SmsGatewayServerError: Every attempt got a 5xx or transport error.
        """
        if not self.configured:
            raise SmsNotConfiguredError("SMS gateway is not configured")

        destination = normalize_uk(to)
        masked = mask_phone_number(to)
        payload = {
            "sender": self.sender,
            "destination": destination,
            "content": message,
        }

        last_error: SmsGatewayServerError | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                response = await self._post(payload)
            except httpx.TransportError as e:
                last_error = SmsGatewayServerError(f"Gateway unreachable: {e}")
            else:
                if response.is_success:
                    message_id = _message_id(response)
                    logger.info(
                        "SMS sent",
                        destination=masked,
                        attempts=attempt,
                        message_id=message_id,
                    )
                    return ProviderResponse(
                        success=True,
                        status_code=response.status_code,
                        attempts=attempt,
                        message_id=message_id,
                    )

                if not response.is_server_error:
                    logger.warning(
                        "SMS rejected by gateway",
                        destination=masked,
                        status_code=response.status_code,
                    )
                    raise SmsGatewayClientError(
                        f"Gateway rejected message: {response.status_code} "
                        f"{response.text}",
                        status_code=response.status_code,
                    )

                last_error = SmsGatewayServerError(
                    f"Gateway error: {response.status_code} {response.text}",
                    status_code=response.status_code,
                )

            if attempt < self.max_attempts:
                delay = self.backoff_base_seconds**attempt
                logger.warning(
                    "SMS send failed, retrying",
                    destination=masked,
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    retry_in_seconds=delay,
                    error=str(last_error),
                )
                await asyncio.sleep(delay)

        logger.error(
            "SMS send failed after retries",
            destination=masked,
            attempts=self.max_attempts,
            error=str(last_error),
        )
        raise last_error

    async def _post(self, payload: dict[str, str]) -> httpx.Response:
        token = create_gateway_token(
            self.api_key, self.secret, ttl_seconds=self.token_ttl_seconds
        )
        url = f"{self.base_url}{SEND_PATH}"
        headers = {"Authorization": f"JWT {token}"}

        if self._client is not None:
            return await self._client.post(
                url, json=payload, headers=headers, timeout=self.timeout_seconds
            )
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            return await client.post(url, json=payload, headers=headers)


def _message_id(response: httpx.Response) -> str | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    message_id = body.get("messageId") or body.get("id")
    return str(message_id) if message_id is not None else None
