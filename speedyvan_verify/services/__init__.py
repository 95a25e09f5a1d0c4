# Business Logic Services
from speedyvan_verify.services.otp import (
    OtpIssueResult,
    OtpPolicy,
    OtpService,
    OtpStats,
    RateLimitedError,
)
from speedyvan_verify.services.otp_store import OtpStore
from speedyvan_verify.services.sms import (
    ProviderResponse,
    SmsDispatcher,
    SmsEvent,
    SmsGatewayClientError,
    SmsGatewayError,
    SmsGatewayServerError,
    SmsNotConfiguredError,
    SmsTemplate,
    UnknownTemplateError,
    render_template,
)

__all__ = [
    "OtpIssueResult",
    "OtpPolicy",
    "OtpService",
    "OtpStats",
    "OtpStore",
    "ProviderResponse",
    "RateLimitedError",
    "SmsDispatcher",
    "SmsEvent",
    "SmsGatewayClientError",
    "SmsGatewayError",
    "SmsGatewayServerError",
    "SmsNotConfiguredError",
    "SmsTemplate",
    "UnknownTemplateError",
    "render_template",
]
