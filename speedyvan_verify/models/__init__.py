# Database Models
from speedyvan_verify.models.base import Base
from speedyvan_verify.models.otp_code import OtpCode

__all__ = [
    "Base",
    "OtpCode",
]
