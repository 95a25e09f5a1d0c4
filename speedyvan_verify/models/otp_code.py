"""One-time verification code issued to a phone number.

One row per issuance. The plaintext code is never stored; only its
SHA-256 digest. Rows are created by issue, mutated by verify (attempt
counter, consumption) and hard-deleted by the expiry sweep.
"""

import uuid
from datetime import datetime

from sqlalchemy import CHAR, CheckConstraint, DateTime, Index, Integer, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from speedyvan_verify.models.base import Base


class OtpCode(Base):
    """Issued OTP and its verification state.

    ``max_attempts`` is copied from the policy at issue time so later
    configuration changes do not affect codes already in flight.
    """

    __tablename__ = "otp_codes"
    __table_args__ = (
        Index(
            "ix_otp_codes_lineage_created",
            "phone_normalized",
            "purpose",
            "created_at",
        ),
        CheckConstraint(
            "attempts <= max_attempts", name="ck_otp_codes_attempts_ceiling"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    phone_raw: Mapped[str] = mapped_column(String(32), nullable=False)

    # Normalizing a national number adds one digit (0 -> 44)
    phone_normalized: Mapped[str] = mapped_column(String(40), nullable=False)

    purpose: Mapped[str] = mapped_column(String(50), nullable=False)

    code_hash: Mapped[str] = mapped_column(CHAR(64), nullable=False)

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    attempts: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default="0"
    )

    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False)

    consumed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<OtpCode(id={self.id}, purpose={self.purpose}, "
            f"attempts={self.attempts}/{self.max_attempts})>"
        )
