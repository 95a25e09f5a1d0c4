"""One-time passcode issuance and verification.

Codes are scoped to a (normalized phone, purpose) pair. Issuance is guarded
by a per-pair cooldown and a rolling hourly cap; verification counts every
attempt and locks the code once its attempt ceiling is reached.
"""

import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from speedyvan_verify.config import Settings
from speedyvan_verify.core.codes import constant_time_equal, generate_code, hash_code
from speedyvan_verify.core.phone import mask_phone_number, normalize_uk
from speedyvan_verify.logging_config import get_logger
from speedyvan_verify.models.otp_code import OtpCode
from speedyvan_verify.services.otp_store import OtpStore

logger = get_logger(__name__)

HOURLY_WINDOW = timedelta(hours=1)
STATS_WINDOW = timedelta(hours=24)


class RateLimitedError(Exception):
    """Issuance refused by the cooldown or the hourly cap."""

    def __init__(self, message: str, retry_after_seconds: int):
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


@dataclass(frozen=True)
class OtpPolicy:
    """OTP limits. Validated on construction."""

    ttl_min: int = 10
    cooldown_seconds: int = 60
    max_attempts: int = 5
    hourly_limit: int = 5

    def __post_init__(self) -> None:
        if self.ttl_min < 1:
            raise ValueError("ttl_min must be at least 1")
        if self.cooldown_seconds < 0:
            raise ValueError("cooldown_seconds must not be negative")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.hourly_limit < 1:
            raise ValueError("hourly_limit must be at least 1")

    @classmethod
    def from_settings(cls, settings: Settings) -> "OtpPolicy":
        return cls(
            ttl_min=settings.otp_ttl_min,
            cooldown_seconds=settings.otp_cooldown_seconds,
            max_attempts=settings.otp_max_attempts,
            hourly_limit=settings.otp_hourly_limit,
        )


@dataclass(frozen=True)
class OtpIssueResult:
    """Outcome of a successful issue.

    ``code`` is the only copy of the plaintext code. Deliver it and drop it.
    """

    phone_masked: str
    expires_in_min: int
    code: str


@dataclass(frozen=True)
class OtpStats:
    total_issued: int
    total_verified: int
    total_failed: int
    last_issued: datetime | None
    last_verified: datetime | None


def _utcnow() -> datetime:
    return datetime.now(UTC)


class OtpService:
    """Issue, verify and sweep OTP codes against an ``OtpStore``."""

    def __init__(
        self,
        store: OtpStore,
        policy: OtpPolicy | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._store = store
        self.policy = policy or OtpPolicy()
        self._clock = clock

    async def issue(self, phone: str, purpose: str) -> OtpIssueResult:
        """Issue a fresh code for ``phone`` and ``purpose``.

        ``phone`` is normalized best-effort and not validated here; it must
        fit the 32-character raw column (the request schemas enforce this).

        Raises:
            RateLimitedError: A code was issued within the cooldown, or the
                hourly cap for this phone and purpose is reached.
        """
        phone_normalized = normalize_uk(phone)
        masked = mask_phone_number(phone)
        now = self._clock()

        await self._store.lock_lineage(phone_normalized, purpose)

        try:
            await self._check_rate_limits(phone_normalized, purpose, now, masked)
        except RateLimitedError:
            await self._store.rollback()
            raise

        code = generate_code()
        record = OtpCode(
            phone_raw=phone,
            phone_normalized=phone_normalized,
            purpose=purpose,
            code_hash=hash_code(code),
            expires_at=now + timedelta(minutes=self.policy.ttl_min),
            attempts=0,
            max_attempts=self.policy.max_attempts,
            created_at=now,
        )
        await self._store.add(record)
        await self._store.commit()

        logger.info(
            "OTP issued",
            phone=masked,
            purpose=purpose,
            expires_at=record.expires_at.isoformat(),
        )
        return OtpIssueResult(
            phone_masked=masked,
            expires_in_min=self.policy.ttl_min,
            code=code,
        )

    async def _check_rate_limits(
        self, phone_normalized: str, purpose: str, now: datetime, masked: str
    ) -> None:
        cooldown = timedelta(seconds=self.policy.cooldown_seconds)
        if cooldown:
            latest = await self._store.find_latest_since(
                phone_normalized, purpose, now - cooldown
            )
            if latest is not None:
                elapsed = (now - latest.created_at).total_seconds()
                remaining = math.ceil(self.policy.cooldown_seconds - elapsed)
                remaining = min(max(remaining, 1), self.policy.cooldown_seconds)
                logger.info(
                    "OTP refused: cooldown",
                    phone=masked,
                    purpose=purpose,
                    retry_after_seconds=remaining,
                )
                raise RateLimitedError(
                    f"Please wait {remaining} seconds before requesting another code",
                    retry_after_seconds=remaining,
                )

        window_start = now - HOURLY_WINDOW
        issued = await self._store.count_since(phone_normalized, purpose, window_start)
        if issued >= self.policy.hourly_limit:
            oldest = await self._store.oldest_since(
                phone_normalized, purpose, window_start
            )
            if oldest is None:
                remaining = int(HOURLY_WINDOW.total_seconds())
            else:
                remaining = math.ceil(
                    (oldest + HOURLY_WINDOW - now).total_seconds()
                )
            remaining = max(remaining, 1)
            logger.warning(
                "OTP refused: hourly limit",
                phone=masked,
                purpose=purpose,
                issued_last_hour=issued,
            )
            raise RateLimitedError(
                "Hourly limit exceeded. Please try again later.",
                retry_after_seconds=remaining,
            )

    async def verify(self, phone: str, purpose: str, candidate_code: str) -> bool:
        """Check ``candidate_code`` against the current code for the pair.

        Every call against a live record counts as an attempt. The attempt
        that reaches the record's ceiling locks it and is rejected even if
        the code is right. Returns False for every failure mode; callers
        cannot tell them apart.
        """
        phone_normalized = normalize_uk(phone)
        masked = mask_phone_number(phone)
        now = self._clock()

        record = await self._store.find_active(phone_normalized, purpose, now)
        if record is None:
            logger.info("OTP verify: no active code", phone=masked, purpose=purpose)
            return False

        attempts = await self._store.increment_attempts(record.id)
        if attempts is None:
            # Consumed or locked by a concurrent request
            await self._store.commit()
            return False

        if attempts >= record.max_attempts:
            await self._store.mark_consumed(record.id, now)
            await self._store.commit()
            logger.warning(
                "OTP locked after max attempts",
                phone=masked,
                purpose=purpose,
                attempts=attempts,
            )
            return False

        if constant_time_equal(hash_code(candidate_code), record.code_hash):
            await self._store.mark_consumed(record.id, now)
            await self._store.commit()
            logger.info("OTP verified", phone=masked, purpose=purpose)
            return True

        await self._store.commit()
        logger.info(
            "OTP verify: mismatch",
            phone=masked,
            purpose=purpose,
            attempts=attempts,
            max_attempts=record.max_attempts,
        )
        return False

    def mask_phone_number(self, phone: str) -> str:
        return mask_phone_number(phone)

    async def cleanup_expired(self) -> int:
        """Hard-delete every record past its expiry, consumed or not."""
        deleted = await self._store.delete_expired(self._clock())
        await self._store.commit()
        if deleted:
            logger.info("Expired OTP codes deleted", deleted=deleted)
        return deleted

    async def get_stats(self, phone: str, purpose: str) -> OtpStats:
        """Issuance and outcome counts for the last 24 hours."""
        since = self._clock() - STATS_WINDOW
        raw = await self._store.get_stats(normalize_uk(phone), purpose, since)
        return OtpStats(**raw)
