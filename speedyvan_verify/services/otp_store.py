"""Persistence for issued OTP codes.

Thin query layer over one ``AsyncSession``. All mutation is single-row
(insert, attempt increment, consumption) apart from the expiry sweep.
"""

import hashlib
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from speedyvan_verify.models.otp_code import OtpCode


def lineage_lock_key(phone_normalized: str, purpose: str) -> int:
    """Signed 64-bit advisory lock key for a (phone, purpose) pair."""
    digest = hashlib.sha256(f"{phone_normalized}:{purpose}".encode()).digest()
    return int.from_bytes(digest[:8], "big", signed=True)


def _lineage(phone_normalized: str, purpose: str):
    return and_(
        OtpCode.phone_normalized == phone_normalized,
        OtpCode.purpose == purpose,
    )


_VERIFIED = and_(
    OtpCode.consumed_at.is_not(None),
    OtpCode.attempts < OtpCode.max_attempts,
)
_LOCKED = OtpCode.attempts >= OtpCode.max_attempts


class OtpStore:
    """Repository for ``OtpCode`` rows."""

    def __init__(self, db: AsyncSession):
        self._db = db

    async def lock_lineage(self, phone_normalized: str, purpose: str) -> None:
        """Serialize issuers for the same phone and purpose.

        Takes a PostgreSQL transaction-scoped advisory lock, released on
        commit or rollback.
        """
        key = lineage_lock_key(phone_normalized, purpose)
        await self._db.execute(select(func.pg_advisory_xact_lock(key)))

    async def find_latest_since(
        self, phone_normalized: str, purpose: str, since: datetime
    ) -> OtpCode | None:
        result = await self._db.execute(
            select(OtpCode)
            .where(
                _lineage(phone_normalized, purpose),
                OtpCode.created_at >= since,
            )
            .order_by(OtpCode.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def oldest_since(
        self, phone_normalized: str, purpose: str, since: datetime
    ) -> datetime | None:
        result = await self._db.execute(
            select(func.min(OtpCode.created_at)).where(
                _lineage(phone_normalized, purpose),
                OtpCode.created_at >= since,
            )
        )
        return result.scalar_one_or_none()

    async def count_since(
        self, phone_normalized: str, purpose: str, since: datetime
    ) -> int:
        result = await self._db.execute(
            select(func.count())
            .select_from(OtpCode)
            .where(
                _lineage(phone_normalized, purpose),
                OtpCode.created_at >= since,
            )
        )
        return result.scalar_one()

    async def add(self, record: OtpCode) -> OtpCode:
        self._db.add(record)
        await self._db.flush()
        return record

    async def find_active(
        self, phone_normalized: str, purpose: str, now: datetime
    ) -> OtpCode | None:
        """Most recent unexpired record, if it is still open.

        Only the newest record is ever live: once it is consumed or locked,
        older codes in the lineage stay unreachable.
        """
        result = await self._db.execute(
            select(OtpCode)
            .where(
                _lineage(phone_normalized, purpose),
                OtpCode.expires_at > now,
            )
            .order_by(OtpCode.created_at.desc())
            .limit(1)
        )
        record = result.scalar_one_or_none()
        if record is None:
            return None
        if record.consumed_at is not None or record.attempts >= record.max_attempts:
            return None
        return record

    async def increment_attempts(self, record_id: uuid.UUID) -> int | None:
        """Atomically bump the attempt counter.

        Returns the new count, or None if the row was consumed or reached
        its ceiling in the meantime.
        """
        result = await self._db.execute(
            update(OtpCode)
            .where(
                OtpCode.id == record_id,
                OtpCode.consumed_at.is_(None),
                OtpCode.attempts < OtpCode.max_attempts,
            )
            .values(attempts=OtpCode.attempts + 1)
            .returning(OtpCode.attempts)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none()

    async def mark_consumed(self, record_id: uuid.UUID, when: datetime) -> None:
        await self._db.execute(
            update(OtpCode)
            .where(OtpCode.id == record_id)
            .values(consumed_at=when)
            .execution_options(synchronize_session=False)
        )

    async def delete_expired(self, now: datetime) -> int:
        result = await self._db.execute(
            delete(OtpCode).where(OtpCode.expires_at < now)
        )
        return result.rowcount or 0

    async def get_stats(
        self, phone_normalized: str, purpose: str, since: datetime
    ) -> dict[str, Any]:
        """Issued / verified / locked counts since ``since`` plus last timestamps."""
        window = await self._db.execute(
            select(
                func.count().label("total_issued"),
                func.count().filter(_VERIFIED).label("total_verified"),
                func.count().filter(_LOCKED).label("total_failed"),
            )
            .select_from(OtpCode)
            .where(
                _lineage(phone_normalized, purpose),
                OtpCode.created_at >= since,
            )
        )
        counts = window.one()

        latest = await self._db.execute(
            select(
                func.max(OtpCode.created_at).label("last_issued"),
                func.max(OtpCode.consumed_at)
                .filter(_VERIFIED)
                .label("last_verified"),
            ).where(_lineage(phone_normalized, purpose))
        )
        last = latest.one()

        return {
            "total_issued": counts.total_issued,
            "total_verified": counts.total_verified,
            "total_failed": counts.total_failed,
            "last_issued": last.last_issued,
            "last_verified": last.last_verified,
        }

    async def commit(self) -> None:
        await self._db.commit()

    async def rollback(self) -> None:
        await self._db.rollback()
