"""Pytest configuration and shared fixtures.

OTP logic is exercised against ``InMemoryOtpStore``, which mirrors the
query semantics of ``OtpStore`` without a database.
"""

import os
import uuid
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Set testing mode BEFORE importing app so the rate limiter is disabled
os.environ["TESTING"] = "true"

from speedyvan_verify.config import settings

# Override settings for testing
settings.testing = True

from speedyvan_verify.main import app
from speedyvan_verify.models.otp_code import OtpCode
from speedyvan_verify.services.otp import OtpPolicy, OtpService


class FakeClock:
    """Controllable UTC clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 3, 2, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class InMemoryOtpStore:
    """Dict-backed stand-in for ``OtpStore``."""

    def __init__(self):
        self.records: dict[uuid.UUID, OtpCode] = {}
        self.locks: list[tuple[str, str]] = []
        self.commits = 0
        self.rollbacks = 0

    def _lineage(self, phone_normalized: str, purpose: str) -> list[OtpCode]:
        return [
            r
            for r in self.records.values()
            if r.phone_normalized == phone_normalized and r.purpose == purpose
        ]

    async def lock_lineage(self, phone_normalized: str, purpose: str) -> None:
        self.locks.append((phone_normalized, purpose))

    async def find_latest_since(self, phone_normalized, purpose, since):
        rows = [
            r for r in self._lineage(phone_normalized, purpose) if r.created_at >= since
        ]
        return max(rows, key=lambda r: r.created_at, default=None)

    async def oldest_since(self, phone_normalized, purpose, since):
        times = [
            r.created_at
            for r in self._lineage(phone_normalized, purpose)
            if r.created_at >= since
        ]
        return min(times, default=None)

    async def count_since(self, phone_normalized, purpose, since):
        return sum(
            1 for r in self._lineage(phone_normalized, purpose) if r.created_at >= since
        )

    async def add(self, record: OtpCode) -> OtpCode:
        record.id = uuid.uuid4()
        self.records[record.id] = record
        return record

    async def find_active(self, phone_normalized, purpose, now):
        rows = [r for r in self._lineage(phone_normalized, purpose) if r.expires_at > now]
        latest = max(rows, key=lambda r: r.created_at, default=None)
        if latest is None:
            return None
        if latest.consumed_at is not None or latest.attempts >= latest.max_attempts:
            return None
        return latest

    async def increment_attempts(self, record_id):
        record = self.records.get(record_id)
        if (
            record is None
            or record.consumed_at is not None
            or record.attempts >= record.max_attempts
        ):
            return None
        record.attempts += 1
        return record.attempts

    async def mark_consumed(self, record_id, when):
        self.records[record_id].consumed_at = when

    async def delete_expired(self, now):
        expired = [rid for rid, r in self.records.items() if r.expires_at < now]
        for rid in expired:
            del self.records[rid]
        return len(expired)

    async def get_stats(self, phone_normalized, purpose, since):
        lineage = self._lineage(phone_normalized, purpose)
        window = [r for r in lineage if r.created_at >= since]
        verified = [
            r
            for r in lineage
            if r.consumed_at is not None and r.attempts < r.max_attempts
        ]
        return {
            "total_issued": len(window),
            "total_verified": sum(1 for r in window if r in verified),
            "total_failed": sum(1 for r in window if r.attempts >= r.max_attempts),
            "last_issued": max((r.created_at for r in lineage), default=None),
            "last_verified": max((r.consumed_at for r in verified), default=None),
        }

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def otp_store() -> InMemoryOtpStore:
    return InMemoryOtpStore()


@pytest.fixture
def otp_policy() -> OtpPolicy:
    return OtpPolicy(ttl_min=10, cooldown_seconds=60, max_attempts=5, hourly_limit=5)


@pytest.fixture
def otp_service(otp_store, otp_policy, clock) -> OtpService:
    return OtpService(otp_store, otp_policy, clock=clock)


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP client for testing the API."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()
