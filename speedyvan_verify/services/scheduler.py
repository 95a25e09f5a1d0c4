"""Background job scheduler.

APScheduler runs the periodic OTP expiry sweep inside the API process.
"""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from speedyvan_verify.config import settings
from speedyvan_verify.database import get_db_session
from speedyvan_verify.logging_config import get_logger
from speedyvan_verify.services.otp import OtpPolicy, OtpService
from speedyvan_verify.services.otp_store import OtpStore

logger = get_logger(__name__)

OTP_CLEANUP_JOB_ID = "otp_cleanup"

# Global scheduler instance
scheduler: AsyncIOScheduler | None = None


async def cleanup_expired_otps() -> int:
    """Delete expired OTP codes.

    Errors are logged and swallowed so one failed sweep does not unschedule
    the job; the next run retries.
    """
    try:
        async with get_db_session() as db:
            service = OtpService(OtpStore(db), OtpPolicy.from_settings(settings))
            deleted = await service.cleanup_expired()
    except Exception as e:
        logger.error("Scheduled OTP cleanup failed", error=str(e))
        return 0

    logger.info("Scheduled OTP cleanup completed", deleted=deleted)
    return deleted


def start_scheduler() -> AsyncIOScheduler:
    """Start the background job scheduler.

    Returns:
        The started scheduler instance
    """
    global scheduler

    if scheduler is not None:
        logger.warning("Scheduler already running")
        return scheduler

    scheduler = AsyncIOScheduler()

    if settings.otp_cleanup_enabled:
        scheduler.add_job(
            cleanup_expired_otps,
            trigger=IntervalTrigger(minutes=settings.otp_cleanup_interval_minutes),
            id=OTP_CLEANUP_JOB_ID,
            name="Expired OTP Cleanup",
            replace_existing=True,
        )
        logger.info(
            "Scheduled OTP cleanup job",
            interval_minutes=settings.otp_cleanup_interval_minutes,
        )

    scheduler.start()
    return scheduler


def stop_scheduler() -> None:
    """Stop the background job scheduler."""
    global scheduler

    if scheduler is not None:
        scheduler.shutdown(wait=False)
        scheduler = None
        logger.info("Background scheduler stopped")


def get_scheduler() -> AsyncIOScheduler | None:
    """Get the current scheduler instance, or None if not started."""
    return scheduler
