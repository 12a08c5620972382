import logging
import os
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from app.core.config import settings
from app.core.database import SessionLocal
from app.services.attempt import attempt_service
from app.realtime.exam import cleanup_inactive_sessions

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


async def sweep_expired_attempts():
    """Auto-submit attempts whose time ran out while nobody was connected."""
    db = SessionLocal()
    try:
        swept = await attempt_service.sweep_expired(db)
        if swept:
            logger.info(f"Expiry sweep auto-submitted {swept} attempt(s)")
    except Exception as e:
        logger.error(f"Error sweeping expired attempts: {e}")
    finally:
        db.close()


def drop_idle_exam_sessions():
    removed = cleanup_inactive_sessions()
    if removed:
        logger.info(f"Dropped {removed} idle exam session(s)")


def start_scheduler():
    if os.getenv("TESTING") == "true":
        logger.info("Scheduler disabled in test environment")
        return

    if not scheduler.running:
        scheduler.add_job(
            sweep_expired_attempts,
            'interval',
            seconds=settings.EXPIRY_SWEEP_SECONDS,
            id='sweep_expired_attempts',
            name='Auto-submit Expired Attempts',
            replace_existing=True
        )
        scheduler.add_job(
            drop_idle_exam_sessions,
            'interval',
            minutes=settings.SESSION_IDLE_MINUTES,
            id='drop_idle_exam_sessions',
            name='Drop Idle Exam Sessions',
            replace_existing=True
        )
        scheduler.start()
        logger.info("Scheduler started with expiry sweep and idle session jobs")


def stop_scheduler():
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Scheduler stopped")
