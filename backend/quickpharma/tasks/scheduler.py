"""
Background jobs that run alongside the API.

- Prescription plan emails: every due PlanEmailJob is sent once; the
  "ready" stage also takes the month's stock for pickup plans.
- Health prescription expiry: approved health prescriptions whose latest
  approval has expired are moved to Expired.

Both jobs are idempotent, so a missed or repeated tick is harmless.
"""
import asyncio
import logging
from typing import Optional

from quickpharma.core.config import settings
from quickpharma.db.session import SessionLocal
from quickpharma.services import plan_service, prescription_service

logger = logging.getLogger(__name__)

STARTUP_DELAY_SECONDS = 10

_scheduler_running = False
_scheduler_task: Optional[asyncio.Task] = None


def run_scheduled_jobs() -> dict:
    """One scheduler tick. Each job gets its own session so one failure does not block the other."""
    results = {"plan_emails_sent": 0, "prescriptions_expired": 0}

    if settings.PLAN_EMAIL_SCHEDULER_ENABLED:
        db = SessionLocal()
        try:
            results["plan_emails_sent"] = plan_service.send_due_plan_emails(db)
        except Exception as e:
            db.rollback()
            logger.error(f"[Scheduler] Plan email job failed: {e}")
        finally:
            db.close()

    if settings.PRESCRIPTION_EXPIRY_SWEEP_ENABLED:
        db = SessionLocal()
        try:
            results["prescriptions_expired"] = prescription_service.expire_health_prescriptions(db)
        except Exception as e:
            db.rollback()
            logger.error(f"[Scheduler] Prescription expiry sweep failed: {e}")
        finally:
            db.close()

    return results


async def _scheduler_loop():
    global _scheduler_running
    _scheduler_running = True
    logger.info(f"[Scheduler] Started. Interval: {settings.PLAN_EMAIL_SCAN_INTERVAL_SECONDS}s")

    await asyncio.sleep(STARTUP_DELAY_SECONDS)

    while _scheduler_running:
        # Jobs use blocking DB and SMTP calls
        loop = asyncio.get_running_loop()
        results = await loop.run_in_executor(None, run_scheduled_jobs)
        logger.debug(f"[Scheduler] Tick finished: {results}")
        await asyncio.sleep(settings.PLAN_EMAIL_SCAN_INTERVAL_SECONDS)


def start_scheduler():
    """Start the background loop. Called from the FastAPI lifespan."""
    global _scheduler_task
    if not (settings.PLAN_EMAIL_SCHEDULER_ENABLED or settings.PRESCRIPTION_EXPIRY_SWEEP_ENABLED):
        logger.info("[Scheduler] All background jobs disabled")
        return
    _scheduler_task = asyncio.create_task(_scheduler_loop())


def stop_scheduler():
    global _scheduler_running, _scheduler_task
    _scheduler_running = False
    if _scheduler_task is not None:
        _scheduler_task.cancel()
        _scheduler_task = None
    logger.info("[Scheduler] Stopped")
