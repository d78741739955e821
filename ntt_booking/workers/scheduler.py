import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from ..config import get_settings
from ..db.session import SessionLocal
from ..services import booking_service

logger = logging.getLogger(__name__)


def cancel_expired_bookings() -> int:
    with SessionLocal() as db:
        try:
            return booking_service.expire_pending_bookings(db)
        except Exception:
            db.rollback()
            logger.exception("Expiry sweep failed")
            raise


def get_scheduler() -> AsyncIOScheduler:
    settings = get_settings()
    scheduler = AsyncIOScheduler(timezone=settings.timezone)
    scheduler.add_job(
        cancel_expired_bookings,
        "interval",
        seconds=settings.auto_cancel_sweep_seconds,
        id="cancel_expired_bookings",
        max_instances=1,
        coalesce=True,
    )
    return scheduler
