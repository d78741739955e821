import hmac
import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session
from ...config import get_settings
from ...db.session import get_db
from ...services import booking_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"])


def verify_cron_secret(
    x_api_key: str | None = Header(default=None),
    authorization: str | None = Header(default=None),
) -> None:
    secret = get_settings().cron_secret
    supplied = x_api_key
    if supplied is None and authorization and authorization.lower().startswith("bearer "):
        supplied = authorization[7:].strip()
    if not secret or not supplied or not hmac.compare_digest(secret.encode(), supplied.encode()):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


@router.api_route("/auto-cancel", methods=["GET", "POST"], dependencies=[Depends(verify_cron_secret)])
def auto_cancel(db: Session = Depends(get_db)):
    started = time.monotonic()
    cancelled = booking_service.expire_pending_bookings(db)
    duration_ms = int((time.monotonic() - started) * 1000)
    logger.info("Auto-cancel run finished", extra={"cancelled_count": cancelled, "duration_ms": duration_ms})
    return {
        "success": True,
        "cancelled_count": cancelled,
        "duration_ms": duration_ms,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
