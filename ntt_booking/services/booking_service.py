import logging
import secrets
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.constants import (
    PAYMENT_TIMEOUT_REASON,
    REF_CODE_ALPHABET,
    REF_CODE_LENGTH,
    REF_CODE_MAX_ATTEMPTS,
    REF_CODE_PREFIX,
    SYSTEM_ACTOR,
)
from ..core.errors import (
    AlreadyCancelledError,
    BookingError,
    BookingNotFoundError,
    InvalidTransitionError,
    SlotNotFoundError,
    ValidationError,
)
from ..db import models, schemas
from ..db.models.booking import BookingStatus
from . import capacity_service

logger = logging.getLogger(__name__)

_ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.pending: frozenset({BookingStatus.confirmed, BookingStatus.cancelled}),
    BookingStatus.confirmed: frozenset(
        {BookingStatus.completed, BookingStatus.cancelled, BookingStatus.no_show}
    ),
    BookingStatus.completed: frozenset(),
    BookingStatus.cancelled: frozenset(),
    BookingStatus.no_show: frozenset(),
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def generate_ref_code() -> str:
    suffix = "".join(secrets.choice(REF_CODE_ALPHABET) for _ in range(REF_CODE_LENGTH))
    return f"{REF_CODE_PREFIX}{suffix}"


def _field_errors(exc: PydanticValidationError) -> dict[str, list[str]]:
    errors: dict[str, list[str]] = {}
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"]) or "_form"
        errors.setdefault(field, []).append(error["msg"])
    return errors


def _record(
    db: Session,
    booking: models.Booking,
    action: str,
    actor: str,
    actor_type: models.ActorType,
    **payload,
) -> None:
    db.add(
        models.AuditLog(
            actor_type=actor_type,
            actor=actor,
            action=action,
            entity_id=booking.id,
            payload={"ref_code": booking.ref_code, "status": booking.status.value, **payload},
        )
    )


def create_booking(db: Session, payload: schemas.BookingCreate | dict, *, now: datetime | None = None) -> models.Booking:
    """Reserve seats on a slot and create a ``pending`` booking for them."""
    if not isinstance(payload, schemas.BookingCreate):
        try:
            payload = schemas.BookingCreate.model_validate(payload)
        except PydanticValidationError as exc:
            raise ValidationError(_field_errors(exc)) from exc

    business = db.get(models.Business, payload.business_id)
    if business is None:
        raise ValidationError.for_field("business_id", "Business not found")

    now = now or _utc_now()
    for attempt in range(1, REF_CODE_MAX_ATTEMPTS + 1):
        try:
            slot = capacity_service.reserve(db, payload.availability_id, payload.pax)
            if slot.business_id != business.id:
                raise SlotNotFoundError()
            booking = models.Booking(
                ref_code=generate_ref_code(),
                business_id=business.id,
                service_id=payload.service_id or slot.service_id,
                availability_id=slot.id,
                customer_name=payload.customer_name,
                customer_email=payload.customer_email,
                customer_phone=payload.customer_phone,
                booking_date=slot.date,
                start_time=slot.start_time,
                pax=payload.pax,
                status=BookingStatus.pending,
                subtotal=payload.subtotal,
                addons_total=payload.addons_total,
                total_amount=payload.total_amount,
                notes=payload.notes,
                expires_at=(
                    now + timedelta(minutes=business.auto_cancel_timeout)
                    if business.auto_cancel_enabled
                    else None
                ),
            )
            for item in payload.items:
                booking.items.append(
                    models.BookingItem(
                        type=item.type,
                        item_id=item.item_id,
                        name=item.name,
                        quantity=item.quantity,
                        unit_price=item.unit_price,
                        total_price=item.unit_price * item.quantity,
                    )
                )
            db.add(booking)
            db.flush()
            _record(db, booking, "booking_created", payload.customer_email, models.ActorType.customer, pax=booking.pax)
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            constraint = getattr(getattr(exc.orig, "diag", None), "constraint_name", "") or ""
            if "ref_code" not in constraint and "ref_code" not in str(exc.orig):
                raise
            logger.warning("Reference code collision, retrying", extra={"attempt": attempt})
            continue
        except BookingError:
            db.rollback()
            raise
        db.refresh(booking)
        logger.info(
            "Booking created",
            extra={"ref_code": booking.ref_code, "slot_id": slot.id, "pax": booking.pax},
        )
        return booking
    raise BookingError("Could not allocate a unique reference code")


def get_booking(db: Session, booking_id: int, *, lock: bool = False) -> models.Booking:
    stmt = select(models.Booking).where(models.Booking.id == booking_id)
    if lock:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    booking = db.execute(stmt).scalar_one_or_none()
    if booking is None:
        raise BookingNotFoundError()
    return booking


def get_booking_by_ref(db: Session, ref_code: str) -> models.Booking:
    booking = db.execute(
        select(models.Booking).where(models.Booking.ref_code == ref_code.strip().upper())
    ).scalar_one_or_none()
    if booking is None:
        raise BookingNotFoundError()
    return booking


def _transition(
    db: Session,
    booking: models.Booking,
    target: BookingStatus,
    *,
    actor: str,
    actor_type: models.ActorType,
    **payload,
) -> None:
    if target not in _ALLOWED_TRANSITIONS[booking.status]:
        raise InvalidTransitionError(
            f"Cannot change booking from {booking.status.value} to {target.value}"
        )
    previous = booking.status
    booking.status = target
    booking.updated_at = _utc_now()
    _record(db, booking, f"booking_{target.value}", actor, actor_type, previous=previous.value, **payload)
    logger.info(
        "Booking status changed",
        extra={"ref_code": booking.ref_code, "from_status": previous.value, "to_status": target.value},
    )


def apply_confirmation(
    db: Session,
    booking: models.Booking,
    *,
    actor: str,
    actor_type: models.ActorType,
) -> models.Booking:
    """Move a pending booking to confirmed without committing."""
    _transition(db, booking, BookingStatus.confirmed, actor=actor, actor_type=actor_type)
    booking.expires_at = None
    return booking


def confirm_booking(
    db: Session,
    booking_id: int,
    *,
    actor: str,
    actor_type: models.ActorType = models.ActorType.staff,
) -> models.Booking:
    booking = get_booking(db, booking_id, lock=True)
    try:
        apply_confirmation(db, booking, actor=actor, actor_type=actor_type)
    except BookingError:
        db.rollback()
        raise
    db.commit()
    db.refresh(booking)
    return booking


def apply_cancellation(
    db: Session,
    booking: models.Booking,
    *,
    actor: str,
    actor_type: models.ActorType,
    reason: str | None = None,
    now: datetime | None = None,
) -> models.Booking:
    """Cancel and release seats without committing."""
    if booking.status == BookingStatus.cancelled:
        raise AlreadyCancelledError()
    _transition(db, booking, BookingStatus.cancelled, actor=actor, actor_type=actor_type, reason=reason)
    booking.cancelled_at = now or _utc_now()
    booking.cancelled_reason = reason
    booking.cancelled_by = actor
    booking.expires_at = None
    capacity_service.release(db, booking.availability_id, booking.pax)
    return booking


def cancel_booking(
    db: Session,
    booking_id: int,
    *,
    actor: str,
    reason: str | None = None,
    actor_type: models.ActorType = models.ActorType.staff,
) -> models.Booking:
    booking = get_booking(db, booking_id, lock=True)
    try:
        apply_cancellation(db, booking, actor=actor, actor_type=actor_type, reason=reason)
    except BookingError:
        db.rollback()
        raise
    db.commit()
    db.refresh(booking)
    return booking


def complete_booking(db: Session, booking_id: int, *, actor: str) -> models.Booking:
    booking = get_booking(db, booking_id, lock=True)
    try:
        _transition(db, booking, BookingStatus.completed, actor=actor, actor_type=models.ActorType.staff)
    except BookingError:
        db.rollback()
        raise
    db.commit()
    db.refresh(booking)
    return booking


def mark_no_show(db: Session, booking_id: int, *, actor: str) -> models.Booking:
    booking = get_booking(db, booking_id, lock=True)
    try:
        _transition(db, booking, BookingStatus.no_show, actor=actor, actor_type=models.ActorType.staff)
    except BookingError:
        db.rollback()
        raise
    db.commit()
    db.refresh(booking)
    return booking


def is_expired(booking: models.Booking, now: datetime | None = None) -> bool:
    if booking.status != BookingStatus.pending or booking.expires_at is None:
        return False
    return _as_utc(booking.expires_at) <= (now or _utc_now())


def expire_pending_bookings(db: Session, *, now: datetime | None = None) -> int:
    """Cancel pending bookings past their ``expires_at`` and free their seats."""
    now = now or _utc_now()
    stale_ids = list(
        db.execute(
            select(models.Booking.id)
            .where(models.Booking.status == BookingStatus.pending)
            .where(models.Booking.expires_at.is_not(None))
            .where(models.Booking.expires_at <= now)
            .order_by(models.Booking.id)
        ).scalars()
    )
    cancelled = 0
    for booking_id in stale_ids:
        booking = get_booking(db, booking_id, lock=True)
        # re-check under the lock; a payment may have confirmed it meanwhile
        if not is_expired(booking, now):
            db.rollback()
            continue
        apply_cancellation(
            db,
            booking,
            actor=SYSTEM_ACTOR,
            actor_type=models.ActorType.system,
            reason=PAYMENT_TIMEOUT_REASON,
            now=now,
        )
        for payment in booking.payments:
            if payment.status == models.PaymentStatus.pending:
                payment.status = models.PaymentStatus.failed
                payment.updated_at = now
        db.commit()
        cancelled += 1
    if cancelled:
        logger.info("Expired pending bookings", extra={"cancelled_count": cancelled})
    return cancelled


def list_bookings(
    db: Session,
    *,
    business_id: int | None = None,
    status: BookingStatus | None = None,
    booking_date=None,
) -> list[models.Booking]:
    stmt = select(models.Booking).order_by(models.Booking.created_at.desc(), models.Booking.id.desc())
    if business_id is not None:
        stmt = stmt.where(models.Booking.business_id == business_id)
    if status is not None:
        stmt = stmt.where(models.Booking.status == status)
    if booking_date is not None:
        stmt = stmt.where(models.Booking.booking_date == booking_date)
    return list(db.execute(stmt).scalars().all())


def amount_due(booking: models.Booking) -> Decimal:
    return Decimal(booking.total_amount or 0)
