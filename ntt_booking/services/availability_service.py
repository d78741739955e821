import calendar
import datetime as dt
import logging
import math

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..core.errors import SlotInUseError, SlotNotFoundError, ValidationError
from ..db import models, schemas

logger = logging.getLogger(__name__)

BLOCKED_PLACEHOLDER_NOTE = "Blocked date"

_WEEK_ORDINALS = {"first": 1, "second": 2, "third": 3, "fourth": 4}


def _sunday_based(day: dt.date) -> int:
    # 0 = Sunday ... 6 = Saturday
    return (day.weekday() + 1) % 7


def week_of_month(day: dt.date) -> int:
    first = day.replace(day=1)
    return math.ceil((day.day + _sunday_based(first)) / 7)


def is_last_week(day: dt.date) -> bool:
    last_day = calendar.monthrange(day.year, day.month)[1]
    return last_day - day.day < 7


def _matches_monthly_week(day: dt.date, monthly_week: str) -> bool:
    if monthly_week == "all":
        return True
    if monthly_week == "last":
        return is_last_week(day)
    return week_of_month(day) == _WEEK_ORDINALS[monthly_week]


def recurring_dates(payload: schemas.RecurringSlotsCreate) -> list[dt.date]:
    """Expand a recurrence pattern into concrete dates, in order."""
    if payload.pattern_type == "custom":
        return sorted(set(payload.custom_dates))

    days = set(payload.days_of_week)
    dates: list[dt.date] = []
    current = payload.start_date
    while current <= payload.end_date:
        if _sunday_based(current) in days:
            if payload.pattern_type == "weekly" or _matches_monthly_week(current, payload.monthly_week):
                dates.append(current)
        current += dt.timedelta(days=1)
    return dates


def get_slot(db: Session, slot_id: int) -> models.AvailabilitySlot:
    slot = db.get(models.AvailabilitySlot, slot_id)
    if slot is None:
        raise SlotNotFoundError()
    return slot


def _slot_exists(
    db: Session,
    business_id: int,
    date: dt.date,
    start_time: dt.time,
    *,
    exclude_id: int | None = None,
) -> bool:
    stmt = (
        select(models.AvailabilitySlot.id)
        .where(models.AvailabilitySlot.business_id == business_id)
        .where(models.AvailabilitySlot.date == date)
        .where(models.AvailabilitySlot.start_time == start_time)
    )
    if exclude_id is not None:
        stmt = stmt.where(models.AvailabilitySlot.id != exclude_id)
    return db.execute(stmt.limit(1)).scalar_one_or_none() is not None


def create_slot(
    db: Session, business_id: int, payload: schemas.AvailabilitySlotCreate
) -> models.AvailabilitySlot:
    if _slot_exists(db, business_id, payload.date, payload.start_time):
        raise ValidationError.for_field("start_time", "A slot already exists at this time")
    slot = models.AvailabilitySlot(
        business_id=business_id,
        service_id=payload.service_id,
        date=payload.date,
        start_time=payload.start_time,
        end_time=payload.end_time,
        capacity=payload.capacity,
        booked_count=0,
        is_blocked=False,
        notes=payload.notes,
    )
    db.add(slot)
    db.commit()
    db.refresh(slot)
    logger.info("Slot created", extra={"slot_id": slot.id, "business_id": business_id})
    return slot


def create_recurring_slots(
    db: Session, business_id: int, payload: schemas.RecurringSlotsCreate
) -> list[models.AvailabilitySlot]:
    """Create one slot per matching date, skipping dates that already have one."""
    dates = recurring_dates(payload)
    if not dates:
        raise ValidationError.for_field("days_of_week", "No dates match the given pattern")

    created: list[models.AvailabilitySlot] = []
    skipped = 0
    for date in dates:
        if _slot_exists(db, business_id, date, payload.start_time):
            skipped += 1
            continue
        slot = models.AvailabilitySlot(
            business_id=business_id,
            service_id=payload.service_id,
            date=date,
            start_time=payload.start_time,
            end_time=payload.end_time,
            capacity=payload.capacity,
            booked_count=0,
            is_blocked=False,
        )
        db.add(slot)
        created.append(slot)
    db.commit()
    for slot in created:
        db.refresh(slot)
    logger.info(
        "Recurring slots created",
        extra={
            "business_id": business_id,
            "pattern_type": payload.pattern_type,
            "created_count": len(created),
            "skipped_count": skipped,
        },
    )
    return created


def update_slot(
    db: Session, slot_id: int, payload: schemas.AvailabilitySlotUpdate
) -> models.AvailabilitySlot:
    slot = db.execute(
        select(models.AvailabilitySlot)
        .where(models.AvailabilitySlot.id == slot_id)
        .with_for_update()
    ).scalar_one_or_none()
    if slot is None:
        raise SlotNotFoundError()

    data = payload.model_dump(exclude_unset=True)
    capacity = data.get("capacity")
    if capacity is not None and capacity < slot.booked_count:
        db.rollback()
        raise ValidationError.for_field(
            "capacity", f"Capacity cannot be lower than {slot.booked_count} booked seats"
        )
    target_date = data.get("date") or slot.date
    target_start = data.get("start_time") or slot.start_time
    if (target_date, target_start) != (slot.date, slot.start_time) and _slot_exists(
        db, slot.business_id, target_date, target_start, exclude_id=slot.id
    ):
        db.rollback()
        raise ValidationError.for_field("start_time", "A slot already exists at this time")
    for field, value in data.items():
        if value is not None or field in {"notes", "service_id"}:
            setattr(slot, field, value)
    if slot.end_time <= slot.start_time:
        db.rollback()
        raise ValidationError.for_field("end_time", "end_time must be after start_time")
    db.commit()
    db.refresh(slot)
    return slot


def delete_slot(db: Session, slot_id: int) -> None:
    slot = get_slot(db, slot_id)
    if slot.booked_count > 0:
        raise SlotInUseError()
    db.delete(slot)
    db.commit()
    logger.info("Slot deleted", extra={"slot_id": slot_id})


def toggle_block_date(
    db: Session, business_id: int, date: dt.date, blocked: bool
) -> list[models.AvailabilitySlot]:
    """Block or unblock every slot on a date.

    Blocking a date without slots inserts an all-day placeholder so the date
    still shows as closed; unblocking removes such placeholders again.
    """
    slots = list_slots_for_date(db, business_id, date)
    if not slots and blocked:
        placeholder = models.AvailabilitySlot(
            business_id=business_id,
            date=date,
            start_time=dt.time(0, 0),
            end_time=dt.time(23, 59),
            capacity=1,
            booked_count=0,
            is_blocked=True,
            notes=BLOCKED_PLACEHOLDER_NOTE,
        )
        db.add(placeholder)
        db.commit()
        db.refresh(placeholder)
        logger.info("Date blocked", extra={"business_id": business_id, "date": date.isoformat()})
        return [placeholder]

    kept: list[models.AvailabilitySlot] = []
    for slot in slots:
        if not blocked and slot.notes == BLOCKED_PLACEHOLDER_NOTE and slot.booked_count == 0:
            db.delete(slot)
            continue
        slot.is_blocked = blocked
        kept.append(slot)
    db.commit()
    logger.info(
        "Date blocked" if blocked else "Date unblocked",
        extra={"business_id": business_id, "date": date.isoformat(), "slot_count": len(kept)},
    )
    return kept


def list_slots_for_date(db: Session, business_id: int, date: dt.date) -> list[models.AvailabilitySlot]:
    return list(
        db.execute(
            select(models.AvailabilitySlot)
            .where(models.AvailabilitySlot.business_id == business_id)
            .where(models.AvailabilitySlot.date == date)
            .order_by(models.AvailabilitySlot.start_time)
        ).scalars()
    )


def list_slots_for_month(
    db: Session, business_id: int, year: int, month: int
) -> list[models.AvailabilitySlot]:
    first = dt.date(year, month, 1)
    last = dt.date(year, month, calendar.monthrange(year, month)[1])
    return list(
        db.execute(
            select(models.AvailabilitySlot)
            .where(models.AvailabilitySlot.business_id == business_id)
            .where(models.AvailabilitySlot.date >= first)
            .where(models.AvailabilitySlot.date <= last)
            .order_by(models.AvailabilitySlot.date, models.AvailabilitySlot.start_time)
        ).scalars()
    )
