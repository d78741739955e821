"""Seat accounting for availability slots.

``AvailabilitySlot.booked_count`` is a denormalized counter of the seats held by
pending, confirmed and completed bookings. All writes go through ``reserve`` and
``release`` so that ``0 <= booked_count <= capacity`` holds after every call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from zoneinfo import ZoneInfo

from sqlalchemy import case, select, update
from sqlalchemy.orm import Session

from ..config import get_settings
from ..core.errors import CapacityExceededError, SlotBlockedError, SlotNotFoundError
from ..db import models

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CapacityCheck:
    available: bool
    remaining: int
    capacity: int = 0
    booked: int = 0
    error: str | None = None


def _lock_slot(db: Session, slot_id: int) -> models.AvailabilitySlot | None:
    return db.execute(
        select(models.AvailabilitySlot)
        .where(models.AvailabilitySlot.id == slot_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


def reserve(db: Session, slot_id: int, pax: int) -> models.AvailabilitySlot:
    """Take ``pax`` seats from the slot inside the caller's transaction.

    The caller commits (together with the booking row) or rolls back.
    """
    if pax < 1:
        raise ValueError("pax must be at least 1")
    slot = _lock_slot(db, slot_id)
    if slot is None:
        raise SlotNotFoundError()
    if slot.is_blocked:
        raise SlotBlockedError()
    remaining = slot.capacity - slot.booked_count
    if remaining < pax:
        raise CapacityExceededError(max(remaining, 0))

    # Guarded increment; a concurrent writer that slipped past the lock
    # (databases without FOR UPDATE) makes this match zero rows.
    result = db.execute(
        update(models.AvailabilitySlot)
        .where(
            models.AvailabilitySlot.id == slot_id,
            models.AvailabilitySlot.is_blocked.is_(False),
            models.AvailabilitySlot.booked_count + pax <= models.AvailabilitySlot.capacity,
        )
        .values(booked_count=models.AvailabilitySlot.booked_count + pax)
        .execution_options(synchronize_session=False)
    )
    db.refresh(slot)
    if result.rowcount != 1:
        if slot.is_blocked:
            raise SlotBlockedError()
        raise CapacityExceededError(slot.remaining)
    logger.info(
        "Reserved seats",
        extra={"slot_id": slot_id, "pax": pax, "booked_count": slot.booked_count},
    )
    return slot


def release(db: Session, slot_id: int | None, pax: int) -> models.AvailabilitySlot | None:
    """Give ``pax`` seats back to the slot, never dropping below zero.

    Missing slots are ignored; the booking outlives a deleted slot.
    """
    if slot_id is None:
        return None
    slot = _lock_slot(db, slot_id)
    if slot is None:
        logger.warning("Release skipped, slot is gone", extra={"slot_id": slot_id, "pax": pax})
        return None
    counter = models.AvailabilitySlot.booked_count
    db.execute(
        update(models.AvailabilitySlot)
        .where(models.AvailabilitySlot.id == slot_id)
        .values(booked_count=case((counter - pax < 0, 0), else_=counter - pax))
        .execution_options(synchronize_session=False)
    )
    db.refresh(slot)
    logger.info(
        "Released seats",
        extra={"slot_id": slot_id, "pax": pax, "booked_count": slot.booked_count},
    )
    return slot


def _slot_starts_at(slot: models.AvailabilitySlot) -> datetime:
    tz = ZoneInfo(get_settings().timezone)
    return datetime.combine(slot.date, slot.start_time, tzinfo=tz)


def check_capacity(
    db: Session,
    slot_id: int,
    pax: int,
    *,
    now: datetime | None = None,
) -> CapacityCheck:
    slot = db.get(models.AvailabilitySlot, slot_id)
    if slot is None:
        raise SlotNotFoundError("Slot not found")
    if slot.is_blocked:
        return CapacityCheck(available=False, remaining=0, error="This date is blocked")
    current = now or datetime.now(ZoneInfo(get_settings().timezone))
    if _slot_starts_at(slot) < current:
        return CapacityCheck(available=False, remaining=0, error="This slot is in the past")
    remaining = slot.capacity - slot.booked_count
    available = remaining >= pax
    return CapacityCheck(
        available=available,
        remaining=remaining,
        capacity=slot.capacity,
        booked=slot.booked_count,
        error=None if available else "Not enough capacity",
    )
