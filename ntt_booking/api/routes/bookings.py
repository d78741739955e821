import datetime as dt

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from ...api import deps
from ...db.session import get_db
from ...db import models, schemas
from ...db.models.booking import BookingStatus
from ...services import booking_service

router = APIRouter(prefix="/bookings", tags=["bookings"])

STAFF_ROLES = ("owner", "admin", "staff")


@router.post("", response_model=schemas.BookingCreated, status_code=status.HTTP_201_CREATED)
def create_booking(payload: schemas.BookingCreate, db: Session = Depends(get_db)):
    booking = booking_service.create_booking(db, payload)
    return schemas.BookingCreated(
        booking_id=booking.id,
        ref_code=booking.ref_code,
        expires_at=booking.expires_at,
    )


@router.get("/ref/{ref_code}", response_model=schemas.Booking)
def get_booking_by_ref(ref_code: str, db: Session = Depends(get_db)):
    return booking_service.get_booking_by_ref(db, ref_code)


@router.get("", response_model=list[schemas.Booking])
def list_bookings(
    business_id: int | None = None,
    booking_status: BookingStatus | None = None,
    booking_date: dt.date | None = None,
    db: Session = Depends(get_db),
    staff: models.StaffUser = Depends(deps.require_roles(*STAFF_ROLES)),
):
    if staff.business_id is not None:
        business_id = deps.resolve_business_id(staff, business_id)
    return booking_service.list_bookings(
        db, business_id=business_id, status=booking_status, booking_date=booking_date
    )


def _owned_booking(db: Session, booking_id: int, staff: models.StaffUser) -> models.Booking:
    booking = booking_service.get_booking(db, booking_id)
    deps.resolve_business_id(staff, booking.business_id)
    return booking


@router.get("/{booking_id}", response_model=schemas.Booking)
def get_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    staff: models.StaffUser = Depends(deps.require_roles(*STAFF_ROLES)),
):
    return _owned_booking(db, booking_id, staff)


@router.post("/{booking_id}/confirm", response_model=schemas.Booking)
def confirm_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    staff: models.StaffUser = Depends(deps.require_roles(*STAFF_ROLES)),
):
    _owned_booking(db, booking_id, staff)
    return booking_service.confirm_booking(db, booking_id, actor=staff.login)


@router.post("/{booking_id}/cancel", response_model=schemas.Booking)
def cancel_booking(
    booking_id: int,
    payload: schemas.BookingCancel | None = None,
    db: Session = Depends(get_db),
    staff: models.StaffUser = Depends(deps.require_roles(*STAFF_ROLES)),
):
    _owned_booking(db, booking_id, staff)
    return booking_service.cancel_booking(db, booking_id, actor=staff.login, reason=payload.reason if payload else None)


@router.post("/{booking_id}/complete", response_model=schemas.Booking)
def complete_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    staff: models.StaffUser = Depends(deps.require_roles(*STAFF_ROLES)),
):
    _owned_booking(db, booking_id, staff)
    return booking_service.complete_booking(db, booking_id, actor=staff.login)


@router.post("/{booking_id}/no-show", response_model=schemas.Booking)
def mark_no_show(
    booking_id: int,
    db: Session = Depends(get_db),
    staff: models.StaffUser = Depends(deps.require_roles(*STAFF_ROLES)),
):
    _owned_booking(db, booking_id, staff)
    return booking_service.mark_no_show(db, booking_id, actor=staff.login)
