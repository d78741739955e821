import datetime as dt
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from ...api import deps
from ...db.session import get_db
from ...db import models, schemas
from ...services import availability_service, capacity_service

router = APIRouter(prefix="/availability", tags=["availability"])

STAFF_ROLES = ("owner", "admin", "staff")
MANAGER_ROLES = ("owner", "admin")


@router.get("/check", response_model=schemas.CapacityCheck)
def check_capacity(
    slot_id: int,
    pax: int = Query(default=1, ge=1),
    db: Session = Depends(get_db),
):
    result = capacity_service.check_capacity(db, slot_id, pax)
    return schemas.CapacityCheck(**asdict(result))


@router.get("", response_model=list[schemas.AvailabilitySlot])
def list_slots(
    business_id: int | None = None,
    date: dt.date | None = None,
    year: int | None = Query(default=None, ge=2000),
    month: int | None = Query(default=None, ge=1, le=12),
    db: Session = Depends(get_db),
    staff: models.StaffUser = Depends(deps.require_roles(*STAFF_ROLES)),
):
    business_id = deps.resolve_business_id(staff, business_id)
    if date is not None:
        return availability_service.list_slots_for_date(db, business_id, date)
    if year is None or month is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Either date or year and month are required",
        )
    return availability_service.list_slots_for_month(db, business_id, year, month)


@router.post("", response_model=schemas.AvailabilitySlot, status_code=status.HTTP_201_CREATED)
def create_slot(
    payload: schemas.AvailabilitySlotCreate,
    db: Session = Depends(get_db),
    staff: models.StaffUser = Depends(deps.require_roles(*MANAGER_ROLES)),
):
    business_id = deps.resolve_business_id(staff, payload.business_id)
    return availability_service.create_slot(db, business_id, payload)


@router.post("/recurring", status_code=status.HTTP_201_CREATED)
def create_recurring_slots(
    payload: schemas.RecurringSlotsCreate,
    db: Session = Depends(get_db),
    staff: models.StaffUser = Depends(deps.require_roles(*MANAGER_ROLES)),
):
    business_id = deps.resolve_business_id(staff, payload.business_id)
    slots = availability_service.create_recurring_slots(db, business_id, payload)
    return {
        "success": True,
        "count": len(slots),
        "slots": [schemas.AvailabilitySlot.model_validate(slot) for slot in slots],
    }


@router.post("/block", response_model=list[schemas.AvailabilitySlot])
def block_date(
    payload: schemas.BlockDate,
    db: Session = Depends(get_db),
    staff: models.StaffUser = Depends(deps.require_roles(*MANAGER_ROLES)),
):
    business_id = deps.resolve_business_id(staff, payload.business_id)
    return availability_service.toggle_block_date(db, business_id, payload.date, payload.blocked)


@router.patch("/{slot_id}", response_model=schemas.AvailabilitySlot)
def update_slot(
    slot_id: int,
    payload: schemas.AvailabilitySlotUpdate,
    db: Session = Depends(get_db),
    staff: models.StaffUser = Depends(deps.require_roles(*MANAGER_ROLES)),
):
    slot = availability_service.get_slot(db, slot_id)
    deps.resolve_business_id(staff, slot.business_id)
    return availability_service.update_slot(db, slot_id, payload)


@router.delete("/{slot_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_slot(
    slot_id: int,
    db: Session = Depends(get_db),
    staff: models.StaffUser = Depends(deps.require_roles(*MANAGER_ROLES)),
):
    slot = availability_service.get_slot(db, slot_id)
    deps.resolve_business_id(staff, slot.business_id)
    availability_service.delete_slot(db, slot_id)
