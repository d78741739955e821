from datetime import date, time

import pytest

from ntt_booking.core.errors import SlotInUseError, ValidationError
from ntt_booking.db import models, schemas
from ntt_booking.services import availability_service


def _recurring(**overrides):
    values = {
        "pattern_type": "weekly",
        "days_of_week": [1, 3],
        "start_date": date(2026, 6, 1),
        "end_date": date(2026, 6, 14),
        "start_time": time(9, 0),
        "end_time": time(11, 0),
        "capacity": 12,
    }
    values.update(overrides)
    return schemas.RecurringSlotsCreate(**values)


def test_week_of_month_counts_from_sunday():
    # June 2026 starts on a Monday
    assert availability_service.week_of_month(date(2026, 6, 1)) == 1
    assert availability_service.week_of_month(date(2026, 6, 6)) == 1
    assert availability_service.week_of_month(date(2026, 6, 7)) == 2
    assert availability_service.is_last_week(date(2026, 6, 29)) is True
    assert availability_service.is_last_week(date(2026, 6, 22)) is False


def test_weekly_pattern_dates():
    dates = availability_service.recurring_dates(_recurring())
    assert dates == [date(2026, 6, 1), date(2026, 6, 3), date(2026, 6, 8), date(2026, 6, 10)]


def test_monthly_pattern_dates():
    first = _recurring(pattern_type="monthly", monthly_week="first", days_of_week=[1], end_date=date(2026, 6, 30))
    assert availability_service.recurring_dates(first) == [date(2026, 6, 1)]

    last = _recurring(pattern_type="monthly", monthly_week="last", days_of_week=[1], end_date=date(2026, 6, 30))
    assert availability_service.recurring_dates(last) == [date(2026, 6, 29)]

    every = _recurring(pattern_type="monthly", monthly_week="all", days_of_week=[0], end_date=date(2026, 6, 30))
    assert availability_service.recurring_dates(every) == [
        date(2026, 6, 7),
        date(2026, 6, 14),
        date(2026, 6, 21),
        date(2026, 6, 28),
    ]


def test_custom_pattern_dates():
    payload = _recurring(
        pattern_type="custom",
        start_date=None,
        end_date=None,
        custom_dates=[date(2026, 7, 2), date(2026, 7, 1), date(2026, 7, 2)],
    )
    assert availability_service.recurring_dates(payload) == [date(2026, 7, 1), date(2026, 7, 2)]


def test_recurring_requires_date_range():
    with pytest.raises(ValueError):
        _recurring(start_date=None)


def test_create_recurring_skips_existing(db_session, business):
    created = availability_service.create_recurring_slots(db_session, business.id, _recurring())
    assert len(created) == 4
    assert all(slot.capacity == 12 and slot.booked_count == 0 for slot in created)

    again = availability_service.create_recurring_slots(
        db_session, business.id, _recurring(end_date=date(2026, 6, 17))
    )
    assert [slot.date for slot in again] == [date(2026, 6, 15), date(2026, 6, 17)]
    assert db_session.query(models.AvailabilitySlot).count() == 6


def test_create_slot_rejects_duplicate_time(db_session, business):
    payload = schemas.AvailabilitySlotCreate(
        date=date(2026, 6, 1), start_time=time(9, 0), end_time=time(11, 0), capacity=8
    )
    slot = availability_service.create_slot(db_session, business.id, payload)
    assert slot.remaining == 8
    with pytest.raises(ValidationError) as exc:
        availability_service.create_slot(db_session, business.id, payload)
    assert "start_time" in exc.value.errors


def test_update_slot_keeps_capacity_above_bookings(db_session, make_slot):
    slot = make_slot(capacity=10, booked_count=6)
    with pytest.raises(ValidationError):
        availability_service.update_slot(db_session, slot.id, schemas.AvailabilitySlotUpdate(capacity=5))

    updated = availability_service.update_slot(
        db_session, slot.id, schemas.AvailabilitySlotUpdate(capacity=6, notes="Small boat")
    )
    assert updated.capacity == 6
    assert updated.notes == "Small boat"


def test_update_slot_rejects_moving_onto_another_slot(db_session, make_slot):
    morning = make_slot(start_time=time(9, 0), end_time=time(11, 0))
    afternoon = make_slot(start_time=time(14, 0), end_time=time(16, 0))

    with pytest.raises(ValidationError) as exc:
        availability_service.update_slot(
            db_session,
            afternoon.id,
            schemas.AvailabilitySlotUpdate(start_time=time(9, 0), end_time=time(11, 0)),
        )
    assert "start_time" in exc.value.errors

    db_session.refresh(afternoon)
    assert afternoon.start_time == time(14, 0)

    # keeping its own start time is not a clash
    updated = availability_service.update_slot(
        db_session, morning.id, schemas.AvailabilitySlotUpdate(start_time=time(9, 0), capacity=4)
    )
    assert updated.capacity == 4


def test_delete_slot_with_bookings_is_refused(db_session, make_slot):
    busy = make_slot(booked_count=1)
    with pytest.raises(SlotInUseError):
        availability_service.delete_slot(db_session, busy.id)

    idle = make_slot(start_time=time(14, 0), end_time=time(16, 0))
    availability_service.delete_slot(db_session, idle.id)
    assert db_session.get(models.AvailabilitySlot, idle.id) is None


def test_block_date_blocks_every_slot(db_session, business, make_slot):
    morning = make_slot(date=date(2026, 8, 1), start_time=time(9, 0), end_time=time(11, 0))
    afternoon = make_slot(date=date(2026, 8, 1), start_time=time(14, 0), end_time=time(16, 0))

    blocked = availability_service.toggle_block_date(db_session, business.id, date(2026, 8, 1), True)
    assert {slot.id for slot in blocked} == {morning.id, afternoon.id}
    assert all(slot.is_blocked for slot in blocked)

    unblocked = availability_service.toggle_block_date(db_session, business.id, date(2026, 8, 1), False)
    assert not any(slot.is_blocked for slot in unblocked)


def test_block_empty_date_inserts_placeholder(db_session, business):
    target = date(2026, 8, 2)
    [placeholder] = availability_service.toggle_block_date(db_session, business.id, target, True)
    assert placeholder.is_blocked is True
    assert placeholder.capacity == 1
    assert placeholder.start_time == time(0, 0)
    assert placeholder.end_time == time(23, 59)

    assert availability_service.toggle_block_date(db_session, business.id, target, False) == []
    assert availability_service.list_slots_for_date(db_session, business.id, target) == []


def test_list_slots_for_month(db_session, business, make_slot):
    make_slot(date=date(2026, 9, 30))
    make_slot(date=date(2026, 9, 1))
    make_slot(date=date(2026, 10, 1))
    slots = availability_service.list_slots_for_month(db_session, business.id, 2026, 9)
    assert [slot.date for slot in slots] == [date(2026, 9, 1), date(2026, 9, 30)]
