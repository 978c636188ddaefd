from datetime import datetime, time, timedelta, timezone

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from scheduler.models.availability import AvailabilityWindow
from scheduler.models.booking import BOOKING_CONFIRMED, Booking
from scheduler.models.user import User
from scheduler.routes.availability_routes import (
    AvailabilityWindowRequest,
    ReplaceDayAvailabilityRequest,
    delete_availability_window,
    list_availability,
    list_day_slots,
    list_next_available_slots,
    replace_day_availability,
)
from scheduler.services.slots import weekday_index

SLOT_DAY = datetime.now(timezone.utc).date() + timedelta(days=3)


def replace_request(*windows: tuple[str, str]) -> ReplaceDayAvailabilityRequest:
    return ReplaceDayAvailabilityRequest(
        windows=[AvailabilityWindowRequest(start_time=start, end_time=end) for start, end in windows]
    )


def test_availability_window_request_normalizes_times() -> None:
    request = AvailabilityWindowRequest(start_time='09:00:00', end_time=' 17:30 ')

    assert (request.start_time, request.end_time) == ('09:00', '17:30')


@pytest.mark.parametrize(
    ('start', 'end'),
    [('17:00', '09:00'), ('09:00', '09:00'), ('nine', '17:00'), ('09:00', '24:30')],
)
def test_availability_window_request_rejects_invalid_ranges(start: str, end: str) -> None:
    with pytest.raises(ValidationError):
        AvailabilityWindowRequest(start_time=start, end_time=end)


def test_replace_day_request_sorts_windows() -> None:
    request = replace_request(('14:00', '17:00'), ('09:00', '12:00'))

    assert [window.start_time for window in request.windows] == ['09:00', '14:00']


def test_replace_day_request_rejects_overlapping_windows() -> None:
    with pytest.raises(ValidationError):
        replace_request(('09:00', '12:00'), ('11:30', '13:00'))


def test_replace_day_availability_only_touches_that_weekday(db, owner) -> None:
    db.add_all([
        AvailabilityWindow(user_id=owner.id, day_of_week=1, start_time='08:00', end_time='10:00'),
        AvailabilityWindow(user_id=owner.id, day_of_week=2, start_time='08:00', end_time='10:00'),
    ])
    db.commit()

    replaced = replace_day_availability(
        data=replace_request(('14:00', '17:00'), ('09:00', '12:00')),
        day_of_week=1,
        current_user=owner,
        db=db,
    )

    assert [(window.start_time, window.end_time) for window in replaced] == [('09:00', '12:00'), ('14:00', '17:00')]

    listed = list_availability(current_user=owner, db=db)
    assert [(window.day_of_week, window.start_time) for window in listed] == [(1, '09:00'), (1, '14:00'), (2, '08:00')]


def test_replace_day_availability_with_no_windows_clears_the_day(db, owner) -> None:
    db.add(AvailabilityWindow(user_id=owner.id, day_of_week=5, start_time='09:00', end_time='12:00'))
    db.commit()

    replaced = replace_day_availability(data=replace_request(), day_of_week=5, current_user=owner, db=db)

    assert replaced == []
    assert list_availability(current_user=owner, db=db) == []


def test_delete_availability_window_rejects_other_owners_window(db, owner) -> None:
    stranger = User(email='stranger@example.com')
    db.add(stranger)
    db.commit()
    window = AvailabilityWindow(user_id=owner.id, day_of_week=1, start_time='09:00', end_time='12:00')
    db.add(window)
    db.commit()

    with pytest.raises(HTTPException) as exception_info:
        delete_availability_window(window_id=window.id, current_user=stranger, db=db)

    assert exception_info.value.status_code == 404

    delete_availability_window(window_id=window.id, current_user=owner, db=db)
    assert db.query(AvailabilityWindow).count() == 0


def test_list_day_slots_flags_booked_slots(db, owner, event_type) -> None:
    db.add(AvailabilityWindow(
        user_id=owner.id,
        day_of_week=weekday_index(SLOT_DAY),
        start_time='09:00',
        end_time='10:00',
    ))
    db.add(Booking(
        event_type_id=event_type.id,
        user_id=owner.id,
        date=SLOT_DAY,
        start_time='09:30',
        end_time='10:00',
        client_name='Casey Client',
        client_email='casey@example.com',
        status=BOOKING_CONFIRMED,
    ))
    db.commit()

    response = list_day_slots(
        event_type_id=event_type.id,
        slot_date=SLOT_DAY,
        timezone='UTC',
        current_user=owner,
        db=db,
    )

    assert response.duration == 30
    assert [(slot.start.time(), slot.available) for slot in response.slots] == [
        (time(9, 0), True),
        (time(9, 15), False),
        (time(9, 30), False),
    ]


def test_list_day_slots_reports_invalid_stored_windows(db, owner, event_type) -> None:
    db.add(AvailabilityWindow(
        user_id=owner.id,
        day_of_week=weekday_index(SLOT_DAY),
        start_time='12:00',
        end_time='09:00',
    ))
    db.commit()

    with pytest.raises(HTTPException) as exception_info:
        list_day_slots(event_type_id=event_type.id, slot_date=SLOT_DAY, timezone='UTC', current_user=owner, db=db)

    assert exception_info.value.status_code == 422


def test_list_next_available_slots_returns_upcoming_open_slots(db, owner, event_type) -> None:
    db.add_all([
        AvailabilityWindow(user_id=owner.id, day_of_week=day, start_time='09:00', end_time='10:00')
        for day in range(7)
    ])
    db.commit()
    now = datetime.now(timezone.utc)

    suggestions = list_next_available_slots(
        event_type_id=event_type.id,
        limit=4,
        timezone='UTC',
        current_user=owner,
        db=db,
    )

    assert len(suggestions) == 4
    assert [slot.start for slot in suggestions] == sorted(slot.start for slot in suggestions)
    assert all(slot.start > now and slot.available for slot in suggestions)
