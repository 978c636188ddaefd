import logging
from datetime import date, datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from scheduler.auth.dependencies import get_current_user
from scheduler.core import config
from scheduler.database import get_db
from scheduler.models.availability import AvailabilityWindow
from scheduler.models.booking import BOOKING_CONFIRMED, Booking
from scheduler.models.user import User
from scheduler.routes.common import (
    database_unavailable,
    ensure_database_ready,
    get_confirmed_bookings,
    get_owner_windows,
    resolve_timezone,
)
from scheduler.routes.event_type_routes import get_owned_event_type
from scheduler.services.slots import (
    SlotValidationError,
    TimeSlot,
    generate_time_slots,
    next_available_slots,
    parse_clock_time,
    weekday_index,
)

router = APIRouter(tags=['availability'])

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 50


class AvailabilityWindowRequest(BaseModel):
    start_time: str
    end_time: str

    @field_validator('start_time', 'end_time')
    @classmethod
    def validate_clock_time(cls, value: str) -> str:
        return parse_clock_time(value).strftime('%H:%M')

    @model_validator(mode='after')
    def validate_order(self) -> 'AvailabilityWindowRequest':
        if self.start_time >= self.end_time:
            raise ValueError('Start time must be before end time.')
        return self


class ReplaceDayAvailabilityRequest(BaseModel):
    windows: list[AvailabilityWindowRequest]

    @field_validator('windows')
    @classmethod
    def validate_no_overlap(cls, value: list[AvailabilityWindowRequest]) -> list[AvailabilityWindowRequest]:
        ordered = sorted(value, key=lambda window: window.start_time)
        for previous, current in zip(ordered, ordered[1:]):
            if current.start_time < previous.end_time:
                raise ValueError(
                    f'Windows {previous.start_time}-{previous.end_time} and '
                    f'{current.start_time}-{current.end_time} overlap.'
                )
        return ordered


class AvailabilityWindowResponse(BaseModel):
    id: int
    day_of_week: int
    start_time: str
    end_time: str

    class Config:
        from_attributes = True


class DaySlotsResponse(BaseModel):
    date: date
    timezone: str
    duration: int
    slots: list[TimeSlot]


def run_slot_generation(generator, *args, **kwargs) -> list[TimeSlot]:
    try:
        return generator(*args, **kwargs)
    except SlotValidationError as exc:
        logger.exception('Stored availability is invalid.')
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f'Availability settings are invalid: {exc}',
        ) from exc


@router.get('', response_model=list[AvailabilityWindowResponse])
def list_availability(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return get_owner_windows(db, current_user.id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.put('/{day_of_week}', response_model=list[AvailabilityWindowResponse])
def replace_day_availability(
    data: ReplaceDayAvailabilityRequest,
    day_of_week: int = Path(..., ge=0, le=6),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        db.query(AvailabilityWindow).filter(
            AvailabilityWindow.user_id == current_user.id,
            AvailabilityWindow.day_of_week == day_of_week,
        ).delete(synchronize_session=False)

        for window in data.windows:
            db.add(
                AvailabilityWindow(
                    user_id=current_user.id,
                    day_of_week=day_of_week,
                    start_time=window.start_time,
                    end_time=window.end_time,
                )
            )

        db.commit()

        return get_owner_windows(db, current_user.id, day_of_week)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/windows/{window_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_availability_window(
    window_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        window = db.query(AvailabilityWindow).filter(
            AvailabilityWindow.id == window_id,
            AvailabilityWindow.user_id == current_user.id,
        ).first()

        if window is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Availability window not found.',
            )

        db.delete(window)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/slots', response_model=DaySlotsResponse)
def list_day_slots(
    event_type_id: int = Query(...),
    slot_date: date = Query(..., alias='date'),
    timezone: str = Query(default=config.DEFAULT_TIMEZONE),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    tz = resolve_timezone(timezone)

    ensure_database_ready()

    try:
        event_type = get_owned_event_type(db, event_type_id, current_user)
        windows = get_owner_windows(db, current_user.id, weekday_index(slot_date))
        bookings = get_confirmed_bookings(db, current_user.id, slot_date)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    duration = event_type.duration or config.DEFAULT_EVENT_DURATION
    slots = run_slot_generation(
        generate_time_slots,
        slot_date,
        windows,
        bookings,
        duration,
        available_only=False,
        tz=tz,
    )

    return DaySlotsResponse(date=slot_date, timezone=timezone, duration=duration, slots=slots)


@router.get('/next', response_model=list[TimeSlot])
def list_next_available_slots(
    event_type_id: int = Query(...),
    limit: int = Query(default=10, ge=1, le=MAX_SUGGESTIONS),
    timezone: str = Query(default=config.DEFAULT_TIMEZONE),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    tz = resolve_timezone(timezone)
    today = datetime.now(tz).date()
    horizon_end = today + timedelta(days=config.SUGGESTION_HORIZON_DAYS)

    ensure_database_ready()

    try:
        event_type = get_owned_event_type(db, event_type_id, current_user)
        windows = get_owner_windows(db, current_user.id)
        bookings = db.query(Booking).filter(
            Booking.user_id == current_user.id,
            Booking.status == BOOKING_CONFIRMED,
            Booking.date >= today,
            Booking.date < horizon_end,
        ).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    bookings_by_date: dict[date, list[Booking]] = {}
    for booking in bookings:
        bookings_by_date.setdefault(booking.date, []).append(booking)

    return run_slot_generation(
        next_available_slots,
        today,
        windows,
        bookings_by_date,
        event_type.duration or config.DEFAULT_EVENT_DURATION,
        limit=limit,
        horizon_days=config.SUGGESTION_HORIZON_DAYS,
        tz=tz,
    )
