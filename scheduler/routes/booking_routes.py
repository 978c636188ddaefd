import logging
from datetime import date, datetime, timedelta, tzinfo

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from scheduler.auth.dependencies import get_current_user
from scheduler.core import config
from scheduler.database import get_db
from scheduler.models.booking import BOOKING_CANCELLED, BOOKING_CONFIRMED, Booking
from scheduler.models.user import User
from scheduler.routes.common import (
    EMAIL_PATTERN,
    database_unavailable,
    ensure_database_ready,
    get_confirmed_bookings,
    get_owner_windows,
    resolve_timezone,
)
from scheduler.routes.event_type_routes import get_owned_event_type
from scheduler.services.slots import SlotValidationError, is_slot_available, parse_clock_time, weekday_index

router = APIRouter(tags=['bookings'])

logger = logging.getLogger(__name__)

BOOKING_STATUSES = {BOOKING_CONFIRMED, BOOKING_CANCELLED}
SLOT_TAKEN_DETAIL = 'Selected time slot is not available.'


def _clean_optional_text(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


def _clean_email(value: str | None) -> str | None:
    normalized = _clean_optional_text(value)
    if normalized is None:
        return None
    normalized = normalized.lower()
    if not EMAIL_PATTERN.match(normalized):
        raise ValueError('Valid email address is required.')
    return normalized


def _clean_status(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip().lower()
    if normalized not in BOOKING_STATUSES:
        raise ValueError('Invalid booking status.')
    return normalized


def _clean_clock_time(value: str | None) -> str | None:
    if value is None:
        return None
    return parse_clock_time(value).strftime('%H:%M')


class OwnerBookingRequest(BaseModel):
    event_type_id: int
    date: date
    start_time: str
    end_time: str | None = None
    client_name: str
    client_email: str | None = None
    client_phone: str | None = None
    notes: str | None = None
    timezone: str | None = None
    status: str = BOOKING_CONFIRMED

    @field_validator('client_name')
    @classmethod
    def validate_client_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Client name is required.')
        return normalized

    @field_validator('client_email')
    @classmethod
    def validate_client_email(cls, value: str | None) -> str | None:
        return _clean_email(value)

    @field_validator('client_phone', 'notes')
    @classmethod
    def validate_optional_text(cls, value: str | None) -> str | None:
        return _clean_optional_text(value)

    @field_validator('start_time', 'end_time')
    @classmethod
    def validate_clock_time(cls, value: str | None) -> str | None:
        return _clean_clock_time(value)

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str) -> str:
        return _clean_status(value)

    @model_validator(mode='after')
    def validate_order(self) -> 'OwnerBookingRequest':
        if self.end_time is not None and self.end_time <= self.start_time:
            raise ValueError('End time must be after start time.')
        return self


class UpdateBookingRequest(BaseModel):
    booking_date: date | None = Field(default=None, alias='date')
    start_time: str | None = None
    end_time: str | None = None
    client_name: str | None = None
    client_email: str | None = None
    client_phone: str | None = None
    notes: str | None = None
    timezone: str | None = None
    status: str | None = None

    @field_validator('client_name')
    @classmethod
    def validate_client_name(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        if not normalized:
            raise ValueError('Client name cannot be blank.')
        return normalized

    @field_validator('client_email')
    @classmethod
    def validate_client_email(cls, value: str | None) -> str | None:
        return _clean_email(value)

    @field_validator('client_phone', 'notes')
    @classmethod
    def validate_optional_text(cls, value: str | None) -> str | None:
        return _clean_optional_text(value)

    @field_validator('start_time', 'end_time')
    @classmethod
    def validate_clock_time(cls, value: str | None) -> str | None:
        return _clean_clock_time(value)

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str | None) -> str | None:
        return _clean_status(value)

    class Config:
        populate_by_name = True


class BookingResponse(BaseModel):
    id: int
    event_type_id: int | None = None
    date: date
    start_time: str
    end_time: str
    client_name: str | None = None
    client_email: str | None = None
    client_phone: str | None = None
    notes: str | None = None
    timezone: str | None = None
    status: str
    created_at: datetime | None = None

    class Config:
        from_attributes = True


def get_owned_booking(db: Session, booking_id: int, owner: User) -> Booking:
    booking = db.query(Booking).filter(
        Booking.id == booking_id,
        Booking.user_id == owner.id,
    ).first()

    if booking is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Booking not found.',
        )

    return booking


def booking_interval(booking_date: date, start_time: str, end_time: str, tz: tzinfo) -> tuple[datetime, datetime]:
    start = datetime.combine(booking_date, parse_clock_time(start_time), tzinfo=tz)
    end = datetime.combine(booking_date, parse_clock_time(end_time), tzinfo=tz)

    if end <= start:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='End time must be after start time.',
        )

    return start, end


def end_after(start_time: str, length: timedelta) -> str:
    end = datetime.combine(date.min, parse_clock_time(start_time)) + length
    if end.date() != date.min:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Bookings cannot run past midnight.',
        )
    return end.time().strftime('%H:%M')


def ensure_slot_open(
    db: Session,
    owner_id: int,
    start: datetime,
    end: datetime,
    exclude_booking_id: int | None = None,
) -> None:
    booking_date = start.date()
    windows = get_owner_windows(db, owner_id, weekday_index(booking_date))
    bookings = [
        booking
        for booking in get_confirmed_bookings(db, owner_id, booking_date)
        if booking.id != exclude_booking_id
    ]

    try:
        available = is_slot_available(start, end, windows, bookings)
    except SlotValidationError as exc:
        logger.exception('Stored availability for owner %s is invalid.', owner_id)
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f'Availability settings are invalid: {exc}',
        ) from exc

    if not available:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=SLOT_TAKEN_DETAIL,
        )


@router.get('', response_model=list[BookingResponse])
def list_bookings(
    booking_status: str | None = Query(default=None, alias='status'),
    booking_date: date | None = Query(default=None, alias='date'),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if booking_status is not None:
        booking_status = booking_status.strip().lower()
        if booking_status not in BOOKING_STATUSES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Invalid booking status.',
            )

    ensure_database_ready()

    try:
        query = db.query(Booking).filter(Booking.user_id == current_user.id)
        if booking_status is not None:
            query = query.filter(Booking.status == booking_status)
        if booking_date is not None:
            query = query.filter(Booking.date == booking_date)

        return query.order_by(Booking.date.asc(), Booking.start_time.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('', response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    data: OwnerBookingRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    booking_timezone = data.timezone or config.DEFAULT_TIMEZONE
    tz = resolve_timezone(booking_timezone)

    ensure_database_ready()

    try:
        event_type = get_owned_event_type(db, data.event_type_id, current_user)

        end_time = data.end_time
        if end_time is None:
            duration = event_type.duration or config.DEFAULT_EVENT_DURATION
            end_time = end_after(data.start_time, timedelta(minutes=duration))

        start, end = booking_interval(data.date, data.start_time, end_time, tz)
        if data.status == BOOKING_CONFIRMED:
            ensure_slot_open(db, current_user.id, start, end)

        booking = Booking(
            event_type_id=event_type.id,
            user_id=current_user.id,
            date=data.date,
            start_time=data.start_time,
            end_time=end_time,
            client_name=data.client_name,
            client_email=data.client_email,
            client_phone=data.client_phone,
            notes=data.notes,
            timezone=booking_timezone,
            status=data.status,
        )
        db.add(booking)
        db.commit()
        db.refresh(booking)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    logger.info('Booking %s added by %s.', booking.id, current_user.email)
    return booking


@router.patch('/{booking_id}', response_model=BookingResponse)
def update_booking(
    booking_id: int,
    data: UpdateBookingRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    changes = {
        field_name: value
        for field_name, value in data.model_dump(exclude_unset=True).items()
        if value is not None or field_name in {'client_email', 'client_phone', 'notes'}
    }

    ensure_database_ready()

    try:
        booking = get_owned_booking(db, booking_id, current_user)
        tz = resolve_timezone(changes.get('timezone') or booking.timezone or config.DEFAULT_TIMEZONE)

        new_date = changes.pop('booking_date', booking.date)
        new_start = changes.get('start_time', booking.start_time)
        if 'end_time' in changes:
            new_end = changes['end_time']
        elif 'start_time' in changes:
            # Moving the start keeps the booking's length.
            old_start, old_end = booking_interval(booking.date, booking.start_time, booking.end_time, tz)
            new_end = end_after(new_start, old_end - old_start)
        else:
            new_end = booking.end_time

        start, end = booking_interval(new_date, new_start, new_end, tz)
        new_status = changes.get('status', booking.status)

        moved = (new_date, new_start, new_end) != (booking.date, booking.start_time, booking.end_time)
        reconfirmed = new_status == BOOKING_CONFIRMED and booking.status != BOOKING_CONFIRMED
        if new_status == BOOKING_CONFIRMED and (moved or reconfirmed):
            ensure_slot_open(db, current_user.id, start, end, exclude_booking_id=booking.id)

        changes.update(date=new_date, start_time=new_start, end_time=new_end, status=new_status)
        for field_name, value in changes.items():
            setattr(booking, field_name, value)

        db.commit()
        db.refresh(booking)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    logger.info('Booking %s updated by %s.', booking.id, current_user.email)
    return booking


@router.post('/{booking_id}/cancel', response_model=BookingResponse)
def cancel_booking(
    booking_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        booking = get_owned_booking(db, booking_id, current_user)

        if booking.status == BOOKING_CANCELLED:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='Booking is already cancelled.',
            )

        booking.status = BOOKING_CANCELLED
        db.commit()
        db.refresh(booking)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    logger.info('Booking %s cancelled by %s.', booking.id, current_user.email)
    return booking


@router.delete('/{booking_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_booking(
    booking_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        booking = get_owned_booking(db, booking_id, current_user)
        db.delete(booking)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    logger.info('Booking %s deleted by %s.', booking_id, current_user.email)
