import logging
from datetime import date, datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from scheduler.core import config
from scheduler.database import get_db
from scheduler.models.booking import BOOKING_CONFIRMED, Booking
from scheduler.models.event_type import EventType
from scheduler.routes.common import (
    EMAIL_PATTERN,
    database_unavailable,
    ensure_database_ready,
    get_confirmed_bookings,
    get_owner_windows,
    resolve_timezone,
)
from scheduler.services.rate_limiter import RateLimiter, client_ip
from scheduler.services.slots import (
    SlotValidationError,
    TimeSlot,
    generate_time_slots,
    is_slot_available,
    parse_clock_time,
    weekday_index,
)

router = APIRouter(tags=['public'])

logger = logging.getLogger(__name__)

DURATION_TOLERANCE = timedelta(minutes=1)
MAX_BOOKING_NOTES_LENGTH = 1000

availability_limiter = RateLimiter(config.AVAILABILITY_RATE_LIMIT, config.RATE_LIMIT_WINDOW_SECONDS)
booking_limiter = RateLimiter(config.BOOKING_RATE_LIMIT, config.RATE_LIMIT_WINDOW_SECONDS)


class PublicEventTypeResponse(BaseModel):
    id: int
    slug: str
    duration: int


class PublicAvailabilityResponse(BaseModel):
    slots: list[TimeSlot]
    date: date
    timezone: str
    event_type: PublicEventTypeResponse | None = Field(default=None, serialization_alias='eventType')


class CreateBookingRequest(BaseModel):
    event_type_id: int
    slug: str
    date: date
    start_time: str
    end_time: str
    client_name: str
    client_email: str
    client_phone: str
    notes: str | None = None
    timezone: str | None = None

    @field_validator('slug', 'client_name', 'client_phone')
    @classmethod
    def validate_required_text(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('This field is required.')
        return normalized

    @field_validator('client_email')
    @classmethod
    def validate_client_email(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not normalized:
            raise ValueError('Client email is required.')
        if not EMAIL_PATTERN.match(normalized):
            raise ValueError('Valid email address is required.')
        return normalized

    @field_validator('start_time', 'end_time')
    @classmethod
    def validate_clock_time(cls, value: str) -> str:
        return parse_clock_time(value).strftime('%H:%M')

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if len(normalized) > MAX_BOOKING_NOTES_LENGTH:
            raise ValueError(f'Notes must be {MAX_BOOKING_NOTES_LENGTH} characters or fewer.')

        return normalized


class BookingConfirmation(BaseModel):
    id: int
    event_type: str
    date: date
    start_time: str
    end_time: str
    client_name: str
    client_email: str
    timezone: str


class CreateBookingResponse(BaseModel):
    success: bool
    booking: BookingConfirmation


def parse_requested_date(value: str) -> date:
    try:
        return date.fromisoformat(value.strip())
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Invalid date format',
        ) from exc


def get_active_event_type(db: Session, slug: str) -> EventType:
    event_type = db.query(EventType).filter(
        EventType.slug == slug,
        EventType.active.is_(True),
    ).first()

    if event_type is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Event type not found or inactive',
        )

    return event_type


@router.get(
    '/availability',
    response_model=PublicAvailabilityResponse,
    response_model_exclude_none=True,
)
def get_public_availability(
    request: Request,
    slug: str = Query(..., min_length=1),
    date_param: str = Query(..., alias='date'),
    timezone: str = Query(default=config.DEFAULT_TIMEZONE),
    db: Session = Depends(get_db),
):
    if not availability_limiter.check(client_ip(request)):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail='Too many requests. Please try again later.',
        )

    requested_date = parse_requested_date(date_param)
    tz = resolve_timezone(timezone)

    if requested_date < datetime.now(tz).date():
        return PublicAvailabilityResponse(slots=[], date=requested_date, timezone=timezone)

    ensure_database_ready()

    try:
        event_type = get_active_event_type(db, slug)
        windows = get_owner_windows(db, event_type.user_id, weekday_index(requested_date))
        if not windows:
            return PublicAvailabilityResponse(slots=[], date=requested_date, timezone=timezone)

        bookings = get_confirmed_bookings(db, event_type.user_id, requested_date)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    duration = event_type.duration or config.DEFAULT_EVENT_DURATION
    try:
        slots = generate_time_slots(
            requested_date,
            windows,
            bookings,
            duration,
            available_only=True,
            tz=tz,
        )
    except SlotValidationError as exc:
        logger.exception('Stored availability for event type %s is invalid.', event_type.slug)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail='Availability settings are invalid.',
        ) from exc

    return PublicAvailabilityResponse(
        slots=slots,
        date=requested_date,
        timezone=timezone,
        event_type=PublicEventTypeResponse(id=event_type.id, slug=event_type.slug, duration=duration),
    )


@router.post('/bookings', response_model=CreateBookingResponse, status_code=status.HTTP_201_CREATED)
def create_public_booking(request: Request, data: CreateBookingRequest, db: Session = Depends(get_db)):
    if not booking_limiter.check(f'{client_ip(request)}:{data.slug}'):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail='Too many requests. Please try again later.',
        )

    booking_timezone = data.timezone or config.DEFAULT_TIMEZONE
    tz = resolve_timezone(booking_timezone)

    ensure_database_ready()

    try:
        event_type = get_active_event_type(db, data.slug)

        if event_type.id != data.event_type_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Event type ID mismatch',
            )

        start = datetime.combine(data.date, parse_clock_time(data.start_time), tzinfo=tz)
        end = datetime.combine(data.date, parse_clock_time(data.end_time), tzinfo=tz)

        if start < datetime.now(tz):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Cannot book time slots in the past',
            )

        expected_duration = timedelta(minutes=event_type.duration or config.DEFAULT_EVENT_DURATION)
        if abs((end - start) - expected_duration) > DURATION_TOLERANCE:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Booking duration does not match event type duration',
            )

        windows = get_owner_windows(db, event_type.user_id, weekday_index(data.date))
        bookings = get_confirmed_bookings(db, event_type.user_id, data.date)

        try:
            available = is_slot_available(start, end, windows, bookings)
        except SlotValidationError as exc:
            logger.exception('Stored availability for event type %s is invalid.', event_type.slug)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail='Availability settings are invalid.',
            ) from exc

        if not available:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='Selected time slot is no longer available',
            )

        booking = Booking(
            event_type_id=event_type.id,
            user_id=event_type.user_id,
            date=data.date,
            start_time=data.start_time,
            end_time=data.end_time,
            client_name=data.client_name,
            client_email=data.client_email,
            client_phone=data.client_phone,
            notes=data.notes or '',
            timezone=booking_timezone,
            status=BOOKING_CONFIRMED,
        )
        db.add(booking)
        db.commit()
        db.refresh(booking)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Booking creation failed for event type %s.', data.slug)
        raise database_unavailable() from exc

    logger.info(
        'Booking %s confirmed for %s (%s on %s %s-%s %s); confirmation email pending.',
        booking.id,
        booking.client_email,
        event_type.title,
        booking.date,
        booking.start_time,
        booking.end_time,
        booking_timezone,
    )

    return CreateBookingResponse(
        success=True,
        booking=BookingConfirmation(
            id=booking.id,
            event_type=event_type.title,
            date=booking.date,
            start_time=booking.start_time,
            end_time=booking.end_time,
            client_name=booking.client_name,
            client_email=booking.client_email,
            timezone=booking_timezone,
        ),
    )
