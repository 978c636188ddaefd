import re
from datetime import date
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from scheduler.database import ensure_availability_schema, ensure_booking_schema, ensure_event_type_schema
from scheduler.models.availability import AvailabilityWindow
from scheduler.models.booking import BOOKING_CONFIRMED, Booking

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and Postgres credentials.'

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')


def database_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )


def ensure_database_ready() -> None:
    try:
        ensure_availability_schema()
        ensure_booking_schema()
        ensure_event_type_schema()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


def resolve_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'Unknown timezone: {name}',
        ) from exc


def get_owner_windows(db: Session, user_id: int, day_of_week: int | None = None) -> list[AvailabilityWindow]:
    query = db.query(AvailabilityWindow).filter(AvailabilityWindow.user_id == user_id)
    if day_of_week is not None:
        query = query.filter(AvailabilityWindow.day_of_week == day_of_week)
    return query.order_by(AvailabilityWindow.day_of_week.asc(), AvailabilityWindow.start_time.asc()).all()


def get_confirmed_bookings(db: Session, user_id: int, booking_date: date) -> list[Booking]:
    return db.query(Booking).filter(
        Booking.user_id == user_id,
        Booking.date == booking_date,
        Booking.status == BOOKING_CONFIRMED,
    ).all()
