"""Booking model definitions."""

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, func
from scheduler.database import Base

BOOKING_CONFIRMED = "confirmed"
BOOKING_CANCELLED = "cancelled"


class Booking(Base):
    """Represents a reservation of an event type on a specific date."""
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True)
    event_type_id = Column(Integer, ForeignKey("event_types.id"), index=True)
    user_id = Column(Integer, ForeignKey("users.id"))
    date = Column(Date, nullable=False)
    start_time = Column(String(8), nullable=False)  # HH:MM
    end_time = Column(String(8), nullable=False)
    client_name = Column(String)
    client_email = Column(String)
    client_phone = Column(String)
    notes = Column(String)
    timezone = Column(String)
    status = Column(String, default=BOOKING_CONFIRMED)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
