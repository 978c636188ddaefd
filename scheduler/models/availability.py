"""Availability model definitions."""

from sqlalchemy import Column, ForeignKey, Integer, String
from scheduler.database import Base


class AvailabilityWindow(Base):
    """Represents a recurring weekly open period."""
    __tablename__ = "availability"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True)
    day_of_week = Column(Integer, nullable=False)  # 0 = Sunday
    start_time = Column(String(8), nullable=False)  # HH:MM
    end_time = Column(String(8), nullable=False)
