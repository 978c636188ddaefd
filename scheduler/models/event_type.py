"""Event type model definitions."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text, func
from scheduler.database import Base


class EventType(Base):
    """A bookable session template owned by a calendar owner."""
    __tablename__ = "event_types"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True)
    title = Column(String, nullable=False)
    slug = Column(String, unique=True, index=True, nullable=False)
    description = Column(Text)
    duration = Column(Integer, default=30)  # minutes
    category_id = Column(Integer, ForeignKey("categories.id"), index=True)
    price = Column(Numeric(10, 2))
    active = Column(Boolean, default=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
