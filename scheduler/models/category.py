"""Category model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, func
from scheduler.database import Base

DEFAULT_CATEGORY_COLOR = "blue"


class Category(Base):
    """An owner-defined label used to group event types."""
    __tablename__ = "categories"
    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_categories_user_name"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    name = Column(String(100), nullable=False)
    color = Column(String(32), default=DEFAULT_CATEGORY_COLOR)
    description = Column(Text)
    created_at = Column(DateTime, server_default=func.now())
