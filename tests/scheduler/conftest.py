import os

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from scheduler.database import Base  # noqa: E402
from scheduler.models.availability import AvailabilityWindow  # noqa: E402
from scheduler.models.booking import Booking  # noqa: E402
from scheduler.models.category import Category  # noqa: E402
from scheduler.models.event_type import EventType  # noqa: E402
from scheduler.models.user import User  # noqa: E402

TABLES = [User.__table__, Category.__table__, EventType.__table__, AvailabilityWindow.__table__, Booking.__table__]


@pytest.fixture
def db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine, tables=TABLES)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine, tables=list(reversed(TABLES)))


@pytest.fixture
def owner(db):
    user = User(email='owner@example.com', full_name='Olivia Owner', role='owner')
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def event_type(db, owner):
    consultation = EventType(
        user_id=owner.id,
        title='Intro Consultation',
        slug='intro-consultation',
        duration=30,
        active=True,
    )
    db.add(consultation)
    db.commit()
    db.refresh(consultation)
    return consultation


@pytest.fixture(autouse=True)
def skip_schema_checks(monkeypatch: pytest.MonkeyPatch) -> None:
    for module in (
        'public_routes',
        'event_type_routes',
        'category_routes',
        'availability_routes',
        'booking_routes',
    ):
        monkeypatch.setattr(f'scheduler.routes.{module}.ensure_database_ready', lambda: None)
