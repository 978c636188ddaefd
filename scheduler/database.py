from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from scheduler.core import config


engine = create_engine(config.DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_checked_tables: set[str] = set()

AVAILABILITY_MIGRATIONS = [
    ('user_id', 'ALTER TABLE availability ADD COLUMN user_id INTEGER'),
    ('day_of_week', 'ALTER TABLE availability ADD COLUMN day_of_week INTEGER'),
]
AVAILABILITY_INDEXES = [
    'CREATE INDEX IF NOT EXISTS idx_availability_user_day ON availability(user_id, day_of_week)',
]

EVENT_TYPE_MIGRATIONS = [
    ('category_id', 'ALTER TABLE event_types ADD COLUMN category_id INTEGER'),
]
EVENT_TYPE_INDEXES = [
    'CREATE INDEX IF NOT EXISTS idx_event_types_category ON event_types(category_id)',
]

BOOKING_MIGRATIONS = [
    ('client_phone', 'ALTER TABLE bookings ADD COLUMN client_phone VARCHAR'),
    ('notes', 'ALTER TABLE bookings ADD COLUMN notes VARCHAR'),
    ('timezone', 'ALTER TABLE bookings ADD COLUMN timezone VARCHAR'),
    ('updated_at', 'ALTER TABLE bookings ADD COLUMN updated_at TIMESTAMP'),
]
BOOKING_INDEXES = [
    'CREATE INDEX IF NOT EXISTS idx_bookings_user_date_status ON bookings(user_id, date, status)',
    'CREATE INDEX IF NOT EXISTS idx_bookings_event_type_date ON bookings(event_type_id, date)',
]


def _ensure_table_schema(table_name: str, migration_steps: list[tuple[str, str]], indexes: list[str]) -> None:
    if table_name in _checked_tables:
        return

    with _schema_lock:
        if table_name in _checked_tables:
            return

        inspector = inspect(engine)

        if table_name not in inspector.get_table_names():
            _checked_tables.add(table_name)
            return

        existing_columns = {column['name'] for column in inspector.get_columns(table_name)}

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            for statement in indexes:
                connection.execute(text(statement))

        _checked_tables.add(table_name)


def ensure_availability_schema() -> None:
    _ensure_table_schema('availability', AVAILABILITY_MIGRATIONS, AVAILABILITY_INDEXES)


def ensure_event_type_schema() -> None:
    _ensure_table_schema('event_types', EVENT_TYPE_MIGRATIONS, EVENT_TYPE_INDEXES)


def ensure_booking_schema() -> None:
    _ensure_table_schema('bookings', BOOKING_MIGRATIONS, BOOKING_INDEXES)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
