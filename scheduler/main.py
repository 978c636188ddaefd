import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from scheduler.core import config
from scheduler.database import (
    Base,
    engine,
    ensure_availability_schema,
    ensure_booking_schema,
    ensure_event_type_schema,
)
from scheduler.models import availability, booking, category, event_type, user  # noqa: F401
from scheduler.routes import (
    auth_routes,
    availability_routes,
    booking_routes,
    category_routes,
    event_type_routes,
    public_routes,
)

config.validate_runtime_config()

app = FastAPI(title='Scheduler API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        ensure_availability_schema()
        ensure_booking_schema()
        ensure_event_type_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and Postgres credentials.')


@app.get('/')
def root():
    return {'status': 'Scheduler API Running'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(category_routes.router, prefix='/categories')
app.include_router(event_type_routes.router, prefix='/event-types')
app.include_router(availability_routes.router, prefix='/availability')
app.include_router(booking_routes.router, prefix='/bookings')
app.include_router(public_routes.router, prefix='/public')
