from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from scheduler.auth.dependencies import get_current_user
from scheduler.core import config
from scheduler.database import get_db
from scheduler.models.event_type import EventType
from scheduler.models.user import User
from scheduler.routes.category_routes import get_owned_category
from scheduler.routes.common import database_unavailable, ensure_database_ready
from scheduler.services.slug import is_valid_slug, slugify

router = APIRouter(tags=['event-types'])

MAX_DURATION_MINUTES = 24 * 60


def _validate_duration(value: int | None) -> int | None:
    if value is not None and not 0 < value <= MAX_DURATION_MINUTES:
        raise ValueError(f'Duration must be between 1 and {MAX_DURATION_MINUTES} minutes.')
    return value


def _validate_slug(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip().lower()
    if not is_valid_slug(normalized):
        raise ValueError('Slug must be 2-60 characters of lowercase letters, digits and hyphens.')
    return normalized


class CreateEventTypeRequest(BaseModel):
    title: str
    slug: str | None = None
    description: str | None = None
    duration: int = config.DEFAULT_EVENT_DURATION
    category_id: int | None = None
    price: Decimal | None = None
    active: bool = True

    @field_validator('title')
    @classmethod
    def validate_title(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Title is required.')
        return normalized

    @field_validator('slug')
    @classmethod
    def validate_slug(cls, value: str | None) -> str | None:
        return _validate_slug(value)

    @field_validator('duration')
    @classmethod
    def validate_duration(cls, value: int) -> int:
        return _validate_duration(value)


class UpdateEventTypeRequest(BaseModel):
    title: str | None = None
    slug: str | None = None
    description: str | None = None
    duration: int | None = None
    category_id: int | None = None
    price: Decimal | None = None
    active: bool | None = None

    @field_validator('title')
    @classmethod
    def validate_title(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        if not normalized:
            raise ValueError('Title cannot be blank.')
        return normalized

    @field_validator('slug')
    @classmethod
    def validate_slug(cls, value: str | None) -> str | None:
        return _validate_slug(value)

    @field_validator('duration')
    @classmethod
    def validate_duration(cls, value: int | None) -> int | None:
        return _validate_duration(value)


class EventTypeResponse(BaseModel):
    id: int
    title: str
    slug: str
    description: str | None = None
    duration: int
    category_id: int | None = None
    price: Decimal | None = None
    active: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


def get_owned_event_type(db: Session, event_type_id: int, owner: User) -> EventType:
    event_type = db.query(EventType).filter(
        EventType.id == event_type_id,
        EventType.user_id == owner.id,
    ).first()

    if event_type is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Event type not found.',
        )

    return event_type


def ensure_slug_available(db: Session, slug: str, exclude_id: int | None = None) -> None:
    if not is_valid_slug(slug):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Could not derive a valid slug from the title.',
        )

    query = db.query(EventType.id).filter(EventType.slug == slug)
    if exclude_id is not None:
        query = query.filter(EventType.id != exclude_id)

    if query.first() is not None:
        raise slug_conflict()


def slug_conflict() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail='This slug is already in use.',
    )


@router.get('', response_model=list[EventTypeResponse])
def list_event_types(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return db.query(EventType).filter(
            EventType.user_id == current_user.id,
        ).order_by(EventType.created_at.asc(), EventType.id.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('', response_model=EventTypeResponse, status_code=status.HTTP_201_CREATED)
def create_event_type(
    data: CreateEventTypeRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        slug = data.slug or slugify(data.title)
        ensure_slug_available(db, slug)

        if data.category_id is not None:
            get_owned_category(db, data.category_id, current_user)

        event_type = EventType(
            user_id=current_user.id,
            title=data.title,
            slug=slug,
            description=data.description,
            duration=data.duration,
            category_id=data.category_id,
            price=data.price,
            active=data.active,
        )
        db.add(event_type)
        db.commit()
        db.refresh(event_type)

        return event_type
    except IntegrityError as exc:
        # Another request claimed the slug after the availability check.
        db.rollback()
        raise slug_conflict() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/{event_type_id}', response_model=EventTypeResponse)
def get_event_type(
    event_type_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return get_owned_event_type(db, event_type_id, current_user)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.patch('/{event_type_id}', response_model=EventTypeResponse)
def update_event_type(
    event_type_id: int,
    data: UpdateEventTypeRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        event_type = get_owned_event_type(db, event_type_id, current_user)
        changes = data.model_dump(exclude_unset=True)

        if changes.get('slug') and changes['slug'] != event_type.slug:
            ensure_slug_available(db, changes['slug'], exclude_id=event_type.id)

        if changes.get('category_id') is not None:
            get_owned_category(db, changes['category_id'], current_user)

        for field_name, value in changes.items():
            if value is None and field_name in {'title', 'slug', 'duration', 'active'}:
                continue
            setattr(event_type, field_name, value)

        db.commit()
        db.refresh(event_type)

        return event_type
    except IntegrityError as exc:
        db.rollback()
        raise slug_conflict() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/{event_type_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_event_type(
    event_type_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        event_type = get_owned_event_type(db, event_type_id, current_user)
        db.delete(event_type)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail='This event type has bookings. Deactivate it instead.',
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
