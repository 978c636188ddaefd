import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from scheduler.auth.dependencies import get_current_user
from scheduler.database import get_db
from scheduler.models.category import DEFAULT_CATEGORY_COLOR, Category
from scheduler.models.event_type import EventType
from scheduler.models.user import User
from scheduler.routes.common import database_unavailable, ensure_database_ready

router = APIRouter(tags=['categories'])

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 100
DUPLICATE_NAME_DETAIL = 'A category with this name already exists.'


def _clean_description(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


def _clean_color(value: str) -> str:
    return value.strip().lower() or DEFAULT_CATEGORY_COLOR


class CategoryRequest(BaseModel):
    name: str
    color: str = DEFAULT_CATEGORY_COLOR
    description: str | None = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Name is required.')
        if len(normalized) > MAX_NAME_LENGTH:
            raise ValueError(f'Name must be {MAX_NAME_LENGTH} characters or fewer.')
        return normalized

    @field_validator('color')
    @classmethod
    def validate_color(cls, value: str) -> str:
        return _clean_color(value)

    @field_validator('description')
    @classmethod
    def validate_description(cls, value: str | None) -> str | None:
        return _clean_description(value)


class CategoryResponse(BaseModel):
    id: int
    name: str
    color: str
    description: str | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


def get_owned_category(db: Session, category_id: int, owner: User) -> Category:
    category = db.query(Category).filter(
        Category.id == category_id,
        Category.user_id == owner.id,
    ).first()

    if category is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Category not found.',
        )

    return category


def ensure_name_available(db: Session, owner: User, name: str, exclude_id: int | None = None) -> None:
    query = db.query(Category.id).filter(
        Category.user_id == owner.id,
        Category.name == name,
    )
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)

    if query.first() is not None:
        raise duplicate_name_conflict()


def duplicate_name_conflict() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=DUPLICATE_NAME_DETAIL,
    )


@router.get('', response_model=list[CategoryResponse])
def list_categories(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return db.query(Category).filter(
            Category.user_id == current_user.id,
        ).order_by(Category.name.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('', response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
def create_category(
    data: CategoryRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        ensure_name_available(db, current_user, data.name)

        category = Category(
            user_id=current_user.id,
            name=data.name,
            color=data.color,
            description=data.description,
        )
        db.add(category)
        db.commit()
        db.refresh(category)

        return category
    except IntegrityError as exc:
        db.rollback()
        raise duplicate_name_conflict() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.put('/{category_id}', response_model=CategoryResponse)
def update_category(
    category_id: int,
    data: CategoryRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        category = get_owned_category(db, category_id, current_user)
        ensure_name_available(db, current_user, data.name, exclude_id=category.id)

        category.name = data.name
        category.color = data.color
        category.description = data.description
        db.commit()
        db.refresh(category)

        return category
    except IntegrityError as exc:
        db.rollback()
        raise duplicate_name_conflict() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/{category_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_category(
    category_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        category = get_owned_category(db, category_id, current_user)

        # Event types keep existing without a category.
        db.query(EventType).filter(
            EventType.category_id == category.id,
        ).update({EventType.category_id: None}, synchronize_session=False)

        db.delete(category)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    logger.info('Category %s deleted by %s.', category_id, current_user.email)
