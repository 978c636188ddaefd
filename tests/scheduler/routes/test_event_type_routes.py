from decimal import Decimal

import pytest
from fastapi import HTTPException
from pydantic import ValidationError
from sqlalchemy.exc import OperationalError

from scheduler.models.category import Category
from scheduler.models.event_type import EventType
from scheduler.models.user import User
from scheduler.routes import event_type_routes
from scheduler.routes.common import database_unavailable
from scheduler.routes.event_type_routes import (
    CreateEventTypeRequest,
    UpdateEventTypeRequest,
    create_event_type,
    delete_event_type,
    get_event_type,
    list_event_types,
    update_event_type,
)


def test_create_event_type_request_normalizes_slug() -> None:
    request = CreateEventTypeRequest(title=' Deep Dive ', slug=' Deep-Dive ')

    assert request.title == 'Deep Dive'
    assert request.slug == 'deep-dive'
    assert request.duration == 30


@pytest.mark.parametrize(
    'payload',
    [
        {'title': '   '},
        {'title': 'Deep Dive', 'slug': 'deep dive'},
        {'title': 'Deep Dive', 'duration': 0},
        {'title': 'Deep Dive', 'duration': 24 * 60 + 1},
    ],
)
def test_create_event_type_request_rejects_invalid_fields(payload) -> None:
    with pytest.raises(ValidationError):
        CreateEventTypeRequest(**payload)


def test_create_event_type_derives_slug_from_title(db, owner) -> None:
    created = create_event_type(
        data=CreateEventTypeRequest(title='Strategy Session!', duration=45, price=Decimal('120.00')),
        current_user=owner,
        db=db,
    )

    assert created.slug == 'strategy-session'
    assert created.user_id == owner.id
    assert created.duration == 45
    assert created.active is True


def test_create_event_type_rejects_duplicate_slug(db, owner, event_type) -> None:
    with pytest.raises(HTTPException) as exception_info:
        create_event_type(data=CreateEventTypeRequest(title='Intro Consultation'), current_user=owner, db=db)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'This slug is already in use.'


def test_create_event_type_rejects_title_without_slug_characters(db, owner) -> None:
    with pytest.raises(HTTPException) as exception_info:
        create_event_type(data=CreateEventTypeRequest(title='!!!'), current_user=owner, db=db)

    assert exception_info.value.status_code == 400


def test_list_event_types_only_returns_owned_types(db, owner, event_type) -> None:
    other_owner = User(email='someone@example.com')
    db.add(other_owner)
    db.commit()
    db.add(EventType(user_id=other_owner.id, title='Other', slug='other', duration=15, active=True))
    db.commit()

    listed = list_event_types(current_user=owner, db=db)

    assert [item.slug for item in listed] == ['intro-consultation']


def test_get_event_type_hides_other_owners_types(db, event_type) -> None:
    stranger = User(email='stranger@example.com')
    db.add(stranger)
    db.commit()

    with pytest.raises(HTTPException) as exception_info:
        get_event_type(event_type_id=event_type.id, current_user=stranger, db=db)

    assert exception_info.value.status_code == 404


def test_update_event_type_applies_partial_changes(db, owner, event_type) -> None:
    updated = update_event_type(
        event_type_id=event_type.id,
        data=UpdateEventTypeRequest(duration=60, active=False, slug='intro-call'),
        current_user=owner,
        db=db,
    )

    assert updated.duration == 60
    assert updated.active is False
    assert updated.slug == 'intro-call'
    assert updated.title == 'Intro Consultation'


def test_update_event_type_rejects_slug_taken_by_another_type(db, owner, event_type) -> None:
    db.add(EventType(user_id=owner.id, title='Follow Up', slug='follow-up', duration=15, active=True))
    db.commit()

    with pytest.raises(HTTPException) as exception_info:
        update_event_type(
            event_type_id=event_type.id,
            data=UpdateEventTypeRequest(slug='follow-up'),
            current_user=owner,
            db=db,
        )

    assert exception_info.value.status_code == 409


def test_delete_event_type_removes_row(db, owner, event_type) -> None:
    delete_event_type(event_type_id=event_type.id, current_user=owner, db=db)

    assert db.query(EventType).filter(EventType.id == event_type.id).first() is None


def test_create_event_type_maps_database_errors_to_service_unavailable(db, owner, monkeypatch) -> None:
    def broken_commit():
        raise OperationalError('INSERT', {}, Exception('connection lost'))

    monkeypatch.setattr(db, 'commit', broken_commit)

    with pytest.raises(HTTPException) as exception_info:
        create_event_type(data=CreateEventTypeRequest(title='Quick Chat'), current_user=owner, db=db)

    assert exception_info.value.status_code == 503
    assert db.query(EventType).filter(EventType.slug == 'quick-chat').first() is None


def test_create_event_type_maps_concurrent_duplicate_slug_to_conflict(db, owner, event_type, monkeypatch) -> None:
    monkeypatch.setattr(event_type_routes, 'ensure_slug_available', lambda *args, **kwargs: None)

    with pytest.raises(HTTPException) as exception_info:
        create_event_type(data=CreateEventTypeRequest(title='Intro Consultation'), current_user=owner, db=db)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'This slug is already in use.'
    assert db.query(EventType).count() == 1


@pytest.mark.parametrize('handler', ['list', 'get'])
def test_read_handlers_check_database_readiness(db, owner, event_type, monkeypatch, handler) -> None:
    def unavailable():
        raise database_unavailable()

    monkeypatch.setattr(event_type_routes, 'ensure_database_ready', unavailable)

    with pytest.raises(HTTPException) as exception_info:
        if handler == 'list':
            list_event_types(current_user=owner, db=db)
        else:
            get_event_type(event_type_id=event_type.id, current_user=owner, db=db)

    assert exception_info.value.status_code == 503


def test_event_type_can_be_filed_under_an_owned_category(db, owner, event_type) -> None:
    category = Category(user_id=owner.id, name='Coaching', color='green')
    db.add(category)
    db.commit()

    updated = update_event_type(
        event_type_id=event_type.id,
        data=UpdateEventTypeRequest(category_id=category.id),
        current_user=owner,
        db=db,
    )

    assert updated.category_id == category.id


def test_event_type_rejects_another_owners_category(db, owner) -> None:
    stranger = User(email='stranger@example.com')
    db.add(stranger)
    db.commit()
    foreign_category = Category(user_id=stranger.id, name='Private')
    db.add(foreign_category)
    db.commit()

    with pytest.raises(HTTPException) as exception_info:
        create_event_type(
            data=CreateEventTypeRequest(title='Deep Dive', category_id=foreign_category.id),
            current_user=owner,
            db=db,
        )

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Category not found.'
