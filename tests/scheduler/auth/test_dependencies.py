from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from scheduler.auth import jwt_handler
from scheduler.auth.dependencies import get_current_user
from scheduler.core import config
from scheduler.issue_token import main as issue_token
from scheduler.routes.auth_routes import me


def bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme='Bearer', credentials=token)


def test_access_token_round_trip_keeps_subject_and_role() -> None:
    token = jwt_handler.create_access_token('owner@example.com', role='owner')

    payload = jwt_handler.decode_access_token(token)

    assert payload['sub'] == 'owner@example.com'
    assert payload['role'] == 'owner'
    assert payload['exp'] > payload['iat']


def test_get_current_user_resolves_token_subject(db, owner) -> None:
    token = jwt_handler.create_access_token(' Owner@Example.com ')

    user = get_current_user(credentials=bearer(token), db=db)

    assert user.id == owner.id
    assert me(current_user=user) == {'email': 'owner@example.com', 'full_name': 'Olivia Owner', 'role': 'owner'}


def test_get_current_user_rejects_garbage_token(db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_current_user(credentials=bearer('not-a-jwt'), db=db)

    assert exception_info.value.status_code == 401
    assert exception_info.value.detail == 'Invalid token'


def test_get_current_user_rejects_expired_token(db, owner) -> None:
    expired = jwt.encode(
        {'sub': owner.email, 'exp': datetime.now(timezone.utc) - timedelta(minutes=5)},
        config.JWT_SECRET_KEY,
        algorithm=config.JWT_ALGORITHM,
    )

    with pytest.raises(HTTPException) as exception_info:
        get_current_user(credentials=bearer(expired), db=db)

    assert exception_info.value.status_code == 401


def test_get_current_user_rejects_token_without_subject(db) -> None:
    token = jwt.encode(
        {'exp': datetime.now(timezone.utc) + timedelta(minutes=5)},
        config.JWT_SECRET_KEY,
        algorithm=config.JWT_ALGORITHM,
    )

    with pytest.raises(HTTPException) as exception_info:
        get_current_user(credentials=bearer(token), db=db)

    assert exception_info.value.detail == 'Invalid token subject'


def test_get_current_user_rejects_unknown_user(db) -> None:
    token = jwt_handler.create_access_token('nobody@example.com')

    with pytest.raises(HTTPException) as exception_info:
        get_current_user(credentials=bearer(token), db=db)

    assert exception_info.value.detail == 'User not found'


def test_issue_token_prints_a_decodable_token(capsys) -> None:
    assert issue_token(['Owner@Example.com', '5']) == 0

    token = capsys.readouterr().out.strip()
    assert jwt_handler.decode_access_token(token)['sub'] == 'owner@example.com'


def test_issue_token_requires_an_email(capsys) -> None:
    assert issue_token([]) == 2
    assert 'Usage' in capsys.readouterr().err
