"""Unit tests for authentication helpers and endpoints."""

from __future__ import annotations

from datetime import timedelta

import pytest

from app.api.auth import login_user
from app.api.deps import get_user_from_token
from app.core.errors import UnauthorizedError
from app.core.security import create_access_token, get_password_hash
from app.models import User
from app.schemas import LoginRequest


@pytest.fixture()
def user(db_session):
    db_user = User(
        login="tester",
        hashed_password=get_password_hash("supersecret"),
        display_name="Tester",
    )
    db_session.add(db_user)
    db_session.commit()
    return db_user


def test_login_user_returns_token(db_session, user):
    """Successful login should return a bearer token."""

    credentials = LoginRequest(login="tester", password="supersecret")
    token = login_user(credentials, db_session)

    assert token.token_type == "bearer"
    assert isinstance(token.access_token, str) and token.access_token
    assert token.expires_in and token.expires_in > 0


def test_login_user_rejects_invalid_credentials(db_session):
    """Invalid credentials must raise a 401 error."""

    credentials = LoginRequest(login="ghost", password="doesnotmatter")
    with pytest.raises(UnauthorizedError) as exc:
        login_user(credentials, db_session)

    assert exc.value.status_code == 401
    assert "Incorrect login" in exc.value.detail


def test_get_user_from_token(db_session, user):
    """Tokens should resolve to existing users."""

    token = create_access_token(user.id)
    resolved = get_user_from_token(token, db_session)

    assert resolved.id == user.id
    assert resolved.login == user.login


def test_get_user_from_token_invalid_payload(db_session):
    """Garbage tokens must result in a 401 error."""

    with pytest.raises(UnauthorizedError) as exc:
        get_user_from_token("not-a-token", db_session)

    assert exc.value.status_code == 401


def test_get_user_from_token_rejects_expired_token(db_session, user):
    token = create_access_token(user.id, expires_delta=timedelta(seconds=-5))

    with pytest.raises(UnauthorizedError) as exc:
        get_user_from_token(token, db_session)

    assert exc.value.detail == "Token has expired"


def test_get_user_from_token_rejects_inactive_user(db_session, user):
    """Deactivated accounts resolve as unknown identities."""

    user.is_active = False
    db_session.commit()

    with pytest.raises(UnauthorizedError):
        get_user_from_token(create_access_token(user.id), db_session)
