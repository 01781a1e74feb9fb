from datetime import timedelta

import pytest

from app.core.clock import utcnow
from app.core.exceptions import (
    AuthenticationError,
    MissingTokenError,
    TokenExpiredError,
    TokenInvalidError,
    TokenRevokedError,
)
from app.core.security import TokenKind, verify_token
from app.models.security import RefreshToken
from app.services.user_service import user_service

from conftest import PASSWORD


@pytest.fixture
def session_tokens(db, auth, make_user):
    user = make_user()
    result = auth.login(db, user.email, PASSWORD)
    return user, result


def test_refresh_issues_new_access_token(db, auth, session_tokens):
    user, result = session_tokens
    access = auth.refresh(db, result.refresh_token)
    payload = verify_token(TokenKind.ACCESS, access)
    assert payload.user_id == user.id
    assert payload.email == user.email


def test_refresh_does_not_rotate_refresh_token(db, auth, session_tokens):
    _, result = session_tokens
    auth.refresh(db, result.refresh_token)
    auth.refresh(db, result.refresh_token)
    assert db.query(RefreshToken).count() == 1


def test_missing_refresh_token(db, auth):
    with pytest.raises(MissingTokenError):
        auth.refresh(db, None)
    with pytest.raises(MissingTokenError):
        auth.refresh(db, "")


def test_access_token_cannot_be_used_to_refresh(db, auth, session_tokens):
    _, result = session_tokens
    with pytest.raises(TokenInvalidError):
        auth.refresh(db, result.access_token)


def test_logout_revokes_refresh_token(db, auth, session_tokens):
    _, result = session_tokens
    assert auth.logout(db, result.refresh_token) is True

    record = db.query(RefreshToken).one()
    assert record.is_revoked is True
    assert record.revoked_at is not None

    with pytest.raises(TokenRevokedError):
        auth.refresh(db, result.refresh_token)


def test_logout_is_idempotent(db, auth, session_tokens):
    _, result = session_tokens
    auth.logout(db, result.refresh_token)
    assert auth.logout(db, result.refresh_token) is False
    assert auth.logout(db, None) is False


def test_unknown_refresh_token_counts_as_revoked(db, auth, session_tokens):
    _, result = session_tokens
    db.query(RefreshToken).delete()
    db.commit()
    with pytest.raises(TokenRevokedError):
        auth.refresh(db, result.refresh_token)


def test_expired_refresh_row_is_rejected(db, auth, session_tokens):
    _, result = session_tokens
    record = db.query(RefreshToken).one()
    record.expires_at = utcnow() - timedelta(seconds=1)
    db.commit()

    with pytest.raises(TokenExpiredError):
        auth.refresh(db, result.refresh_token)


def test_refresh_fails_for_deactivated_user(db, auth, session_tokens):
    user, result = session_tokens
    user.is_active = False
    db.commit()

    with pytest.raises(AuthenticationError):
        auth.refresh(db, result.refresh_token)


def test_each_login_creates_its_own_session(db, auth, session_tokens):
    user, first = session_tokens
    second = auth.login(db, user.email, PASSWORD)
    assert first.refresh_token != second.refresh_token
    assert db.query(RefreshToken).filter(RefreshToken.user_id == user.id).count() == 2

    auth.logout(db, first.refresh_token)
    assert auth.refresh(db, second.refresh_token)


def test_deactivate_account_revokes_every_session(db, auth, session_tokens):
    user, first = session_tokens
    second = auth.login(db, user.email, PASSWORD)

    revoked = user_service.deactivate_account(db, user.id)

    assert revoked == 2
    assert db.query(RefreshToken).filter(RefreshToken.is_revoked.is_(False)).count() == 0
    for token in (first.refresh_token, second.refresh_token):
        with pytest.raises(TokenRevokedError):
            auth.refresh(db, token)
