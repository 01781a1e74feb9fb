from types import SimpleNamespace

import pytest
from starlette.responses import Response

from app.api import deps
from app.api.v1 import auth as auth_routes
from app.api.v1 import users as user_routes
from app.config import settings
from app.core.exceptions import AuthenticationError, RateLimitExceededError
from app.core.security import TokenKind, verify_token
from app.models.security import RefreshToken
from app.schemas.auth import LoginRequest, LoginResponse, MfaChallengeResponse

from conftest import PASSWORD


def _request(cookies=None, path="/api/auth/refresh"):
    return SimpleNamespace(
        headers={"user-agent": "pytest"},
        client=SimpleNamespace(host="127.0.0.1"),
        cookies=cookies or {},
        url=SimpleNamespace(path=path),
    )


def _set_cookie_headers(response):
    return [value for key, value in response.raw_headers if key == b"set-cookie"]


def _login(db):
    response = Response()
    body = auth_routes.login(
        LoginRequest(email="alice@example.com", password=PASSWORD),
        request=_request(path="/api/auth/login"),
        response=response,
        db=db,
    )
    return body, response


def _cookie_value(response):
    header = _set_cookie_headers(response)[0].decode()
    name, _, rest = header.partition("=")
    assert name == settings.COOKIE_NAME
    return rest.split(";")[0]


def test_login_sets_http_only_refresh_cookie(db, make_user):
    make_user()
    body, response = _login(db)

    assert isinstance(body, LoginResponse)
    assert "refresh_token" not in body.model_dump()
    assert body.expires_in == settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60

    header = _set_cookie_headers(response)[0].decode().lower()
    assert header.startswith(f"{settings.COOKIE_NAME.lower()}=")
    assert "httponly" in header
    assert f"max-age={7 * 24 * 60 * 60}" in header
    assert "samesite=strict" in header


def test_login_with_mfa_returns_challenge_without_cookie(db, make_user):
    user = make_user()
    user.is_mfa_enabled = True
    user.mfa_secret = "JBSWY3DPEHPK3PXP"
    db.commit()

    body, response = _login(db)

    assert isinstance(body, MfaChallengeResponse)
    assert body.requires_mfa is True
    assert body.temp_token
    assert _set_cookie_headers(response) == []


def test_refresh_route_reads_cookie(db, make_user):
    user = make_user()
    _, response = _login(db)

    result = auth_routes.refresh_token(
        request=_request(cookies={settings.COOKIE_NAME: _cookie_value(response)}),
        db=db,
    )

    assert verify_token(TokenKind.ACCESS, result.access_token).user_id == user.id


def test_refresh_route_clears_cookie_for_revoked_token(db, make_user):
    make_user()
    _, response = _login(db)
    raw = _cookie_value(response)
    db.query(RefreshToken).update({RefreshToken.is_revoked: True})
    db.commit()

    result = auth_routes.refresh_token(request=_request(cookies={settings.COOKIE_NAME: raw}), db=db)

    assert result.status_code == 401
    assert b'"Refresh token has been revoked"' in result.body
    cleared = _set_cookie_headers(result)[0].decode().lower()
    assert cleared.startswith(f"{settings.COOKIE_NAME.lower()}=")
    assert "max-age=0" in cleared


def test_refresh_route_clears_cookie_when_missing(db):
    result = auth_routes.refresh_token(request=_request(), db=db)
    assert result.status_code == 401
    assert _set_cookie_headers(result)


def test_logout_route_revokes_and_clears_cookie(db, make_user):
    make_user()
    _, login_response = _login(db)
    raw = _cookie_value(login_response)

    response = Response()
    body = auth_routes.logout(
        request=_request(cookies={settings.COOKIE_NAME: raw}, path="/api/auth/logout"),
        response=response,
        db=db,
    )

    assert body.message == "Logged out successfully"
    assert db.query(RefreshToken).one().is_revoked is True
    assert "max-age=0" in _set_cookie_headers(response)[0].decode().lower()


def test_login_is_rate_limited_per_client(db, make_user, monkeypatch):
    make_user()
    monkeypatch.setattr(settings, "RATE_LIMIT_MAX_REQUESTS", 2)
    _login(db)
    _login(db)
    with pytest.raises(RateLimitExceededError) as exc:
        _login(db)
    assert exc.value.status_code == 429
    assert exc.value.details["retry_after"] > 0


def _forwarded_request(host, forwarded_for):
    return SimpleNamespace(
        headers={"user-agent": "pytest", "x-forwarded-for": forwarded_for},
        client=SimpleNamespace(host=host),
        cookies={},
        url=SimpleNamespace(path="/api/auth/login"),
    )


def test_rotating_forwarded_for_does_not_reset_login_limit(db, make_user, monkeypatch):
    make_user()
    monkeypatch.setattr(settings, "RATE_LIMIT_MAX_REQUESTS", 2)
    credentials = LoginRequest(email="alice@example.com", password=PASSWORD)

    for i in range(2):
        auth_routes.login(
            credentials,
            request=_forwarded_request("127.0.0.1", f"10.0.0.{i}"),
            response=Response(),
            db=db,
        )
    with pytest.raises(RateLimitExceededError):
        auth_routes.login(
            credentials,
            request=_forwarded_request("127.0.0.1", "10.0.0.99"),
            response=Response(),
            db=db,
        )


def test_forwarded_for_is_ignored_from_untrusted_peer(monkeypatch):
    monkeypatch.setattr(settings, "TRUSTED_PROXIES", [])
    assert deps.client_ip(_forwarded_request("203.0.113.7", "10.0.0.1")) == "203.0.113.7"


def test_forwarded_for_is_read_behind_trusted_proxy(monkeypatch):
    monkeypatch.setattr(settings, "TRUSTED_PROXIES", ["172.16.0.1", "172.16.0.2"])

    request = _forwarded_request("172.16.0.1", "10.0.0.1, 198.51.100.4, 172.16.0.2")
    assert deps.client_ip(request) == "198.51.100.4"

    only_proxies = _forwarded_request("172.16.0.1", "172.16.0.2")
    assert deps.client_ip(only_proxies) == "172.16.0.1"


def test_current_user_requires_valid_access_token(db, make_user):
    user = make_user()
    body, _ = _login(db)

    credentials = SimpleNamespace(credentials=body.access_token)
    assert deps.get_current_user(credentials=credentials, db=db).id == user.id

    with pytest.raises(AuthenticationError):
        deps.get_current_user(credentials=None, db=db)
    with pytest.raises(AuthenticationError):
        deps.get_current_user(credentials=SimpleNamespace(credentials="garbage"), db=db)


def test_delete_account_deactivates_and_clears_cookie(db, make_user):
    user = make_user()
    _login(db)

    response = Response()
    body = user_routes.delete_account(response=response, current_user=user, db=db)

    assert body.message == "Account deactivated successfully"
    db.refresh(user)
    assert user.is_active is False
    assert db.query(RefreshToken).filter(RefreshToken.is_revoked.is_(False)).count() == 0
    assert "max-age=0" in _set_cookie_headers(response)[0].decode().lower()
    with pytest.raises(AuthenticationError):
        deps.get_current_user(
            credentials=SimpleNamespace(credentials=_login_token_for(user)),
            db=db,
        )


def _login_token_for(user):
    from app.core.security import create_access_token
    from app.services.token_service import token_service

    return create_access_token(token_service.payload_for(user))
